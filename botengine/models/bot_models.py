"""
Bot configuration and performance snapshot.

Rows from the ``bots`` table are turned into :class:`BotConfig` once per
cycle; entry/exit condition strings are parsed into rules at that point so
the evaluator never touches raw keyword text.
"""
import json
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional, Tuple

from botengine.engine.conditions import Condition, parse_condition, parse_ma_cross
from botengine.errors import InvalidBotConfig
from botengine.utils.orders_enum import ExecutionMode, Side, SizingType

MOVING_AVERAGES = ('sma', 'ema', 'wma', 'hma')

# period used when a descriptor does not carry one
DEFAULT_PERIODS = {
    'rsi': 14,
    'stochastic': 14,
    'williamsr': 14,
    'williams': 14,
    'adx': 14,
    'atr': 14,
    'cci': 20,
}


@dataclass
class IndicatorSpec:
    name: str
    type: str = 'primary'  # primary | secondary | confirmation
    parameters: Dict[str, Any] = field(default_factory=dict)

    @property
    def period(self) -> int:
        value = self.parameters.get('period')
        if value:
            return int(value)
        return DEFAULT_PERIODS.get(self.name, 20)

    def param(self, key: str, default: float) -> float:
        return self.parameters.get(key) or default


@dataclass
class Schedule:
    start_time: Optional[str] = None  # "HH:MM"
    end_time: Optional[str] = None
    days_of_week: Optional[List[int]] = None  # 0 = Sunday

    @property
    def is_bounded(self) -> bool:
        return bool(self.start_time and self.end_time)


@dataclass
class BotStatistics:
    total_trades: int = 0
    open_trades: int = 0
    closed_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0
    total_profit: float = 0.0
    total_loss: float = 0.0
    realized_pnl: float = 0.0
    unrealized_pnl: float = 0.0
    net_profit: float = 0.0
    profit_factor: float = 0.0
    average_win: float = 0.0
    average_loss: float = 0.0
    largest_win: float = 0.0
    largest_loss: float = 0.0
    consecutive_wins: int = 0
    consecutive_losses: int = 0
    current_streak: int = 0
    max_drawdown: float = 0.0
    sharpe_ratio: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "BotStatistics":
        return cls(**{f.name: row[f.name] for f in fields(cls) if row.get(f.name) is not None})


@dataclass
class BotConfig:
    id: str
    user_id: str
    name: str
    symbol: str = 'BTCUSDT'
    timeframe: str = '1h'
    indicators: List[IndicatorSpec] = field(default_factory=list)
    primary_indicator: Optional[str] = None
    primary_period: Optional[int] = None
    secondary_indicator: Optional[str] = None
    entry_condition: str = ''
    exit_condition: str = ''
    entry_value: Optional[float] = None
    exit_value: Optional[float] = None
    position_sizing_type: str = SizingType.FIXED.value
    position_sizing_value: Optional[float] = None
    max_position: Optional[float] = None
    max_open_positions: int = 1
    stop_loss_enabled: bool = False
    stop_loss_type: str = 'fixed'
    stop_loss_value: Optional[float] = None
    take_profit_enabled: bool = False
    take_profit_type: str = 'fixed'
    take_profit_value: Optional[float] = None
    operation_mode: str = 'continuous'
    schedule: Optional[Schedule] = None
    entry_execution_mode: str = ExecutionMode.CANDLE_CLOSE.value
    exit_execution_mode: str = ExecutionMode.CANDLE_CLOSE.value
    entry_type: str = 'market'
    environment: str = 'simulated'
    is_active: bool = True
    stats: BotStatistics = field(default_factory=BotStatistics)

    # derived at load time
    primary: Optional[IndicatorSpec] = None
    moving_averages: List[IndicatorSpec] = field(default_factory=list)
    confirmations: List[IndicatorSpec] = field(default_factory=list)
    entry_rule: Optional[Condition] = None
    exit_rule: Optional[Condition] = None
    ma_cross_entry: Tuple[Side, ...] = ()
    ma_cross_exit: Tuple[Side, ...] = ()

    @property
    def primary_name(self) -> str:
        return self.primary.name if self.primary else ''

    @property
    def secondary_name(self) -> str:
        return (self.secondary_indicator or '').lower()

    @property
    def is_scheduled(self) -> bool:
        return self.operation_mode == 'scheduled'

    def resolve(self) -> "BotConfig":
        """Resolve indicator descriptors and parse conditions into rules."""
        if self.indicators:
            primaries = [i for i in self.indicators if i.type == 'primary']
            self.primary = primaries[0] if primaries else None
            self.moving_averages = sorted(
                (i for i in primaries if i.name in MOVING_AVERAGES),
                key=lambda i: i.period,
            )
            if len(self.moving_averages) < 2:
                self.moving_averages = []
            self.confirmations = [i for i in self.indicators if i.type == 'confirmation']
        elif self.primary_indicator:
            params = {'period': self.primary_period} if self.primary_period else {}
            self.primary = IndicatorSpec(self.primary_indicator.lower(), 'primary', params)

        family = self.primary_name
        self.entry_rule = parse_condition(self.entry_condition, family, self.entry_value)
        self.exit_rule = parse_condition(self.exit_condition, family, self.exit_value)
        self.ma_cross_entry = parse_ma_cross(self.entry_condition) if self.moving_averages else ()
        self.ma_cross_exit = parse_ma_cross(self.exit_condition) if self.moving_averages else ()
        return self


def _load_json(value):
    if isinstance(value, str):
        return json.loads(value) if value.strip() else None
    return value


def _indicator_specs(raw) -> List[IndicatorSpec]:
    specs = []
    for item in _load_json(raw) or []:
        name = (item.get('name') or '').lower()
        if not name:
            continue
        specs.append(IndicatorSpec(name, item.get('type') or 'primary', dict(item.get('parameters') or {})))
    return specs


def _schedule(raw) -> Optional[Schedule]:
    data = _load_json(raw)
    if not data:
        return None
    return Schedule(
        start_time=data.get('startTime') or data.get('start_time'),
        end_time=data.get('endTime') or data.get('end_time'),
        days_of_week=data.get('daysOfWeek', data.get('days_of_week')),
    )


def load_bot(row: Dict[str, Any]) -> BotConfig:
    """Build a resolved BotConfig from a ``bots`` row mapping."""
    if not row.get('id') or not row.get('user_id'):
        raise InvalidBotConfig(str(row.get('id')), "missing id or owner")
    try:
        bot = BotConfig(
            id=row['id'],
            user_id=row['user_id'],
            name=row.get('name') or row['id'],
            symbol=row.get('symbol') or 'BTCUSDT',
            timeframe=row.get('timeframe') or '1h',
            indicators=_indicator_specs(row.get('indicators')),
            primary_indicator=row.get('primary_indicator'),
            primary_period=row.get('primary_period'),
            secondary_indicator=row.get('secondary_indicator'),
            entry_condition=row.get('entry_condition') or '',
            exit_condition=row.get('exit_condition') or '',
            entry_value=row.get('entry_value'),
            exit_value=row.get('exit_value'),
            position_sizing_type=row.get('position_sizing_type') or SizingType.FIXED.value,
            position_sizing_value=row.get('position_sizing_value'),
            max_position=row.get('max_position'),
            max_open_positions=row.get('max_open_positions') or 1,
            stop_loss_enabled=bool(row.get('stop_loss_enabled')),
            stop_loss_type=row.get('stop_loss_type') or 'fixed',
            stop_loss_value=row.get('stop_loss_value'),
            take_profit_enabled=bool(row.get('take_profit_enabled')),
            take_profit_type=row.get('take_profit_type') or 'fixed',
            take_profit_value=row.get('take_profit_value'),
            operation_mode=row.get('operation_mode') or 'continuous',
            schedule=_schedule(row.get('operation_time')),
            entry_execution_mode=row.get('entry_execution_mode') or ExecutionMode.CANDLE_CLOSE.value,
            exit_execution_mode=row.get('exit_execution_mode') or ExecutionMode.CANDLE_CLOSE.value,
            entry_type=row.get('entry_type') or 'market',
            environment=row.get('environment') or 'simulated',
            is_active=bool(row.get('is_active', True)),
            stats=BotStatistics.from_row(row),
        )
    except (TypeError, ValueError) as e:
        raise InvalidBotConfig(str(row.get('id')), str(e)) from e
    return bot.resolve()
