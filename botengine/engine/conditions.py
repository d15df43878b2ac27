"""
Entry/exit condition parsing.

Bots describe their rules with free-form keyword strings (English or
Portuguese). They are parsed once, per indicator family, into a
:class:`Condition` so evaluation is a plain dispatch on :class:`ConditionKind`.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from botengine.utils.orders_enum import Side


class ConditionKind(str, Enum):
    DEFAULT = "default"  # no condition configured: family default rule
    NONE = "none"  # unrecognised phrasing: never signals

    # oscillators (rsi, stochastic, williams, cci)
    OVERSOLD = "oversold"
    OVERBOUGHT = "overbought"

    # line transitions (price vs line, oscillator vs midpoint, macd vs signal)
    CROSS_UP = "cross_up"
    CROSS_DOWN = "cross_down"
    CROSS_ANY = "cross_any"

    # price vs line / band
    ABOVE = "above"
    BELOW = "below"
    BREAKOUT = "breakout"
    BREAKDOWN = "breakdown"
    TOUCH_LOWER = "touch_lower"
    TOUCH_UPPER = "touch_upper"
    TOUCH_ANY = "touch_any"

    # macd
    DIVERGENCE = "divergence"
    HISTOGRAM_CHANGE = "histogram_change"

    # adx
    ABOVE_THRESHOLD = "above_threshold"
    BELOW_THRESHOLD = "below_threshold"
    RISING = "rising"
    FALLING = "falling"

    # atr
    HIGH_VOLATILITY = "high_volatility"
    LOW_VOLATILITY = "low_volatility"

    # parabolic sar
    TREND_CHANGE = "trend_change"

    # volume
    HIGH_VOLUME = "high_volume"
    LOW_VOLUME = "low_volume"
    VOLUME_SPIKE = "volume_spike"

    # ichimoku
    CLOUD_BREAKOUT = "cloud_breakout"
    CLOUD_BREAKDOWN = "cloud_breakdown"
    LINE_CROSS_UP = "line_cross_up"
    LINE_CROSS_DOWN = "line_cross_down"
    CLOUD_ABOVE = "cloud_above"
    CLOUD_BELOW = "cloud_below"


@dataclass(frozen=True)
class Condition:
    kind: ConditionKind
    threshold: Optional[float] = None
    # direction of the primary-vs-secondary line rule, when the text asks for a cross
    secondary: Optional[Side] = None


# (oversold, overbought, midpoint) defaults per oscillator
OSCILLATOR_LEVELS = {
    'rsi': (30.0, 70.0, 50.0),
    'stochastic': (20.0, 80.0, None),  # crosses compare %K with %D
    'williamsr': (-80.0, -20.0, -50.0),
    'williams': (-80.0, -20.0, -50.0),
    'cci': (-100.0, 100.0, 0.0),
}

MOVING_AVERAGES = ('sma', 'ema', 'wma', 'hma')
SAR_NAMES = ('parabolicsar', 'parabolic')
ICHIMOKU_NAMES = ('ichimoku', 'ichimokucloud')


class _Text:
    def __init__(self, raw: str):
        self.raw = (raw or '').strip().lower()

    def has(self, *words: str) -> bool:
        return any(w in self.raw for w in words)

    @property
    def cross(self) -> bool:
        return self.has('crossover', 'cruzou')

    @property
    def crossunder(self) -> bool:
        return self.has('crossunder', 'cruzou abaixo')

    @property
    def above(self) -> bool:
        return self.has('acima', 'above')

    @property
    def below(self) -> bool:
        return self.has('abaixo', 'below')

    @property
    def touch(self) -> bool:
        return self.has('tocou', 'touched', 'toca')


def _oscillator(t: _Text, family: str, value: Optional[float]) -> Condition:
    low, high, mid = OSCILLATOR_LEVELS[family]
    if t.has('oversold', 'sobrevendido', '<'):
        return Condition(ConditionKind.OVERSOLD, value or low)
    if t.has('overbought', 'sobrecomprado', '>'):
        return Condition(ConditionKind.OVERBOUGHT, value or high)
    if family == 'rsi' and mid is not None:
        mid = value or mid
    if t.cross:
        return Condition(ConditionKind.CROSS_UP if t.above else ConditionKind.CROSS_DOWN, mid)
    if t.crossunder:
        return Condition(ConditionKind.CROSS_DOWN, mid)
    return Condition(ConditionKind.NONE)


def _macd(t: _Text) -> Condition:
    if t.cross:
        return Condition(ConditionKind.CROSS_UP if t.above else ConditionKind.CROSS_DOWN)
    if t.crossunder:
        return Condition(ConditionKind.CROSS_DOWN)
    if t.has('divergence', 'divergência'):
        return Condition(ConditionKind.DIVERGENCE)
    if t.has('histogram_change', 'mudança histograma'):
        return Condition(ConditionKind.HISTOGRAM_CHANGE)
    return Condition(ConditionKind.NONE)


def _moving_average(t: _Text) -> Condition:
    if t.cross:
        if t.above:
            return Condition(ConditionKind.CROSS_UP)
        if t.below:
            return Condition(ConditionKind.CROSS_DOWN)
        return Condition(ConditionKind.CROSS_ANY)
    if t.crossunder:
        return Condition(ConditionKind.CROSS_DOWN)
    if t.above:
        return Condition(ConditionKind.ABOVE)
    if t.below:
        return Condition(ConditionKind.BELOW)
    if t.has('breakout'):
        return Condition(ConditionKind.BREAKOUT)
    if t.has('breakdown'):
        return Condition(ConditionKind.BREAKDOWN)
    return Condition(ConditionKind.NONE)


def _touch(t: _Text) -> Condition:
    if t.has('inferior', 'lower', 'abaixo'):
        return Condition(ConditionKind.TOUCH_LOWER)
    if t.has('superior', 'upper', 'acima'):
        return Condition(ConditionKind.TOUCH_UPPER)
    return Condition(ConditionKind.NONE)


def _bollinger(t: _Text) -> Condition:
    if t.touch:
        return _touch(t)
    if t.cross:
        return Condition(ConditionKind.CROSS_UP if t.above else ConditionKind.CROSS_DOWN)
    return Condition(ConditionKind.TOUCH_ANY)


def _hilo(t: _Text) -> Condition:
    if t.touch:
        return _touch(t)
    if t.cross:
        return Condition(ConditionKind.CROSS_UP if t.above else ConditionKind.CROSS_DOWN)
    if t.crossunder:
        return Condition(ConditionKind.CROSS_DOWN)
    if t.above:
        return Condition(ConditionKind.ABOVE)
    if t.below:
        return Condition(ConditionKind.BELOW)
    if t.has('breakout'):
        return Condition(ConditionKind.BREAKOUT)
    if t.has('breakdown'):
        return Condition(ConditionKind.BREAKDOWN)
    return Condition(ConditionKind.TOUCH_ANY)


def _adx(t: _Text, value: Optional[float]) -> Condition:
    if t.has('above_threshold', 'acima do limiar'):
        return Condition(ConditionKind.ABOVE_THRESHOLD, value or 25.0)
    if t.has('below_threshold', 'abaixo do limiar'):
        return Condition(ConditionKind.BELOW_THRESHOLD, value or 25.0)
    if t.has('rising', 'subindo'):
        return Condition(ConditionKind.RISING)
    if t.has('falling', 'caindo'):
        return Condition(ConditionKind.FALLING)
    return Condition(ConditionKind.NONE)


def _atr(t: _Text) -> Condition:
    if t.has('high_volatility', 'alta volatilidade'):
        return Condition(ConditionKind.HIGH_VOLATILITY)
    if t.has('low_volatility', 'baixa volatilidade'):
        return Condition(ConditionKind.LOW_VOLATILITY)
    if t.has('breakout'):
        return Condition(ConditionKind.BREAKOUT)
    if t.has('breakdown'):
        return Condition(ConditionKind.BREAKDOWN)
    return Condition(ConditionKind.NONE)


def _sar(t: _Text) -> Condition:
    if t.cross:
        return Condition(ConditionKind.CROSS_UP if t.above else ConditionKind.CROSS_DOWN)
    if t.crossunder:
        return Condition(ConditionKind.CROSS_DOWN)
    if t.has('trend_change', 'mudança de tendência'):
        return Condition(ConditionKind.TREND_CHANGE)
    return Condition(ConditionKind.NONE)


def _obv(t: _Text) -> Condition:
    if t.cross:
        return Condition(ConditionKind.CROSS_UP if t.above else ConditionKind.CROSS_DOWN)
    if t.crossunder:
        return Condition(ConditionKind.CROSS_DOWN)
    if t.has('divergence', 'divergência'):
        return Condition(ConditionKind.DIVERGENCE)
    if t.has('breakout'):
        return Condition(ConditionKind.BREAKOUT)
    return Condition(ConditionKind.NONE)


def _volume(t: _Text) -> Condition:
    if t.has('high_volume', 'alto volume'):
        return Condition(ConditionKind.HIGH_VOLUME)
    if t.has('low_volume', 'baixo volume'):
        return Condition(ConditionKind.LOW_VOLUME)
    if t.has('volume_spike', 'pico de volume'):
        return Condition(ConditionKind.VOLUME_SPIKE)
    if t.has('divergence', 'divergência'):
        return Condition(ConditionKind.DIVERGENCE)
    return Condition(ConditionKind.NONE)


def _ichimoku(t: _Text) -> Condition:
    if t.has('cloud_breakout', 'rompe nuvem acima'):
        return Condition(ConditionKind.CLOUD_BREAKOUT)
    if t.has('cloud_breakdown', 'rompe nuvem abaixo'):
        return Condition(ConditionKind.CLOUD_BREAKDOWN)
    if t.has('line_crossover', 'cruzamento de linhas'):
        return Condition(ConditionKind.LINE_CROSS_UP if t.above else ConditionKind.LINE_CROSS_DOWN)
    if t.has('price_cloud_position', 'posição preço nuvem'):
        return Condition(ConditionKind.CLOUD_ABOVE if t.above else ConditionKind.CLOUD_BELOW)
    return Condition(ConditionKind.NONE)


def _family_rule(t: _Text, family: str, value: Optional[float]) -> Condition:
    if family in OSCILLATOR_LEVELS:
        return _oscillator(t, family, value)
    if family == 'macd':
        return _macd(t)
    if family in MOVING_AVERAGES:
        return _moving_average(t)
    if 'bollinger' in family:
        return _bollinger(t)
    if family == 'hilo':
        return _hilo(t)
    if family == 'adx':
        return _adx(t, value)
    if family == 'atr':
        return _atr(t)
    if family in SAR_NAMES:
        return _sar(t)
    if family == 'obv':
        return _obv(t)
    if family == 'volume':
        return _volume(t)
    if family in ICHIMOKU_NAMES:
        return _ichimoku(t)
    return Condition(ConditionKind.NONE)


def parse_condition(raw: Optional[str], family: str, value: Optional[float] = None) -> Condition:
    """Parse a condition string for the given primary indicator family.

    ``value`` is the bot's entry/exit threshold; when unset the family's
    canonical level is used.
    """
    t = _Text(raw)
    if not t.raw:
        return Condition(ConditionKind.DEFAULT)
    rule = _family_rule(t, (family or '').lower(), value)
    if t.cross:
        return Condition(rule.kind, rule.threshold, Side.BUY if t.above else Side.SELL)
    return rule


def parse_ma_cross(raw: Optional[str]) -> Tuple[Side, ...]:
    """Sides a multi moving-average cross strategy should act on.

    ``crossover`` asks for golden crosses (buy), ``crossunder`` for death
    crosses (sell); both may be present.
    """
    t = _Text(raw)
    sides = []
    if 'crossover' in t.raw:
        sides.append(Side.BUY)
    if 'crossunder' in t.raw:
        sides.append(Side.SELL)
    return tuple(sides)
