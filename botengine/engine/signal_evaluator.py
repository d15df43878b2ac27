"""
Signal evaluation for bot entries and exits.

Entry: the multi moving-average cross strategy runs first when configured,
then the primary indicator family rule (or its default when the bot has no
condition), then the secondary-line rules. Exit: moving-average crosses,
RSI exit levels, or the parsed exit rule firing against the trade's side.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from botengine.engine.conditions import ConditionKind as K, Condition
from botengine.engine.indicators import IndicatorSnapshot, build_snapshot
from botengine.engine.trend import atr
from botengine.models.bot_models import BotConfig
from botengine.models.candle_models import Candle
from botengine.models.trade_models import Trade
from botengine.utils.orders_enum import Side

logger = logging.getLogger("signal_evaluator")

TOUCH_TOLERANCE = 0.001
BREAKOUT_BODY_RATIO = 0.6
ATR_BASELINE_OFFSET = 20


@dataclass
class EntryDecision:
    should_trade: bool = False
    side: Side = Side.BUY


@dataclass
class _Ctx:
    bot: BotConfig
    rule: Condition
    candles: List[Candle]
    snap: IndicatorSnapshot
    prev: IndicatorSnapshot

    @property
    def candle(self) -> Candle:
        return self.candles[-1]

    @property
    def prev_candle(self) -> Candle:
        return self.candles[-2]

    @property
    def value(self) -> Optional[float]:
        return self.snap.primary

    @property
    def prev_value(self) -> Optional[float]:
        return self.prev.primary


def _crossed_up(prev_a, prev_b, a, b) -> bool:
    return prev_a <= prev_b and a > b


def _crossed_down(prev_a, prev_b, a, b) -> bool:
    return prev_a >= prev_b and a < b


# --- oscillators -----------------------------------------------------------

OSCILLATOR_DEFAULTS = {
    'rsi': (30.0, 70.0),
    'stochastic': (20.0, 80.0),
    'williamsr': (-80.0, -20.0),
    'williams': (-80.0, -20.0),
    'cci': (-100.0, 100.0),
}


def _oscillator(ctx: _Ctx) -> Optional[Side]:
    kind = ctx.rule.kind
    value = ctx.value
    if value is None:
        return None
    if kind is K.DEFAULT:
        low, high = OSCILLATOR_DEFAULTS[ctx.bot.primary_name]
        if value < low:
            return Side.BUY
        if value > high:
            return Side.SELL
        return None
    if kind is K.OVERSOLD:
        return Side.BUY if value < ctx.rule.threshold else None
    if kind is K.OVERBOUGHT:
        return Side.SELL if value > ctx.rule.threshold else None
    if kind in (K.CROSS_UP, K.CROSS_DOWN):
        if ctx.snap.stochastic is not None and ctx.prev.stochastic is not None:
            now, before = ctx.snap.stochastic, ctx.prev.stochastic
            if kind is K.CROSS_UP:
                return Side.BUY if _crossed_up(before.k, before.d, now.k, now.d) else None
            return Side.SELL if _crossed_down(before.k, before.d, now.k, now.d) else None
        mid = ctx.rule.threshold
        prev = ctx.prev_value
        if mid is None or prev is None:
            return None
        if kind is K.CROSS_UP:
            return Side.BUY if prev < mid <= value else None
        return Side.SELL if prev > mid >= value else None
    return None


def _macd(ctx: _Ctx) -> Optional[Side]:
    now, before = ctx.snap.macd, ctx.prev.macd
    if now is None:
        return None
    kind = ctx.rule.kind
    if kind is K.DEFAULT:
        if now.histogram > 0 and now.macd > now.signal:
            return Side.BUY
        if now.histogram < 0 and now.macd < now.signal:
            return Side.SELL
        return None
    if before is None:
        return None
    if kind is K.CROSS_UP:
        return Side.BUY if _crossed_up(before.macd, before.signal, now.macd, now.signal) else None
    if kind is K.CROSS_DOWN:
        return Side.SELL if _crossed_down(before.macd, before.signal, now.macd, now.signal) else None
    if kind is K.DIVERGENCE:
        if before.histogram < 0 < now.histogram:
            return Side.BUY
        if before.histogram > 0 > now.histogram:
            return Side.SELL
        return None
    if kind is K.HISTOGRAM_CHANGE:
        if before.histogram <= 0 < now.histogram:
            return Side.BUY
        if before.histogram >= 0 > now.histogram:
            return Side.SELL
    return None


# --- price vs line ---------------------------------------------------------

def _price_vs_line(ctx: _Ctx, line: Optional[float], prev_line: Optional[float]) -> Optional[Side]:
    """Shared by moving averages and parabolic SAR."""
    if line is None:
        return None
    if prev_line is None:
        prev_line = line
    kind = ctx.rule.kind
    c, pc = ctx.candle, ctx.prev_candle
    up = _crossed_up(pc.close, prev_line, c.close, line)
    down = _crossed_down(pc.close, prev_line, c.close, line)
    if kind is K.DEFAULT or kind is K.ABOVE or kind is K.BELOW:
        if c.close > line and kind is not K.BELOW:
            return Side.BUY
        if c.close < line and kind is not K.ABOVE:
            return Side.SELL
        return None
    if kind is K.CROSS_UP:
        return Side.BUY if up else None
    if kind is K.CROSS_DOWN:
        return Side.SELL if down else None
    if kind is K.CROSS_ANY:
        if up:
            return Side.BUY
        if down:
            return Side.SELL
        return None
    body_floor = (c.high - c.low) * BREAKOUT_BODY_RATIO
    if kind is K.BREAKOUT:
        return Side.BUY if c.close > line and (c.close - c.open) > body_floor else None
    if kind is K.BREAKDOWN:
        return Side.SELL if c.close < line and (c.open - c.close) > body_floor else None
    return None


def _moving_average(ctx: _Ctx) -> Optional[Side]:
    return _price_vs_line(ctx, ctx.value, ctx.prev_value)


def _parabolic(ctx: _Ctx) -> Optional[Side]:
    sar, prev_sar = ctx.value, ctx.prev_value
    if ctx.rule.kind is K.TREND_CHANGE:
        if sar is None or prev_sar is None:
            return None
        c, pc = ctx.candle, ctx.prev_candle
        flipped = (prev_sar < pc.close and sar > c.close) or (prev_sar > pc.close and sar < c.close)
        if not flipped:
            return None
        return Side.BUY if sar < c.close else Side.SELL
    if ctx.rule.kind in (K.BREAKOUT, K.BREAKDOWN, K.CROSS_ANY):
        return None
    return _price_vs_line(ctx, sar, prev_sar)


# --- bands -----------------------------------------------------------------

def _touch(candle: Candle, upper: float, lower: float, kind: K) -> Optional[Side]:
    touched_lower = candle.low <= lower or candle.close <= lower * (1 + TOUCH_TOLERANCE)
    touched_upper = candle.high >= upper or candle.close >= upper * (1 - TOUCH_TOLERANCE)
    if kind in (K.TOUCH_LOWER, K.TOUCH_ANY, K.DEFAULT) and touched_lower:
        return Side.BUY
    if kind in (K.TOUCH_UPPER, K.TOUCH_ANY, K.DEFAULT) and touched_upper:
        return Side.SELL
    return None


def _bollinger(ctx: _Ctx) -> Optional[Side]:
    bb = ctx.snap.bollinger
    if bb is None or bb.last_upper is None:
        return None
    kind = ctx.rule.kind
    if kind in (K.CROSS_UP, K.CROSS_DOWN):
        middle = bb.last_middle
        prev_bb = ctx.prev.bollinger
        prev_middle = prev_bb.last_middle if prev_bb is not None and prev_bb.last_middle is not None else middle
        c, pc = ctx.candle, ctx.prev_candle
        if kind is K.CROSS_UP:
            return Side.BUY if _crossed_up(pc.close, prev_middle, c.close, middle) else None
        return Side.SELL if _crossed_down(pc.close, prev_middle, c.close, middle) else None
    return _touch(ctx.candle, bb.last_upper, bb.last_lower, kind)


def _hilo(ctx: _Ctx) -> Optional[Side]:
    band = ctx.snap.hilo
    if band is None or band.last_upper is None:
        return None
    upper, lower = band.last_upper, band.last_lower
    prev_band = ctx.prev.hilo
    prev_upper = prev_band.last_upper if prev_band is not None and prev_band.last_upper is not None else upper
    prev_lower = prev_band.last_lower if prev_band is not None and prev_band.last_lower is not None else lower
    kind = ctx.rule.kind
    c, pc = ctx.candle, ctx.prev_candle
    if kind in (K.CROSS_UP, K.BREAKOUT):
        return Side.BUY if _crossed_up(pc.close, prev_upper, c.close, upper) else None
    if kind in (K.CROSS_DOWN, K.BREAKDOWN):
        return Side.SELL if _crossed_down(pc.close, prev_lower, c.close, lower) else None
    if kind is K.ABOVE:
        return Side.BUY if c.close > upper else None
    if kind is K.BELOW:
        return Side.SELL if c.close < lower else None
    return _touch(c, upper, lower, kind)


# --- trend strength / volatility / volume ---------------------------------

def _adx(ctx: _Ctx) -> Optional[Side]:
    now, before = ctx.snap.adx, ctx.prev.adx
    if now is None:
        return None
    by_di = Side.BUY if now.plus_di > now.minus_di else Side.SELL
    kind = ctx.rule.kind
    if kind is K.DEFAULT:
        return by_di if now.adx > 25 else None
    if kind is K.ABOVE_THRESHOLD:
        return by_di if now.adx > ctx.rule.threshold else None
    if kind is K.BELOW_THRESHOLD:
        return Side.SELL if now.adx < ctx.rule.threshold else None
    if before is None:
        return None
    if kind is K.RISING:
        return by_di if now.adx > before.adx else None
    if kind is K.FALLING:
        return Side.SELL if now.adx < before.adx else None
    return None


def _atr(ctx: _Ctx) -> Optional[Side]:
    value, prev = ctx.value, ctx.prev_value
    if value is None:
        return None
    kind = ctx.rule.kind
    if kind in (K.HIGH_VOLATILITY, K.LOW_VOLATILITY):
        baseline = atr(ctx.candles[:-ATR_BASELINE_OFFSET], ctx.bot.primary.period)
        if baseline <= 0:
            return None
        if kind is K.HIGH_VOLATILITY:
            return Side.BUY if value > baseline * 1.5 else None
        return Side.SELL if value < baseline * 0.5 else None
    if prev is None:
        return None
    if kind is K.BREAKOUT:
        return Side.BUY if value > prev * 1.2 else None
    if kind is K.BREAKDOWN:
        return Side.SELL if value < prev * 0.8 else None
    return None


def _price_change(ctx: _Ctx) -> float:
    return ctx.candle.close - ctx.prev_candle.close


def _divergence(ctx: _Ctx) -> Optional[Side]:
    change = ctx.value - ctx.prev_value
    price_change = _price_change(ctx)
    if price_change < 0 and change > 0:
        return Side.BUY
    if price_change > 0 and change < 0:
        return Side.SELL
    return None


def _obv(ctx: _Ctx) -> Optional[Side]:
    value, prev = ctx.value, ctx.prev_value
    if value is None or prev is None:
        return None
    kind = ctx.rule.kind
    mean = (prev + value) / 2
    if kind is K.CROSS_UP:
        return Side.BUY if prev <= mean < value else None
    if kind is K.CROSS_DOWN:
        return Side.SELL if prev >= mean > value else None
    if kind is K.DIVERGENCE:
        return _divergence(ctx)
    if kind is K.BREAKOUT:
        return Side.BUY if value > prev * 1.1 else None
    return None


def _volume(ctx: _Ctx) -> Optional[Side]:
    value, average = ctx.value, ctx.prev_value
    if value is None or average is None:
        return None
    kind = ctx.rule.kind
    if kind is K.HIGH_VOLUME:
        return Side.BUY if value > average * 1.5 else None
    if kind is K.LOW_VOLUME:
        return Side.SELL if value < average * 0.5 else None
    if kind is K.VOLUME_SPIKE:
        return Side.BUY if value > average * 2 else None
    if kind is K.DIVERGENCE:
        return _divergence(ctx)
    return None


def _ichimoku(ctx: _Ctx) -> Optional[Side]:
    now = ctx.snap.ichimoku
    if now is None:
        return None
    before = ctx.prev.ichimoku or now
    c, pc = ctx.candle, ctx.prev_candle
    kind = ctx.rule.kind
    if kind is K.DEFAULT:
        if c.close > now.cloud_top:
            return Side.BUY
        if c.close < now.cloud_bottom:
            return Side.SELL
        return None
    if kind is K.CLOUD_BREAKOUT:
        return Side.BUY if _crossed_up(pc.close, before.cloud_top, c.close, now.cloud_top) else None
    if kind is K.CLOUD_BREAKDOWN:
        return Side.SELL if _crossed_down(pc.close, before.cloud_bottom, c.close, now.cloud_bottom) else None
    if kind is K.LINE_CROSS_UP:
        return Side.BUY if now.tenkan_sen > now.kijun_sen else None
    if kind is K.LINE_CROSS_DOWN:
        return Side.SELL if now.tenkan_sen < now.kijun_sen else None
    if kind is K.CLOUD_ABOVE:
        return Side.BUY if c.close > now.cloud_top else None
    if kind is K.CLOUD_BELOW:
        return Side.SELL if c.close < now.cloud_bottom else None
    return None


FAMILY_RULES: Dict[str, Callable[[_Ctx], Optional[Side]]] = {
    'rsi': _oscillator,
    'stochastic': _oscillator,
    'williamsr': _oscillator,
    'williams': _oscillator,
    'cci': _oscillator,
    'macd': _macd,
    'sma': _moving_average,
    'ema': _moving_average,
    'wma': _moving_average,
    'hma': _moving_average,
    'hilo': _hilo,
    'adx': _adx,
    'atr': _atr,
    'parabolicsar': _parabolic,
    'parabolic': _parabolic,
    'obv': _obv,
    'volume': _volume,
    'ichimoku': _ichimoku,
    'ichimokucloud': _ichimoku,
}

# families without a built-in rule when no condition is configured
NO_DEFAULT_RULE = ('atr', 'obv', 'volume')


def _family_signal(ctx: _Ctx) -> Optional[Side]:
    family = ctx.bot.primary_name
    if ctx.rule.kind is K.NONE:
        return None
    if ctx.rule.kind is K.DEFAULT and family in NO_DEFAULT_RULE:
        return None
    if 'bollinger' in family:
        return _bollinger(ctx)
    rule = FAMILY_RULES.get(family)
    if rule is None:
        return None
    return rule(ctx)


# --- secondary line and moving-average crosses -----------------------------

def _secondary_signal(ctx: _Ctx) -> Optional[Side]:
    direction = ctx.rule.secondary
    if direction is None:
        return None
    now, before = ctx.snap, ctx.prev
    if now.secondary is not None and before.secondary is not None and now.primary is not None and before.primary is not None:
        if direction is Side.BUY and _crossed_up(before.primary, before.secondary, now.primary, now.secondary):
            return Side.BUY
        if direction is Side.SELL and _crossed_down(before.primary, before.secondary, now.primary, now.secondary):
            return Side.SELL
    if 'bollinger' in ctx.bot.primary_name and ctx.bot.secondary_name in ('sma', 'ema'):
        bb = now.bollinger
        if bb is None or bb.last_middle is None or now.secondary is None:
            return None
        middle = bb.last_middle
        c, pc = ctx.candle, ctx.prev_candle
        if direction is Side.BUY and pc.close <= middle < c.close and middle > now.secondary:
            return Side.BUY
        if direction is Side.SELL and pc.close >= middle > c.close and middle < now.secondary:
            return Side.SELL
    return None


def moving_average_cross(snap: IndicatorSnapshot, prev: IndicatorSnapshot, sides) -> Optional[Side]:
    """Golden/death cross between adjacent moving averages (sorted by period).

    Pairs are checked fastest first; the first cross matching ``sides`` wins.
    """
    if len(snap.moving_averages) < 2 or len(prev.moving_averages) < 2:
        return None
    for i in range(len(snap.moving_averages) - 1):
        fast = snap.moving_averages[i][1]
        slow = snap.moving_averages[i + 1][1]
        fast_prev = prev.moving_averages[i][1]
        slow_prev = prev.moving_averages[i + 1][1]
        if Side.BUY in sides and _crossed_up(fast_prev, slow_prev, fast, slow):
            return Side.BUY
        if Side.SELL in sides and _crossed_down(fast_prev, slow_prev, fast, slow):
            return Side.SELL
    return None


def snapshots(candles: List[Candle], bot: BotConfig):
    """Current and previous-window snapshots for ``candles``."""
    return build_snapshot(candles, bot), build_snapshot(candles[:-1], bot)


def evaluate_entry(bot: BotConfig, candles: List[Candle], open_positions: int) -> EntryDecision:
    """Entry decision for the newest candle of ``candles``."""
    if open_positions >= bot.max_open_positions:
        return EntryDecision()
    if len(candles) < 2 or bot.entry_rule is None:
        return EntryDecision()

    snap, prev = snapshots(candles, bot)
    if snap.confirmations:
        logger.info("[%s] confirmation indicators: %s", bot.name, snap.confirmations)

    if bot.ma_cross_entry:
        side = moving_average_cross(snap, prev, bot.ma_cross_entry)
        if side is not None:
            logger.info("[%s] moving-average cross -> %s", bot.name, side.value)
            return EntryDecision(True, side)

    ctx = _Ctx(bot, bot.entry_rule, candles, snap, prev)
    side = _family_signal(ctx)
    if side is None and bot.secondary_name:
        side = _secondary_signal(ctx)
    if side is None:
        return EntryDecision()
    return EntryDecision(True, side)


def evaluate_exit(bot: BotConfig, trade: Trade, candles: List[Candle], snap: IndicatorSnapshot = None,
                  prev: IndicatorSnapshot = None) -> bool:
    """Indicator-driven exit for one open trade (SL/TP are handled by the caller)."""
    if not bot.exit_condition or len(candles) < 2:
        return False
    if snap is None or prev is None:
        snap, prev = snapshots(candles, bot)

    if bot.moving_averages:
        if not bot.ma_cross_exit:
            return False
        side = moving_average_cross(snap, prev, bot.ma_cross_exit)
        return side is not None and side is trade.side.opposite

    if bot.primary_name == 'rsi':
        if snap.primary is None:
            return False
        if trade.side is Side.BUY:
            return snap.primary > (bot.exit_value or 70)
        return snap.primary < (bot.exit_value or 30)

    if bot.exit_rule is None:
        return False
    side = _family_signal(_Ctx(bot, bot.exit_rule, candles, snap, prev))
    return side is not None and side is trade.side.opposite
