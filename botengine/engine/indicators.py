"""
Indicator snapshot for one candle window.

The evaluator works on two snapshots: one for the full window and one for the
window without its newest candle ("previous"), so every transition rule
compares like with like.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from botengine.engine import bands, oscillators, trend, volume
from botengine.engine.moving_averages import ema, moving_average, sma
from botengine.engine.rsi import compute_rsi
from botengine.models.bot_models import BotConfig, IndicatorSpec
from botengine.models.candle_models import Candle, closes

logger = logging.getLogger("indicators")

LOOKBACK_BARS = {
    'rsi': 50,
    'macd': 100,
    'sma': 100,
    'ema': 100,
    'wma': 100,
    'hma': 100,
    'bollinger': 100,
    'ichimoku': 100,
    'hilo': 100,
    'stochastic': 50,
    'williams': 50,
    'cci': 100,
    'adx': 100,
    'atr': 50,
    'parabolic': 50,
    'obv': 100,
    'volume': 100,
}
DEFAULT_LOOKBACK = 100
SECONDARY_PERIOD = 50


def lookback_for(indicator_name: str) -> int:
    """Candles to fetch for an indicator (substring match on its name)."""
    name = (indicator_name or '').lower()
    for key, bars in LOOKBACK_BARS.items():
        if key in name:
            return bars
    return DEFAULT_LOOKBACK


@dataclass
class IndicatorSnapshot:
    primary: Optional[float] = None
    secondary: Optional[float] = None
    macd: Optional[oscillators.MacdValue] = None
    bollinger: Optional[bands.BandSeries] = None
    hilo: Optional[bands.BandSeries] = None
    stochastic: Optional[oscillators.StochasticValue] = None
    adx: Optional[trend.AdxValue] = None
    ichimoku: Optional[trend.IchimokuValue] = None
    moving_averages: List[Tuple[IndicatorSpec, float]] = field(default_factory=list)
    confirmations: Dict[str, object] = field(default_factory=dict)


def _primary_value(spec: IndicatorSpec, candles: List[Candle], prices: List[float], snap: IndicatorSnapshot) -> Optional[float]:
    name = spec.name
    period = spec.period
    if name == 'rsi':
        return compute_rsi(prices, period)
    if name == 'macd':
        snap.macd = oscillators.macd(prices)
        return snap.macd.macd
    if name in ('sma', 'ema', 'wma', 'hma'):
        return moving_average(name, prices, period)
    if 'bollinger' in name:
        snap.bollinger = bands.bollinger(candles, period, spec.param('stdDev', 2))
        return snap.bollinger.last_middle
    if name == 'hilo':
        snap.hilo = bands.hilo(candles, period, spec.param('multiplier', 2))
        return snap.hilo.last_middle
    if name == 'stochastic':
        snap.stochastic = oscillators.stochastic(candles, period, int(spec.param('dPeriod', 3)))
        return snap.stochastic.k
    if name in ('williamsr', 'williams'):
        return oscillators.williams_r(candles, period)
    if name == 'cci':
        return oscillators.cci(candles, period)
    if name == 'adx':
        snap.adx = trend.adx(candles, period)
        return snap.adx.adx
    if name == 'atr':
        return trend.atr(candles, period)
    if name in ('parabolicsar', 'parabolic'):
        return trend.parabolic_sar(candles, spec.param('acceleration', 0.02), spec.param('maximum', 0.2))
    if name == 'obv':
        return volume.obv(candles)
    if name == 'volume':
        return volume.volume_average(candles, period)
    if name in ('ichimoku', 'ichimokucloud'):
        snap.ichimoku = trend.ichimoku(candles)
        return snap.ichimoku.tenkan_sen
    return None


def _secondary_value(name: str, candles: List[Candle], prices: List[float], snap: IndicatorSnapshot) -> Optional[float]:
    if name == 'sma':
        return sma(prices, SECONDARY_PERIOD)
    if name == 'ema':
        return ema(prices, SECONDARY_PERIOD)
    if 'bollinger' in name:
        if snap.bollinger is None:
            snap.bollinger = bands.bollinger(candles, 20, 2)
        return snap.bollinger.last_middle
    return None


def _confirmation_value(spec: IndicatorSpec, prices: List[float]):
    if spec.name == 'rsi':
        return compute_rsi(prices, spec.period)
    if spec.name == 'sma':
        return sma(prices, spec.period)
    if spec.name == 'ema':
        return ema(prices, spec.period)
    if spec.name == 'macd':
        return oscillators.macd(prices)
    return None


def build_snapshot(candles: List[Candle], bot: BotConfig) -> IndicatorSnapshot:
    """Compute every indicator the bot references over ``candles``."""
    prices = closes(candles)
    snap = IndicatorSnapshot()
    if not candles:
        return snap
    if bot.primary is not None:
        snap.primary = _primary_value(bot.primary, candles, prices, snap)
    if bot.secondary_name:
        snap.secondary = _secondary_value(bot.secondary_name, candles, prices, snap)
    snap.moving_averages = [
        (spec, moving_average(spec.name, prices, spec.period)) for spec in bot.moving_averages
    ]
    for spec in bot.confirmations:
        value = _confirmation_value(spec, prices)
        if value is not None:
            snap.confirmations[spec.name] = value
    return snap
