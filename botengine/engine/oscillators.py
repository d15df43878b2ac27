"""Bounded oscillators and MACD."""
from dataclasses import dataclass
from typing import List

from botengine.engine.moving_averages import ema
from botengine.models.candle_models import Candle


@dataclass(frozen=True)
class MacdValue:
    macd: float
    signal: float
    histogram: float


@dataclass(frozen=True)
class StochasticValue:
    k: float
    d: float


def macd(prices: List[float], fast: int = 12, slow: int = 26) -> MacdValue:
    """EMA(12) - EMA(26); the signal line is approximated as ``macd * 0.9``."""
    if len(prices) < slow:
        return MacdValue(0.0, 0.0, 0.0)
    line = ema(prices, fast) - ema(prices, slow)
    signal = line * 0.9
    return MacdValue(line, signal, line - signal)


def _percent_k(window: List[Candle]) -> float:
    highest = max(c.high for c in window)
    lowest = min(c.low for c in window)
    if highest == lowest:
        return 50.0
    return (window[-1].close - lowest) / (highest - lowest) * 100


def stochastic(candles: List[Candle], k_period: int = 14, d_period: int = 3) -> StochasticValue:
    """%K over the latest window and %D as the mean of the last ``d_period`` %K values.

    Too little history or a flat latest window reads 50/50.
    """
    if len(candles) < k_period:
        return StochasticValue(50.0, 50.0)
    window = candles[-k_period:]
    if max(c.high for c in window) == min(c.low for c in window):
        return StochasticValue(50.0, 50.0)
    k = _percent_k(window)
    d = k
    if len(candles) >= k_period + d_period - 1:
        ks = [
            _percent_k(candles[i - k_period + 1:i + 1])
            for i in range(len(candles) - d_period, len(candles))
        ]
        d = sum(ks) / len(ks)
    return StochasticValue(k, d)


def williams_r(candles: List[Candle], period: int = 14) -> float:
    if len(candles) < period:
        return -50.0
    window = candles[-period:]
    highest = max(c.high for c in window)
    lowest = min(c.low for c in window)
    if highest == lowest:
        return -50.0
    return (highest - candles[-1].close) / (highest - lowest) * -100


def cci(candles: List[Candle], period: int = 20) -> float:
    """Commodity channel index over typical prices."""
    if len(candles) < period:
        return 0.0
    typical = [(c.high + c.low + c.close) / 3 for c in candles[-period:]]
    mean = sum(typical) / period
    mean_dev = sum(abs(tp - mean) for tp in typical) / period
    if mean_dev == 0:
        return 0.0
    return (typical[-1] - mean) / (0.015 * mean_dev)
