"""Moving averages over a close series (oldest -> newest).

Every function tolerates a short series: SMA/EMA fall back to the mean of
what is available, WMA weights whatever is there, HMA drops to a half-period
WMA. An empty series yields 0.
"""
import math
from typing import List


def ema_step(price: float, prev_ema: float, period: int) -> float:
    alpha = 2.0 / (period + 1)
    return alpha * price + (1 - alpha) * prev_ema


def sma(prices: List[float], period: int) -> float:
    if not prices:
        return 0.0
    window = prices[-period:] if len(prices) >= period else prices
    return sum(window) / len(window)


def ema(prices: List[float], period: int) -> float:
    """EMA seeded with the SMA of the first ``period`` values."""
    if not prices:
        return 0.0
    if len(prices) < period:
        return sum(prices) / len(prices)
    value = sum(prices[:period]) / period
    for price in prices[period:]:
        value = ema_step(price, value, period)
    return value


def wma(prices: List[float], period: int) -> float:
    """Linearly weighted average; the newest value carries the largest weight."""
    if not prices or period <= 0:
        return 0.0
    window = prices[-period:]
    weighted = 0.0
    weights = 0
    for i, price in enumerate(window, start=1):
        weighted += price * i
        weights += i
    return weighted / weights


def hma(prices: List[float], period: int) -> float:
    """Hull moving average: WMA over sqrt(n) of 2*WMA(n/2) - WMA(n)."""
    if not prices:
        return 0.0
    half = max(1, period // 2)
    if len(prices) < period * 2:
        return wma(prices, half)
    root = max(1, int(math.sqrt(period)))
    raw = []
    for end in range(len(prices) - root + 1, len(prices) + 1):
        window = prices[:end]
        raw.append(2 * wma(window, half) - wma(window, period))
    return wma(raw, root)


MOVING_AVERAGE_FUNCS = {
    'sma': sma,
    'ema': ema,
    'wma': wma,
    'hma': hma,
}


def moving_average(name: str, prices: List[float], period: int) -> float:
    return MOVING_AVERAGE_FUNCS[name](prices, period)
