from typing import List

from botengine.models.candle_models import Candle


def obv(candles: List[Candle]) -> float:
    """On-balance volume accumulated across the whole window."""
    total = 0.0
    for prev, cur in zip(candles, candles[1:]):
        if cur.close > prev.close:
            total += cur.volume or 0.0
        elif cur.close < prev.close:
            total -= cur.volume or 0.0
    return total


def volume_average(candles: List[Candle], period: int = 20) -> float:
    # zero/missing volumes are ignored
    volumes = [c.volume for c in candles[-period:] if c.volume and c.volume > 0]
    if not volumes:
        return 0.0
    return sum(volumes) / len(volumes)
