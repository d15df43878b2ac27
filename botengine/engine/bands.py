"""Price envelopes: Bollinger Bands and the HILO channel.

Both return full series aligned with the input window; the first
``period - 1`` entries are None. A window shorter than ``period`` shrinks the
effective period to the window length.
"""
import math
from dataclasses import dataclass
from typing import List, Optional

from botengine.models.candle_models import Candle


@dataclass
class BandSeries:
    upper: List[Optional[float]]
    lower: List[Optional[float]]
    middle: Optional[List[Optional[float]]] = None

    @property
    def last_upper(self) -> Optional[float]:
        return self.upper[-1] if self.upper else None

    @property
    def last_lower(self) -> Optional[float]:
        return self.lower[-1] if self.lower else None

    @property
    def last_middle(self) -> Optional[float]:
        if self.middle:
            return self.middle[-1]
        if self.last_upper is None or self.last_lower is None:
            return None
        return (self.last_upper + self.last_lower) / 2


def bollinger(candles: List[Candle], period: int = 20, std_dev: float = 2) -> BandSeries:
    prices = [c.close for c in candles]
    period = max(1, min(period, len(prices)))
    upper, middle, lower = [], [], []
    for i in range(len(prices)):
        if i < period - 1:
            upper.append(None)
            middle.append(None)
            lower.append(None)
            continue
        window = prices[i - period + 1:i + 1]
        mean = sum(window) / period
        sd = math.sqrt(sum((p - mean) ** 2 for p in window) / period)
        middle.append(mean)
        upper.append(mean + std_dev * sd)
        lower.append(mean - std_dev * sd)
    return BandSeries(upper=upper, lower=lower, middle=middle)


def hilo(candles: List[Candle], period: int = 20, multiplier: float = 2) -> BandSeries:
    """Channel around the rolling high/low, widened by ``multiplier * range``."""
    period = max(1, min(period, len(candles)))
    upper, lower = [], []
    for i in range(len(candles)):
        if i < period - 1:
            upper.append(None)
            lower.append(None)
            continue
        window = candles[i - period + 1:i + 1]
        highest = max(c.high for c in window)
        lowest = min(c.low for c in window)
        spread = highest - lowest
        upper.append(highest + spread * multiplier)
        lower.append(lowest - spread * multiplier)
    return BandSeries(upper=upper, lower=lower)
