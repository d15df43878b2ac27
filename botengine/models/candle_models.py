"""
Market data models.
"""
from dataclasses import dataclass
from typing import List


@dataclass
class Candle:
	"""One OHLCV sample; windows are ordered oldest -> newest."""
	time: int  # open time, epoch milliseconds
	open: float
	high: float
	low: float
	close: float
	volume: float = 0.0


def closes(candles: List[Candle]) -> List[float]:
	return [c.close for c in candles]
