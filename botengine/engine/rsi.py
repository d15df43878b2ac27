"""RSI calculation utilities.

Wilder-style RSI: the first average gain/loss is a plain mean over the first
``period`` changes, every later change is folded in with Wilder smoothing.
"""
from typing import List, Optional

NEUTRAL_RSI = 50.0


def compute_rsi(closes: List[float], period: int = 14) -> float:
    """Compute RSI for a list of closing prices (oldest first).

    Returns 50 when there are fewer than ``period + 1`` closes and 100 when
    the average loss is zero.
    """
    if period <= 0 or len(closes) < period + 1:
        return NEUTRAL_RSI
    gains = 0.0
    losses = 0.0
    for i in range(1, period + 1):
        change = closes[i] - closes[i - 1]
        if change > 0:
            gains += change
        else:
            losses -= change
    avg_gain = gains / period
    avg_loss = losses / period
    rsi = _rsi_from_averages(avg_gain, avg_loss)
    for i in range(period + 1, len(closes)):
        avg_gain, avg_loss, rsi = compute_rsi_wilder_stream(avg_gain, avg_loss, closes[i] - closes[i - 1], period)
    return rsi


def compute_rsi_series(closes: List[float], period: int = 14) -> Optional[List[float]]:
    """RSI value at every close from index ``period`` onwards."""
    if len(closes) < period + 1:
        return None
    return [compute_rsi(closes[:i + 1], period) for i in range(period, len(closes))]


def compute_rsi_wilder_stream(prev_avg_gain: float, prev_avg_loss: float, change: float, period: int):
    """Fold one price change into Wilder averages.

    Returns:
        tuple: (new_avg_gain, new_avg_loss, rsi_value)
    """
    gain = max(change, 0.0)
    loss = max(-change, 0.0)
    avg_gain = (prev_avg_gain * (period - 1) + gain) / period
    avg_loss = (prev_avg_loss * (period - 1) + loss) / period
    return avg_gain, avg_loss, _rsi_from_averages(avg_gain, avg_loss)


def _rsi_from_averages(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0
    return 100.0 - (100.0 / (1 + (avg_gain / avg_loss)))
