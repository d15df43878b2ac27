"""Trend and volatility indicators over OHLC candles."""
from dataclasses import dataclass
from typing import List, Tuple

from botengine.models.candle_models import Candle


@dataclass(frozen=True)
class AdxValue:
    adx: float
    plus_di: float
    minus_di: float


@dataclass(frozen=True)
class IchimokuValue:
    tenkan_sen: float
    kijun_sen: float
    senkou_span_a: float
    senkou_span_b: float
    chikou_span: float

    @property
    def cloud_top(self) -> float:
        return max(self.senkou_span_a, self.senkou_span_b)

    @property
    def cloud_bottom(self) -> float:
        return min(self.senkou_span_a, self.senkou_span_b)


def true_ranges(candles: List[Candle]) -> List[float]:
    out = []
    for prev, cur in zip(candles, candles[1:]):
        out.append(max(cur.high - cur.low, abs(cur.high - prev.close), abs(cur.low - prev.close)))
    return out


def _directional_moves(candles: List[Candle]) -> Tuple[List[float], List[float]]:
    plus, minus = [], []
    for prev, cur in zip(candles, candles[1:]):
        up = cur.high - prev.high
        down = prev.low - cur.low
        plus.append(max(up, 0.0) if up > down else 0.0)
        minus.append(max(down, 0.0) if down > up else 0.0)
    return plus, minus


def _wilder(prev: float, value: float, period: int) -> float:
    return (prev * (period - 1) + value) / period


def atr(candles: List[Candle], period: int = 14) -> float:
    """Wilder-smoothed average true range; 0 when history is too short."""
    if len(candles) < period + 1:
        return 0.0
    trs = true_ranges(candles)
    value = sum(trs[:period]) / period
    for tr in trs[period:]:
        value = _wilder(value, tr, period)
    return value


def adx(candles: List[Candle], period: int = 14) -> AdxValue:
    """ADX with +DI/-DI.

    DX values are Wilder-averaged into ADX once ``period`` of them exist;
    before that the latest DX is reported.
    """
    if len(candles) < period + 1:
        return AdxValue(25.0, 25.0, 25.0)
    trs = true_ranges(candles)
    plus_dm, minus_dm = _directional_moves(candles)

    tr_s = sum(trs[:period]) / period
    plus_s = sum(plus_dm[:period]) / period
    minus_s = sum(minus_dm[:period]) / period

    def _di_dx():
        p = plus_s / tr_s * 100 if tr_s else 0.0
        m = minus_s / tr_s * 100 if tr_s else 0.0
        dx = abs(p - m) / (p + m) * 100 if (p + m) else 0.0
        return p, m, dx

    plus_di, minus_di, dx = _di_dx()
    dxs = [dx]
    for i in range(period, len(trs)):
        tr_s = _wilder(tr_s, trs[i], period)
        plus_s = _wilder(plus_s, plus_dm[i], period)
        minus_s = _wilder(minus_s, minus_dm[i], period)
        plus_di, minus_di, dx = _di_dx()
        dxs.append(dx)

    if len(dxs) >= period:
        value = sum(dxs[:period]) / period
        for dx in dxs[period:]:
            value = _wilder(value, dx, period)
    else:
        value = dxs[-1]
    return AdxValue(value, plus_di, minus_di)


def parabolic_sar(candles: List[Candle], acceleration: float = 0.02, maximum: float = 0.2) -> float:
    """Iterative SAR starting in an uptrend; flips when price breaches it."""
    if not candles:
        return 0.0
    if len(candles) < 2:
        return candles[0].close
    sar = candles[0].low
    ep = candles[0].high
    af = acceleration
    rising = True
    for prev, cur in zip(candles, candles[1:]):
        if rising:
            if cur.low < sar:
                rising = False
                sar, ep, af = ep, cur.low, acceleration
                continue
            if cur.high > ep:
                ep = cur.high
                af = min(af + acceleration, maximum)
            sar = min(sar + af * (ep - sar), prev.low, cur.low)
        else:
            if cur.high > sar:
                rising = True
                sar, ep, af = ep, cur.high, acceleration
                continue
            if cur.low < ep:
                ep = cur.low
                af = min(af + acceleration, maximum)
            sar = max(sar + af * (ep - sar), prev.high, cur.high)
    return sar


def _midpoint(window: List[Candle]) -> float:
    return (max(c.high for c in window) + min(c.low for c in window)) / 2


def ichimoku(candles: List[Candle], tenkan: int = 9, kijun: int = 26, senkou_b: int = 52) -> IchimokuValue:
    """Ichimoku lines over the latest candles; short windows use what exists."""
    if not candles:
        return IchimokuValue(0.0, 0.0, 0.0, 0.0, 0.0)
    tenkan_sen = _midpoint(candles[-tenkan:])
    kijun_sen = _midpoint(candles[-kijun:])
    span_a = (tenkan_sen + kijun_sen) / 2
    span_b = _midpoint(candles[-senkou_b:])
    chikou = candles[-kijun].close if len(candles) >= kijun else candles[0].close
    return IchimokuValue(tenkan_sen, kijun_sen, span_a, span_b, chikou)
