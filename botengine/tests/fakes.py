"""Shared test doubles: in-memory market data and bot/candle builders."""
from typing import Dict, List, Optional

from botengine.models.candle_models import Candle

MINUTE_MS = 60_000


def candles_from_closes(closes: List[float], spread: float = 0.5, volume: float = 100.0) -> List[Candle]:
    out = []
    prev = closes[0]
    for i, close in enumerate(closes):
        high = max(prev, close) + spread
        low = min(prev, close) - spread
        out.append(Candle(i * MINUTE_MS, prev, high, low, close, volume))
        prev = close
    return out


class FakeMarketData:
    def __init__(self, candles: Optional[Dict[str, List[Candle]]] = None, prices: Optional[Dict[str, float]] = None):
        self.candles = candles or {}
        self.prices = prices or {}
        self.candle_calls = []
        self.price_calls = []

    async def fetch_candles(self, symbol: str, timeframe: str, limit: int) -> List[Candle]:
        self.candle_calls.append((symbol, timeframe, limit))
        return list(self.candles.get(symbol, []))[-limit:]

    async def fetch_latest_price(self, symbol: str) -> Optional[float]:
        self.price_calls.append(symbol)
        return self.prices.get(symbol)

    async def close(self):
        pass


def bot_row(**overrides) -> dict:
    row = {
        'id': 'bot-1',
        'user_id': 'user-1',
        'name': 'test bot',
        'symbol': 'BTCUSDT',
        'timeframe': '1h',
        'primary_indicator': 'rsi',
        'primary_period': 14,
        'entry_condition': 'oversold',
        'entry_value': 30.0,
        'position_sizing_type': 'fixed',
        'position_sizing_value': 100.0,
        'max_open_positions': 1,
        'stop_loss_enabled': True,
        'stop_loss_type': 'fixed',
        'stop_loss_value': 2.0,
        'take_profit_enabled': True,
        'take_profit_type': 'fixed',
        'take_profit_value': 4.0,
        'operation_mode': 'continuous',
        'is_active': True,
    }
    row.update(overrides)
    return row
