import logging
from typing import List, Optional

import httpx
import pandas as pd

from botengine.errors import MarketDataError
from botengine.models.candle_models import Candle
from botengine.utils.time_utils import TIMEFRAME_MINUTES

logger = logging.getLogger("market_data")

KLINE_COLUMNS = ["time", "open", "high", "low", "close", "volume"]


class BinanceMarketData:
    """Public Binance REST klines/ticker client.

    Never raises into callers: failures are logged and surface as ``[]`` or
    ``None`` so the current cycle simply skips the symbol.
    """

    def __init__(self, base_url: str = "https://api.binance.com", timeout: float = 10.0, client: httpx.AsyncClient = None):
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def close(self):
        await self.client.aclose()

    @staticmethod
    def _interval(timeframe: str) -> str:
        return timeframe if timeframe in TIMEFRAME_MINUTES else "1h"

    async def _get(self, path: str, params: dict):
        try:
            resp = await self.client.get(path, params=params)
            resp.raise_for_status()
            return resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise MarketDataError(f"{path} {params}: {e}") from e

    @staticmethod
    def parse_klines(rows) -> List[Candle]:
        """Binance kline arrays -> candles, oldest first; malformed rows dropped."""
        if not rows:
            return []
        df = pd.DataFrame([r[:6] for r in rows], columns=KLINE_COLUMNS)
        df = df.apply(pd.to_numeric, errors="coerce").dropna()
        df = df.sort_values("time")
        return [
            Candle(int(r.time), float(r.open), float(r.high), float(r.low), float(r.close), float(r.volume))
            for r in df.itertuples(index=False)
        ]

    async def fetch_candles(self, symbol: str, timeframe: str, limit: int) -> List[Candle]:
        try:
            rows = await self._get("/api/v3/klines", {
                "symbol": symbol,
                "interval": self._interval(timeframe),
                "limit": limit,
            })
            return self.parse_klines(rows)
        except MarketDataError as e:
            logger.warning(f"Failed to fetch candles for {symbol} {timeframe}: {e}")
            return []

    async def fetch_latest_price(self, symbol: str) -> Optional[float]:
        try:
            data = await self._get("/api/v3/ticker/price", {"symbol": symbol})
            return float(data["price"])
        except (MarketDataError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Failed to fetch latest price for {symbol}: {e}")
            return None
