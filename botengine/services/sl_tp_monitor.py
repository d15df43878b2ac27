import logging
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional

from botengine.config import settings
from botengine.models.candle_models import Candle
from botengine.models.trade_models import Trade
from botengine.services import metrics
from botengine.utils.orders_enum import CloseReason, Side

logger = logging.getLogger("sl_tp_monitor")


@dataclass
class MonitorStats:
    symbols_checked: int = 0
    trades_checked: int = 0
    trades_closed: int = 0
    symbols_skipped: int = 0


def touched_level(trade: Trade, price: Optional[float], candle: Optional[Candle]) -> Optional[CloseReason]:
    """
    Which fixed level the tick price or the candle range went through.
    Stop-loss wins when both are breached in the same pass.
    """
    lows = [v for v in (price, candle.low if candle else None) if v is not None]
    highs = [v for v in (price, candle.high if candle else None) if v is not None]
    if not lows:
        return None
    low, high = min(lows), max(highs)

    if trade.side == Side.BUY:
        if trade.stop_loss and low <= trade.stop_loss:
            return CloseReason.STOP_LOSS
        if trade.take_profit and high >= trade.take_profit:
            return CloseReason.TAKE_PROFIT
    else:
        if trade.stop_loss and high >= trade.stop_loss:
            return CloseReason.STOP_LOSS
        if trade.take_profit and low <= trade.take_profit:
            return CloseReason.TAKE_PROFIT
    return None


class SlTpMonitor:
    """Fast loop closing simulated trades whose SL/TP was traded through."""

    def __init__(self, db, market_data, trade_service, environment: str = "simulated"):
        self.db = db
        self.market_data = market_data
        self.trade_service = trade_service
        self.environment = environment

    async def _market(self, symbol: str):
        candles = await self.market_data.fetch_candles(symbol, settings.SL_TP_CANDLE_TIMEFRAME, 2)
        price = await self.market_data.fetch_latest_price(symbol)
        return price, candles[-1] if candles else None

    async def run_touch_monitor_cycle(self) -> MonitorStats:
        stats = MonitorStats()
        started = time.perf_counter()
        open_trades = await self.db.find_open_sl_tp_trades(self.environment)
        by_symbol: Dict[str, List[Trade]] = defaultdict(list)
        for trade in open_trades:
            by_symbol[trade.symbol].append(trade)

        for symbol, group in by_symbol.items():
            try:
                await self._check_symbol(symbol, group, stats)
            except Exception:
                logger.exception("Touch check failed for %s (%d trades)", symbol, len(group))

        metrics.cycles_counter.labels(job="touch_monitor").inc()
        metrics.cycle_latency.labels(job="touch_monitor").observe(time.perf_counter() - started)
        if stats.trades_closed:
            logger.info("Touch monitor closed %d of %d trades", stats.trades_closed, stats.trades_checked)
        return stats

    async def _check_symbol(self, symbol: str, group: List[Trade], stats: MonitorStats):
        price, candle = await self._market(symbol)
        if price is None and candle is None:
            logger.warning("No market data for %s, %d trades left for next pass", symbol, len(group))
            metrics.market_data_failures.labels(kind="touch").inc()
            stats.symbols_skipped += 1
            return
        stats.symbols_checked += 1
        for trade in group:
            stats.trades_checked += 1
            reason = touched_level(trade, price, candle)
            if reason is None:
                continue
            level = trade.stop_loss if reason is CloseReason.STOP_LOSS else trade.take_profit
            logger.info(
                "%s hit on trade %s (%s %s, bot %s): level=%.2f tick=%s",
                reason.value, trade.id, trade.side.value, symbol, trade.bot_id, level, price,
            )
            if await self.trade_service.close_trade(trade, level, reason):
                stats.trades_closed += 1
