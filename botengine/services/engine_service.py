"""
Engine service: wires the trading loops to the scheduler.

Three recurring jobs: the entry/exit cycle, the statistics refresh and the
SL/TP touch monitor. The coarse jobs wait ``STARTUP_DELAY_SEC`` before their
first run; the touch monitor starts immediately.
"""
import logging
from dataclasses import asdict
from typing import Optional

from botengine.config import settings
from botengine.execution.simulator import TradeSimulator
from botengine.persistence.db import Database
from botengine.providers.market_data import BinanceMarketData
from botengine.services.bot_trade_service import BotTradeService, CycleStats
from botengine.services.notifier import Notifier
from botengine.services.risk_manager import RiskManager
from botengine.services.scheduler import Clock, Scheduler, SystemClock
from botengine.services.sl_tp_monitor import MonitorStats, SlTpMonitor
from botengine.services.statistics import StatisticsService

logger = logging.getLogger("engine")

ENTRY_EXIT_JOB = "entry_exit"
STATISTICS_JOB = "statistics"
TOUCH_MONITOR_JOB = "touch_monitor"


class EngineService:
    def __init__(self, db: Optional[Database] = None, market_data=None, clock: Optional[Clock] = None,
                 notifier: Optional[Notifier] = None):
        self.db = db or Database(settings.DATABASE_URL, wallet_type=settings.WALLET_TYPE)
        self.market_data = market_data or BinanceMarketData(settings.MARKET_DATA_BASE_URL, settings.MARKET_DATA_TIMEOUT_SEC)
        self.clock = clock or SystemClock()
        self.notifier = notifier or Notifier(settings.NOTIFIER_WEBHOOK)

        self.risk_manager = RiskManager(
            minimum_balance=settings.MINIMUM_BALANCE,
            default_fixed_amount=settings.DEFAULT_FIXED_AMOUNT,
            default_percentage=settings.DEFAULT_PERCENTAGE,
            fallback_required=settings.FALLBACK_REQUIRED_AMOUNT,
            min_quantity=settings.MIN_QUANTITY,
            schedule_timezone=settings.SCHEDULE_TIMEZONE,
        )
        self.simulator = TradeSimulator(settings.QUOTE_ASSET)
        self.statistics = StatisticsService(self.db, self.market_data, settings.INITIAL_BALANCE)
        self.trade_service = BotTradeService(
            self.db, self.market_data, self.risk_manager, self.statistics,
            self.simulator, self.clock, self.notifier,
        )
        self.monitor = SlTpMonitor(self.db, self.market_data, self.trade_service)

        self.scheduler = Scheduler(self.clock, settings.SCHEDULER_TICK_SEC)
        self.scheduler.add_job(ENTRY_EXIT_JOB, settings.ENTRY_EXIT_INTERVAL_SEC,
                               self.run_entry_exit_cycle, first_delay=settings.STARTUP_DELAY_SEC)
        self.scheduler.add_job(STATISTICS_JOB, settings.STATISTICS_INTERVAL_SEC,
                               self.update_all_bots_statistics, first_delay=settings.STARTUP_DELAY_SEC)
        self.scheduler.add_job(TOUCH_MONITOR_JOB, settings.SL_TP_INTERVAL_SEC, self.run_touch_monitor_cycle)
        self._running = False
        self.last_cycle: Optional[CycleStats] = None
        self.last_monitor: Optional[MonitorStats] = None

    async def start(self):
        """Start the engine loops."""
        if self._running:
            return
        if not self.db.connected:
            await self.db.connect()
        await self.scheduler.start()
        self._running = True
        logger.info("Engine started")

    async def stop(self):
        """Stop the loops and release clients."""
        if not self._running:
            if self.db.connected:
                await self.db.disconnect()
            return
        self._running = False
        await self.scheduler.stop()
        await self.notifier.close()
        await self.market_data.close()
        await self.db.disconnect()
        logger.info("Engine stopped")

    async def _ensure_db(self):
        if not self.db.connected:
            await self.db.connect()

    async def run_entry_exit_cycle(self) -> CycleStats:
        await self._ensure_db()
        self.last_cycle = await self.trade_service.run_entry_exit_cycle()
        logger.info(
            "Entry/exit cycle: %d bots, %d opened, %d closed, %d deactivated, %d errors",
            self.last_cycle.bots_processed, self.last_cycle.trades_opened, self.last_cycle.trades_closed,
            self.last_cycle.bots_deactivated, len(self.last_cycle.errors),
        )
        return self.last_cycle

    async def run_touch_monitor_cycle(self) -> MonitorStats:
        await self._ensure_db()
        self.last_monitor = await self.monitor.run_touch_monitor_cycle()
        return self.last_monitor

    async def recompute_statistics(self, bot_id: str):
        await self._ensure_db()
        return await self.statistics.recompute_statistics(bot_id)

    async def update_all_bots_statistics(self) -> int:
        await self._ensure_db()
        done = await self.statistics.update_all_bots_statistics()
        logger.info("Statistics refreshed for %d bots", done)
        return done

    def status(self):
        return {
            "running": self._running,
            "db_connected": self.db.connected,
            "jobs": [asdict(j) for j in self.scheduler.status()],
            "last_cycle": asdict(self.last_cycle) if self.last_cycle else None,
            "last_monitor": asdict(self.last_monitor) if self.last_monitor else None,
        }
