"""
Entry/exit cycle over all active bots.

Per bot, in order: reference candle, exits for open trades, balance guard,
schedule guard, open-position cap, anti-spam guard, entry. A failure in one
bot is logged and never stops the cycle.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional

from botengine.config import settings
from botengine.engine.indicators import lookback_for
from botengine.engine.signal_evaluator import evaluate_entry, evaluate_exit, snapshots
from botengine.errors import InvalidBotConfig
from botengine.execution.simulator import TradeSimulator
from botengine.models.bot_models import BotConfig, load_bot
from botengine.models.candle_models import Candle
from botengine.models.trade_models import Trade
from botengine.services import metrics
from botengine.services.risk_manager import RiskManager
from botengine.services.statistics import StatisticsService
from botengine.utils.orders_enum import CloseReason, ExecutionMode, Side, TradeStatus
from botengine.utils.time_utils import timeframe_minutes

logger = logging.getLogger("bot_trade")


@dataclass
class CycleStats:
    bots_processed: int = 0
    trades_opened: int = 0
    trades_closed: int = 0
    bots_deactivated: int = 0
    errors: List[str] = field(default_factory=list)


class BotTradeService:
    def __init__(self, db, market_data, risk_manager: RiskManager, statistics: StatisticsService,
                 simulator: TradeSimulator, clock, notifier=None):
        self.db = db
        self.market_data = market_data
        self.risk = risk_manager
        self.statistics = statistics
        self.simulator = simulator
        self.clock = clock
        self.notifier = notifier

    async def run_entry_exit_cycle(self) -> CycleStats:
        stats = CycleStats()
        started = time.perf_counter()
        rows = await self.db.find_active_bots()
        if not rows:
            logger.info("No active bots")
        for row in rows:
            try:
                bot = load_bot(row)
                await self.process_bot(bot, stats)
                stats.bots_processed += 1
            except InvalidBotConfig as e:
                logger.warning(f"Skipping bot: {e}")
                stats.errors.append(str(e))
            except Exception as e:
                logger.exception("Error processing bot %s (%s)", row.get('id'), row.get('symbol'))
                stats.errors.append(f"{row.get('id')}: {e}")
        metrics.cycles_counter.labels(job="entry_exit").inc()
        metrics.cycle_latency.labels(job="entry_exit").observe(time.perf_counter() - started)
        return stats

    async def _quote_balance(self, user_id: str) -> float:
        wallet = await self.db.get_wallet(user_id, self.simulator.quote_asset)
        return wallet.balance if wallet else 0.0

    async def _deactivate(self, bot: BotConfig, balance: float, required: float, stats: CycleStats):
        logger.warning(
            "[%s] insufficient balance %.2f %s (required %.2f), deactivating bot %s",
            bot.name, balance, self.simulator.quote_asset, required, bot.id,
        )
        await self.db.set_bot_active(bot.id, False)
        metrics.bots_deactivated_counter.inc()
        stats.bots_deactivated += 1

    async def _balance_allows_entry(self, bot: BotConfig, open_count: int, stats: CycleStats) -> bool:
        """Balance guard for new entries.

        A bot still holding positions is not deactivated, so its exits keep
        being evaluated on later ticks; it only skips the entry.
        """
        balance = await self._quote_balance(bot.user_id)
        check = self.risk.check_balance(bot, balance)
        if check.ok:
            return True
        if open_count:
            logger.info(
                "[%s] balance %.2f %s below %.2f with %d open position(s), skipping entry",
                bot.name, check.balance, self.simulator.quote_asset, check.required, open_count,
            )
            return False
        await self._deactivate(bot, check.balance, check.required, stats)
        return False

    async def process_bot(self, bot: BotConfig, stats: CycleStats):
        reference = await self.market_data.fetch_candles(bot.symbol, bot.timeframe, 1)
        if not reference or reference[-1].close <= 0:
            logger.warning("[%s] no reference candle for %s %s, skipping this tick", bot.name, bot.symbol, bot.timeframe)
            metrics.market_data_failures.labels(kind="reference").inc()
            return

        open_trades = await self.db.find_open_trades(bot.id)
        if open_trades:
            stats.trades_closed += await self.check_exits(bot, open_trades)

        open_count = await self.db.count_open_trades(bot.id)
        if not await self._balance_allows_entry(bot, open_count, stats):
            return

        if not self.risk.within_schedule(bot, self.clock.now()):
            await self.statistics.recompute_statistics(bot.id)
            return

        if open_count >= bot.max_open_positions:
            logger.info("[%s] %d open position(s), max %d", bot.name, open_count, bot.max_open_positions)
            await self.statistics.recompute_statistics(bot.id)
            return

        window = settings.RECENT_TRADE_WINDOW_FAST_SEC if timeframe_minutes(bot.timeframe) <= 1 else settings.RECENT_TRADE_WINDOW_SEC
        since = self.clock.now() - timedelta(seconds=window)
        if await self.db.count_recent_trades(bot.id, since) > 0:
            logger.info("[%s] traded within the last %ds, skipping entry", bot.name, window)
            return

        if await self.check_entry(bot, open_count, stats):
            stats.trades_opened += 1

    async def _execution_price(self, bot: BotConfig, mode: str, candle: Candle) -> float:
        if mode == ExecutionMode.PRICE_CONDITION.value:
            live = await self.market_data.fetch_latest_price(bot.symbol)
            if live is not None:
                return live
            logger.warning("[%s] no live price for %s, using candle close", bot.name, bot.symbol)
        return candle.close

    async def check_entry(self, bot: BotConfig, open_count: int, stats: CycleStats) -> Optional[Trade]:
        candles = await self.market_data.fetch_candles(bot.symbol, bot.timeframe, lookback_for(bot.primary_name))
        if len(candles) < 2:
            logger.warning("[%s] not enough candles for %s %s", bot.name, bot.symbol, bot.timeframe)
            metrics.market_data_failures.labels(kind="entry").inc()
            return None

        decision = evaluate_entry(bot, candles, open_count)
        logger.info(
            "[%s] %s %s close=%.2f condition=%r -> %s",
            bot.name, bot.symbol, bot.primary_name, candles[-1].close,
            bot.entry_condition or 'default', decision.side.value if decision.should_trade else 'no signal',
        )
        if not decision.should_trade:
            return None

        price = await self._execution_price(bot, bot.entry_execution_mode, candles[-1])
        if not await self._balance_allows_entry(bot, open_count, stats):
            return None
        balance = await self._quote_balance(bot.user_id)

        quantity = self.risk.calc_size(bot, price, balance)
        if quantity <= 0:
            logger.warning("[%s] invalid quantity %s", bot.name, quantity)
            return None

        stop_loss, take_profit = self.risk.levels(bot, price, decision.side)
        trade = Trade(
            id="",
            user_id=bot.user_id,
            symbol=bot.symbol,
            side=decision.side,
            quantity=quantity,
            price=price,
            total=quantity * price,
            status=TradeStatus.OPEN,
            entry_time=self.clock.now(),
            bot_id=bot.id,
            bot_name=bot.name,
            type=bot.entry_type,
            environment='real' if bot.environment == 'real' else 'simulated',
            stop_loss=stop_loss,
            take_profit=take_profit,
        )
        legs = self.simulator.open_legs(trade.symbol, trade.side, trade.quantity, trade.price)
        await self.db.open_trade(trade, legs)
        metrics.trades_opened_counter.labels(side=trade.side.value).inc()
        logger.info(
            "[%s] opened %s %.6f %s @ %.2f (SL=%s TP=%s) trade %s",
            bot.name, trade.side.value, trade.quantity, trade.symbol, trade.price,
            f"{stop_loss:.2f}" if stop_loss else "-", f"{take_profit:.2f}" if take_profit else "-", trade.id,
        )
        if self.notifier:
            await self.notifier.notify_opened(trade)
        await self.statistics.recompute_statistics(bot.id)
        return trade

    @staticmethod
    def _level_hit(trade: Trade, candle: Candle) -> Optional[CloseReason]:
        """SL before TP, against the candle's extremes."""
        if trade.stop_loss:
            if trade.side == Side.BUY and candle.low <= trade.stop_loss:
                return CloseReason.STOP_LOSS
            if trade.side == Side.SELL and candle.high >= trade.stop_loss:
                return CloseReason.STOP_LOSS
        if trade.take_profit:
            if trade.side == Side.BUY and candle.high >= trade.take_profit:
                return CloseReason.TAKE_PROFIT
            if trade.side == Side.SELL and candle.low <= trade.take_profit:
                return CloseReason.TAKE_PROFIT
        return None

    async def check_exits(self, bot: BotConfig, open_trades: List[Trade]) -> int:
        """Close whatever open trades hit SL/TP or the exit rule; returns how many closed."""
        candles = await self.market_data.fetch_candles(bot.symbol, bot.timeframe, settings.EXIT_LOOKBACK_BARS)
        if len(candles) < 2:
            metrics.market_data_failures.labels(kind="exit").inc()
            return 0
        latest = candles[-1]
        snap, prev = snapshots(candles, bot)
        closed = 0
        for trade in open_trades:
            reason = self._level_hit(trade, latest)
            if reason is None and evaluate_exit(bot, trade, candles, snap, prev):
                reason = CloseReason.EXIT_CONDITION
            if reason is None:
                continue
            if reason is CloseReason.STOP_LOSS:
                exit_price = trade.stop_loss
            elif reason is CloseReason.TAKE_PROFIT:
                exit_price = trade.take_profit
            else:
                exit_price = await self._execution_price(bot, bot.exit_execution_mode, latest)
            if await self.close_trade(trade, exit_price, reason):
                closed += 1
        return closed

    async def close_trade(self, trade: Trade, exit_price: float, reason: CloseReason) -> bool:
        """Guarded close shared with the touch monitor; False when the race was lost."""
        fill = self.simulator.close_fill(trade, exit_price, reason, self.clock.now())
        legs = self.simulator.close_legs(trade, exit_price)
        if not await self.db.close_trade(trade, fill, legs):
            return False
        trade.status = TradeStatus.CLOSED
        trade.exit_price = fill.exit_price
        trade.exit_time = fill.exit_time
        trade.pnl = fill.pnl
        trade.pnl_percent = fill.pnl_percent
        trade.notes = fill.notes
        metrics.trades_closed_counter.labels(reason=reason.value).inc()
        logger.info(
            "Closed trade %s (%s %s) reason=%s exit=%.2f pnl=%.2f (%.2f%%)",
            trade.id, trade.symbol, trade.side.value, reason.value, fill.exit_price, fill.pnl, fill.pnl_percent,
        )
        if self.notifier:
            await self.notifier.notify_closed(trade)
        if trade.bot_id:
            await self.statistics.recompute_statistics(trade.bot_id)
        return True
