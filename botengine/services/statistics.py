"""
Bot performance statistics.

Everything here is derived from the bot's full trade history; nothing is
accumulated incrementally, so recomputing twice without a trade change
yields the same snapshot.
"""
import logging
import math
from typing import Dict, List, Optional

import pandas as pd

from botengine.execution.simulator import round2
from botengine.models.bot_models import BotStatistics
from botengine.models.trade_models import Trade
from botengine.utils.orders_enum import Side, TradeStatus

logger = logging.getLogger("statistics")

NOISE_FLOOR = 0.01


def _snap(value: float) -> float:
    return 0.0 if abs(value) < NOISE_FLOOR else round2(value)


def _streaks(pnls: List[float]):
    """(longest win run, longest loss run, current signed streak)."""
    longest_wins = longest_losses = wins = losses = 0
    for pnl in pnls:
        if pnl > 0:
            wins += 1
            losses = 0
            longest_wins = max(longest_wins, wins)
        elif pnl < 0:
            losses += 1
            wins = 0
            longest_losses = max(longest_losses, losses)
    current = 0
    for pnl in reversed(pnls):
        if pnl > 0 and current >= 0:
            current += 1
        elif pnl < 0 and current <= 0:
            current -= 1
        else:
            break
    return longest_wins, longest_losses, current


def max_drawdown(pnls: List[float], initial_balance: float) -> float:
    """Largest peak-to-trough fall (percent) of the equity curve seeded at ``initial_balance``."""
    if not pnls:
        return 0.0
    equity = initial_balance + pd.Series(pnls, dtype=float).cumsum()
    peak = equity.cummax().clip(lower=initial_balance)
    drawdown = ((peak - equity) / peak * 100).where(peak > NOISE_FLOOR, 0.0)
    return round2(float(drawdown.clip(lower=0, upper=100).max()))


def sharpe_ratio(returns: List[float]) -> float:
    """mean / population std of per-trade percent returns."""
    if not returns:
        return 0.0
    series = pd.Series(returns, dtype=float)
    std = float(series.std(ddof=0))
    if std == 0 or math.isnan(std):
        return 0.0
    return round2(float(series.mean()) / std)


def unrealized_pnl(open_trades: List[Trade], mark_prices: Dict[str, Optional[float]]) -> float:
    total = 0.0
    for trade in open_trades:
        mark = mark_prices.get(trade.symbol)
        if mark is None:
            continue
        direction = 1 if trade.side == Side.BUY else -1
        total += (mark - trade.price) * trade.quantity * direction
    return total


def compute_statistics(trades: List[Trade], mark_prices: Dict[str, Optional[float]] = None,
                       initial_balance: float = 10000.0) -> BotStatistics:
    mark_prices = mark_prices or {}
    closed = [t for t in trades if t.status == TradeStatus.CLOSED and t.pnl is not None]
    closed.sort(key=lambda t: (t.exit_time or t.entry_time, t.entry_time))
    open_trades = [t for t in trades if t.status == TradeStatus.OPEN]

    pnls = [t.pnl for t in closed]
    wins = [p for p in pnls if p > 0]
    losses = [p for p in pnls if p < 0]
    total_profit = round2(sum(wins))
    total_loss = round2(abs(sum(losses)))

    if total_loss > 0:
        profit_factor = round2(total_profit / total_loss)
    else:
        profit_factor = 100.0 if total_profit > 0 else 0.0

    realized = _snap(sum(pnls))
    unrealized = _snap(unrealized_pnl(open_trades, mark_prices))
    longest_wins, longest_losses, current = _streaks(pnls)

    return BotStatistics(
        total_trades=len(closed) + len(open_trades),
        open_trades=len(open_trades),
        closed_trades=len(closed),
        winning_trades=len(wins),
        losing_trades=len(losses),
        win_rate=round2(len(wins) / len(closed) * 100) if closed else 0.0,
        total_profit=total_profit,
        total_loss=total_loss,
        realized_pnl=realized,
        unrealized_pnl=unrealized,
        net_profit=_snap(realized + unrealized),
        profit_factor=profit_factor,
        average_win=round2(total_profit / len(wins)) if wins else 0.0,
        average_loss=round2(total_loss / len(losses)) if losses else 0.0,
        largest_win=round2(max(wins)) if wins else 0.0,
        largest_loss=round2(abs(min(losses))) if losses else 0.0,
        consecutive_wins=longest_wins,
        consecutive_losses=longest_losses,
        current_streak=current,
        max_drawdown=max_drawdown(pnls, initial_balance),
        sharpe_ratio=sharpe_ratio([t.pnl_percent or 0.0 for t in closed]),
    )


class StatisticsService:
    """Recomputes and persists bot performance snapshots."""

    def __init__(self, db, market_data, initial_balance: float = 10000.0):
        self.db = db
        self.market_data = market_data
        self.initial_balance = initial_balance

    async def _mark_prices(self, open_trades: List[Trade]) -> Dict[str, Optional[float]]:
        prices = {}
        for symbol in sorted({t.symbol for t in open_trades}):
            prices[symbol] = await self.market_data.fetch_latest_price(symbol)
            if prices[symbol] is None:
                logger.warning("No mark price for %s, unrealized P&L excludes it", symbol)
        return prices

    async def recompute_statistics(self, bot_id: str) -> BotStatistics:
        trades = await self.db.find_trades(bot_id)
        open_trades = [t for t in trades if t.is_open]
        marks = await self._mark_prices(open_trades) if open_trades else {}
        stats = compute_statistics(trades, marks, self.initial_balance)
        await self.db.update_bot_stats(bot_id, stats.to_dict())
        logger.info(
            "Bot %s stats: %d trades (%d open), win rate %.2f%%, net %.2f, drawdown %.2f%%",
            bot_id, stats.total_trades, stats.open_trades, stats.win_rate, stats.net_profit, stats.max_drawdown,
        )
        return stats

    async def update_all_bots_statistics(self) -> int:
        """Recompute every bot, active or not; returns how many succeeded."""
        done = 0
        for bot_id in await self.db.find_bot_ids():
            try:
                await self.recompute_statistics(bot_id)
                done += 1
            except Exception:
                logger.exception("Statistics refresh failed for bot %s", bot_id)
        return done
