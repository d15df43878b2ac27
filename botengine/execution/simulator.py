from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from botengine.models.trade_models import Trade, WalletLeg
from botengine.utils.orders_enum import CloseReason, Side

QUOTE_WALLET_NAME = "Tether USD"

CLOSE_NOTES = {
    CloseReason.STOP_LOSS: "Closed automatically by Stop Loss",
    CloseReason.TAKE_PROFIT: "Closed automatically by Take Profit",
    CloseReason.EXIT_CONDITION: "Closed by exit condition",
}


def base_asset(symbol: str, quote: str) -> str:
    if quote and symbol.endswith(quote):
        return symbol[:-len(quote)]
    return symbol


def round2(value: float) -> float:
    return round(value * 100) / 100


@dataclass
class ClosedFill:
    """Exit fields written together when a trade closes."""
    exit_price: float
    exit_time: datetime
    pnl: float
    pnl_percent: float
    reason: CloseReason
    notes: Optional[str] = None


class TradeSimulator:
    """Simulated fills: P&L and the two wallet legs of every open/close."""

    def __init__(self, quote_asset: str = "USDT"):
        self.quote_asset = quote_asset

    @staticmethod
    def pnl(side: Side, entry: float, exit_price: float, quantity: float) -> float:
        multiplier = 1 if side == Side.BUY else -1
        return round2((exit_price - entry) * quantity * multiplier)

    @staticmethod
    def pnl_percent(pnl: float, entry: float, quantity: float) -> float:
        notional = entry * quantity
        if not notional:
            return 0.0
        return round2(pnl / notional * 100)

    def close_fill(self, trade: Trade, exit_price: float, reason: CloseReason, when: datetime) -> ClosedFill:
        pnl = self.pnl(trade.side, trade.price, exit_price, trade.quantity)
        return ClosedFill(
            exit_price=exit_price,
            exit_time=when,
            pnl=pnl,
            pnl_percent=self.pnl_percent(pnl, trade.price, trade.quantity),
            reason=reason,
            notes=CLOSE_NOTES.get(reason),
        )

    def open_legs(self, symbol: str, side: Side, quantity: float, price: float) -> List[WalletLeg]:
        """Buy: spend quote, receive base. Sell: receive quote, owe base."""
        total = quantity * price
        sign = 1 if side == Side.BUY else -1
        return [
            WalletLeg(self.quote_asset, -sign * total, -sign * total, name=QUOTE_WALLET_NAME),
            WalletLeg(base_asset(symbol, self.quote_asset), sign * quantity, sign * total),
        ]

    def close_legs(self, trade: Trade, exit_price: float) -> List[WalletLeg]:
        """Unwind an open trade at ``exit_price``.

        The debited leg carries ``min_balance`` so the store can refuse the
        close when the wallet cannot cover it.
        """
        total = trade.quantity * exit_price
        base = base_asset(trade.symbol, self.quote_asset)
        if trade.side == Side.BUY:
            return [
                WalletLeg(base, -trade.quantity, -total, min_balance=trade.quantity),
                WalletLeg(self.quote_asset, total, total, name=QUOTE_WALLET_NAME),
            ]
        return [
            WalletLeg(self.quote_asset, -total, -total, name=QUOTE_WALLET_NAME, min_balance=total),
            WalletLeg(base, trade.quantity, total),
        ]
