from enum import Enum

class Side(str, Enum):
    BUY = "buy"
    SELL = "sell"

    @property
    def opposite(self) -> "Side":
        return Side.SELL if self is Side.BUY else Side.BUY

class TradeStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"

class SizingType(str, Enum):
    FIXED = "fixed"  # quote amount per trade
    PERCENTAGE = "percentage"  # share of current quote balance

class ExecutionMode(str, Enum):
    CANDLE_CLOSE = "candle_close"  # fill at the latest candle close
    PRICE_CONDITION = "price_condition"  # fill at the live tick price

class CloseReason(str, Enum):
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"
    EXIT_CONDITION = "exit_condition"
