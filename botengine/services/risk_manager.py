import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from botengine.models.bot_models import BotConfig
from botengine.utils.orders_enum import Side, SizingType
from botengine.utils.time_utils import day_name, js_weekday, to_zone

logger = logging.getLogger("risk_manager")


@dataclass
class BalanceCheck:
    ok: bool
    balance: float
    required: float


class RiskManager:
    """Balance guard, schedule guard, position sizing and SL/TP levels."""

    def __init__(self, minimum_balance: float = 1.0, default_fixed_amount: float = 100.0,
                 default_percentage: float = 10.0, fallback_required: float = 10.0,
                 min_quantity: float = 0.000001, schedule_timezone: str = "UTC"):
        self.minimum_balance = minimum_balance
        self.default_fixed_amount = default_fixed_amount
        self.default_percentage = default_percentage
        self.fallback_required = fallback_required
        self.min_quantity = min_quantity
        self.schedule_timezone = schedule_timezone

    def required_amount(self, bot: BotConfig, balance: float) -> float:
        if bot.position_sizing_type == SizingType.FIXED.value:
            return bot.position_sizing_value or self.default_fixed_amount
        if bot.position_sizing_type == SizingType.PERCENTAGE.value:
            return balance * (bot.position_sizing_value or self.default_percentage) / 100
        return self.fallback_required

    def check_balance(self, bot: BotConfig, balance: float) -> BalanceCheck:
        """Whether the owner's quote balance can fund one more position."""
        if balance < self.minimum_balance:
            return BalanceCheck(False, balance, self.minimum_balance)
        required = self.required_amount(bot, balance)
        return BalanceCheck(balance >= required, balance, required)

    def within_schedule(self, bot: BotConfig, now_utc: datetime) -> bool:
        """Day-of-week and HH:MM window gate; unconfigured windows always pass."""
        schedule = bot.schedule
        if not bot.is_scheduled or schedule is None or not schedule.is_bounded:
            return True
        try:
            local = to_zone(now_utc, self.schedule_timezone)
            weekday = js_weekday(local)
            if schedule.days_of_week and weekday not in [int(d) for d in schedule.days_of_week]:
                logger.info("[%s] %s is not a trading day (%s)", bot.name, day_name(weekday),
                            ", ".join(day_name(int(d)) for d in schedule.days_of_week))
                return False
            current = local.strftime("%H:%M")
            if current < schedule.start_time or current > schedule.end_time:
                logger.info("[%s] %s outside trading window %s-%s", bot.name, current,
                            schedule.start_time, schedule.end_time)
                return False
        except (TypeError, ValueError) as e:
            logger.error(f"[{bot.name}] schedule check failed, allowing trading: {e}")
        return True

    def calc_size(self, bot: BotConfig, price: float, balance: float) -> float:
        quantity = 0.001
        if bot.position_sizing_type == SizingType.FIXED.value:
            quantity = (bot.position_sizing_value or self.default_fixed_amount) / price
        elif bot.position_sizing_type == SizingType.PERCENTAGE.value:
            quantity = balance * (bot.position_sizing_value or self.default_percentage) / 100 / price
        if bot.max_position and quantity > bot.max_position:
            quantity = bot.max_position
        return max(self.min_quantity, quantity)

    @staticmethod
    def _offset(price: float, percent: float, up: bool) -> float:
        return price * (1 + percent / 100) if up else price * (1 - percent / 100)

    def stop_loss(self, bot: BotConfig, price: float, side: Side) -> Optional[float]:
        if not bot.stop_loss_enabled or not bot.stop_loss_value or bot.stop_loss_type != 'fixed':
            return None
        return self._offset(price, bot.stop_loss_value, up=side == Side.SELL)

    def take_profit(self, bot: BotConfig, price: float, side: Side) -> Optional[float]:
        if not bot.take_profit_enabled or not bot.take_profit_value or bot.take_profit_type != 'fixed':
            return None
        return self._offset(price, bot.take_profit_value, up=side == Side.BUY)

    def levels(self, bot: BotConfig, price: float, side: Side) -> Tuple[Optional[float], Optional[float]]:
        return self.stop_loss(bot, price, side), self.take_profit(bot, price, side)
