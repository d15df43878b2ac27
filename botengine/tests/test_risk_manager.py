from datetime import datetime

import pytest

from botengine.models.bot_models import load_bot
from botengine.services.risk_manager import RiskManager
from botengine.tests.fakes import bot_row
from botengine.utils.orders_enum import Side

SCHEDULE = {'startTime': '09:00', 'endTime': '17:00', 'daysOfWeek': [1, 2, 3, 4, 5]}


def test_balance_guard():
    risk = RiskManager(minimum_balance=1.0)
    bot = load_bot(bot_row(position_sizing_value=100.0))
    assert risk.check_balance(bot, 150.0).ok
    check = risk.check_balance(bot, 50.0)
    assert not check.ok
    assert check.required == 100.0
    assert not risk.check_balance(bot, 0.5).ok


def test_percentage_requirement_scales_with_balance():
    risk = RiskManager()
    bot = load_bot(bot_row(position_sizing_type='percentage', position_sizing_value=10.0))
    check = risk.check_balance(bot, 500.0)
    assert check.ok
    assert check.required == pytest.approx(50.0)


def test_position_sizing():
    risk = RiskManager(min_quantity=0.000001)
    fixed = load_bot(bot_row(position_sizing_value=100.0))
    assert risk.calc_size(fixed, 50.0, 1000.0) == pytest.approx(2.0)

    pct = load_bot(bot_row(position_sizing_type='percentage', position_sizing_value=10.0))
    assert risk.calc_size(pct, 50.0, 1000.0) == pytest.approx(2.0)

    capped = load_bot(bot_row(position_sizing_value=100.0, max_position=0.5))
    assert risk.calc_size(capped, 50.0, 1000.0) == 0.5

    tiny = load_bot(bot_row(position_sizing_value=0.0000001))
    assert risk.calc_size(tiny, 50000.0, 1000.0) == 0.000001


def test_stop_loss_and_take_profit_levels():
    risk = RiskManager()
    bot = load_bot(bot_row())
    sl, tp = risk.levels(bot, 100.0, Side.BUY)
    assert sl == pytest.approx(98.0)
    assert tp == pytest.approx(104.0)
    sl, tp = risk.levels(bot, 100.0, Side.SELL)
    assert sl == pytest.approx(102.0)
    assert tp == pytest.approx(96.0)


def test_levels_disabled():
    risk = RiskManager()
    bot = load_bot(bot_row(stop_loss_enabled=False, take_profit_type='trailing'))
    assert risk.levels(bot, 100.0, Side.BUY) == (None, None)


def test_schedule_window():
    risk = RiskManager(schedule_timezone='UTC')
    bot = load_bot(bot_row(operation_mode='scheduled', operation_time=SCHEDULE))
    # 2024-01-01 is a Monday
    assert risk.within_schedule(bot, datetime(2024, 1, 1, 10, 0))
    assert not risk.within_schedule(bot, datetime(2024, 1, 1, 18, 30))
    assert not risk.within_schedule(bot, datetime(2024, 1, 6, 10, 0))


def test_schedule_uses_configured_timezone():
    risk = RiskManager(schedule_timezone='America/Sao_Paulo')
    bot = load_bot(bot_row(operation_mode='scheduled', operation_time=SCHEDULE))
    # 12:00 UTC is 09:00 in Sao Paulo
    assert risk.within_schedule(bot, datetime(2024, 1, 1, 12, 0))
    assert not risk.within_schedule(bot, datetime(2024, 1, 1, 11, 0))


def test_continuous_bots_ignore_schedule():
    risk = RiskManager()
    bot = load_bot(bot_row(operation_mode='continuous', operation_time=SCHEDULE))
    assert risk.within_schedule(bot, datetime(2024, 1, 6, 23, 0))
