from datetime import timedelta

import pytest

from botengine.execution.simulator import TradeSimulator
from botengine.models.trade_models import Trade
from botengine.persistence.db import Database
from botengine.services.bot_trade_service import BotTradeService
from botengine.services.risk_manager import RiskManager
from botengine.services.scheduler import VirtualClock
from botengine.services.statistics import StatisticsService
from botengine.tests.fakes import FakeMarketData, bot_row, candles_from_closes
from botengine.utils.orders_enum import CloseReason, Side, TradeStatus

RSI_25_CLOSES = [100, 101, 102, 103, 102, 101, 100, 99, 98, 97, 96, 95, 94, 94, 94]


async def _setup(tmp_path, closes=RSI_25_CLOSES, quote_balance=1000.0, **bot):
    db = Database(f"sqlite:///{tmp_path / 'engine.db'}")
    await db.connect()
    await db.upsert_bot(bot_row(**bot))
    await db.set_wallet('user-1', 'USDT', quote_balance)
    market = FakeMarketData({'BTCUSDT': candles_from_closes(closes)}, {'BTCUSDT': float(closes[-1])})
    clock = VirtualClock()
    service = BotTradeService(
        db, market, RiskManager(), StatisticsService(db, market), TradeSimulator("USDT"), clock,
    )
    return db, market, clock, service


@pytest.mark.asyncio
async def test_rsi_oversold_opens_one_buy(tmp_path):
    db, market, clock, service = await _setup(tmp_path)
    stats = await service.run_entry_exit_cycle()
    assert stats.trades_opened == 1
    assert not stats.errors

    trades = await db.find_open_trades('bot-1')
    assert len(trades) == 1
    trade = trades[0]
    assert trade.side is Side.BUY
    assert trade.price == 94.0
    assert trade.quantity == pytest.approx(100 / 94.0)
    assert trade.stop_loss == pytest.approx(94.0 * 0.98)
    assert trade.take_profit == pytest.approx(94.0 * 1.04)

    quote = await db.get_wallet('user-1', 'USDT')
    base = await db.get_wallet('user-1', 'BTC')
    assert quote.balance == pytest.approx(900.0)
    assert base.balance == pytest.approx(100 / 94.0)

    row = await db.get_bot('bot-1')
    assert row['total_trades'] == 1
    assert row['open_trades'] == 1
    await db.disconnect()


@pytest.mark.asyncio
async def test_cap_and_recent_trade_guard(tmp_path):
    db, market, clock, service = await _setup(tmp_path, max_open_positions=2)
    await service.run_entry_exit_cycle()
    # second trade blocked by the recent-trade window
    await service.run_entry_exit_cycle()
    assert await db.count_open_trades('bot-1') == 1

    clock.advance(301)
    await service.run_entry_exit_cycle()
    assert await db.count_open_trades('bot-1') == 2

    clock.advance(301)
    await service.run_entry_exit_cycle()
    assert await db.count_open_trades('bot-1') == 2
    await db.disconnect()


@pytest.mark.asyncio
async def test_insufficient_balance_deactivates(tmp_path):
    db, market, clock, service = await _setup(tmp_path, quote_balance=50.0)
    stats = await service.run_entry_exit_cycle()
    assert stats.bots_deactivated == 1
    assert stats.trades_opened == 0
    row = await db.get_bot('bot-1')
    assert row['is_active'] is False
    assert await db.find_active_bots() == []
    await db.disconnect()


@pytest.mark.asyncio
async def test_stop_loss_checked_before_entry(tmp_path):
    db, market, clock, service = await _setup(tmp_path)
    await service.run_entry_exit_cycle()
    trade = (await db.find_open_trades('bot-1'))[0]

    # next candle trades through the stop
    closes = RSI_25_CLOSES + [90.0]
    market.candles['BTCUSDT'] = candles_from_closes(closes)
    clock.advance(3600)
    stats = await service.run_entry_exit_cycle()
    assert stats.trades_closed == 1

    closed = await db.get_trade(trade.id)
    assert closed.status is TradeStatus.CLOSED
    assert closed.exit_price == pytest.approx(trade.stop_loss)
    assert closed.pnl == pytest.approx((trade.stop_loss - 94.0) * trade.quantity, abs=0.01)
    assert closed.notes == "Closed automatically by Stop Loss"
    await db.disconnect()


@pytest.mark.asyncio
async def test_schedule_skips_entry(tmp_path):
    schedule = {'startTime': '09:00', 'endTime': '10:00', 'daysOfWeek': [1]}
    db, market, clock, service = await _setup(tmp_path, operation_mode='scheduled', operation_time=schedule)
    # virtual clock starts Monday 00:00
    stats = await service.run_entry_exit_cycle()
    assert stats.trades_opened == 0
    clock.advance(timedelta(hours=9, minutes=30).total_seconds())
    stats = await service.run_entry_exit_cycle()
    assert stats.trades_opened == 1
    await db.disconnect()


@pytest.mark.asyncio
async def test_close_race_is_noop(tmp_path):
    db, market, clock, service = await _setup(tmp_path)
    await service.run_entry_exit_cycle()
    trade = (await db.find_open_trades('bot-1'))[0]
    stale = Trade(**{**trade.__dict__})

    assert await service.close_trade(trade, 95.0, CloseReason.EXIT_CONDITION)
    quote_after_first = (await db.get_wallet('user-1', 'USDT')).balance
    assert not await service.close_trade(stale, 96.0, CloseReason.EXIT_CONDITION)

    assert (await db.get_wallet('user-1', 'USDT')).balance == quote_after_first
    assert (await db.get_trade(trade.id)).exit_price == 95.0
    await db.disconnect()


@pytest.mark.asyncio
async def test_market_data_outage_skips_bot(tmp_path):
    db, market, clock, service = await _setup(tmp_path)
    market.candles = {}
    stats = await service.run_entry_exit_cycle()
    assert stats.trades_opened == 0
    assert stats.bots_deactivated == 0
    assert not stats.errors
    await db.disconnect()


@pytest.mark.asyncio
async def test_broken_bot_does_not_stop_cycle(tmp_path):
    db, market, clock, service = await _setup(tmp_path)
    await db.upsert_bot(bot_row(id='bot-0', indicators='{not json'))
    stats = await service.run_entry_exit_cycle()
    assert len(stats.errors) == 1
    assert stats.trades_opened == 1
    await db.disconnect()


@pytest.mark.asyncio
async def test_reference_candle_failure_skips_exits_and_entry(tmp_path):
    db, market, clock, service = await _setup(tmp_path)
    market.candles = {}
    await service.run_entry_exit_cycle()
    # only the reference fetch was attempted for this tick
    assert market.candle_calls == [('BTCUSDT', '1h', 1)]
    assert (await db.get_bot('bot-1'))['is_active'] is True
    await db.disconnect()


@pytest.mark.asyncio
async def test_low_balance_after_entry_keeps_bot_managing_its_position(tmp_path):
    db, market, clock, service = await _setup(
        tmp_path, quote_balance=150.0, exit_condition='overbought', take_profit_enabled=False,
    )
    stats = await service.run_entry_exit_cycle()
    assert stats.trades_opened == 1
    assert (await db.get_wallet('user-1', 'USDT')).balance == pytest.approx(50.0)

    # no exit yet: the bot holds its position and stays active
    market.candles['BTCUSDT'] = candles_from_closes(RSI_25_CLOSES + [94.0])
    clock.advance(3600)
    stats = await service.run_entry_exit_cycle()
    assert stats.bots_deactivated == 0
    assert (await db.get_bot('bot-1'))['is_active'] is True
    assert await db.count_open_trades('bot-1') == 1

    # rally pushes RSI above 70 and the indicator exit closes the trade
    rally = RSI_25_CLOSES + [96.0, 98.0, 100.0, 102.0, 104.0, 106.0, 108.0, 110.0]
    market.candles['BTCUSDT'] = candles_from_closes(rally)
    clock.advance(3600)
    stats = await service.run_entry_exit_cycle()
    assert stats.trades_closed == 1
    assert stats.bots_deactivated == 0
    assert (await db.get_bot('bot-1'))['is_active'] is True
    assert await db.count_open_trades('bot-1') == 0
    assert (await db.get_wallet('user-1', 'USDT')).balance == pytest.approx(50.0 + 100 / 94.0 * 110.0)
    await db.disconnect()
