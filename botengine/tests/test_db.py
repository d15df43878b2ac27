from datetime import datetime

import pytest

from botengine.errors import PersistenceError
from botengine.execution.simulator import TradeSimulator
from botengine.models.trade_models import Trade
from botengine.persistence.db import Database
from botengine.tests.fakes import bot_row
from botengine.utils.orders_enum import CloseReason, Side, TradeStatus


def _trade() -> Trade:
    return Trade('', 'user-1', 'BTCUSDT', Side.BUY, 0.5, 100.0, 50.0, TradeStatus.OPEN,
                 datetime(2024, 1, 1), bot_id='bot-1', stop_loss=98.0, take_profit=104.0)


@pytest.mark.asyncio
async def test_requires_connection(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'db.sqlite'}")
    with pytest.raises(PersistenceError):
        await db.find_active_bots()


@pytest.mark.asyncio
async def test_bot_rows_and_stats(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'db.sqlite'}")
    await db.connect()
    bot_id = await db.upsert_bot(bot_row(indicators=[{'name': 'rsi', 'type': 'primary', 'parameters': {'period': 7}}]))
    row = await db.get_bot(bot_id)
    assert row['indicators'][0]['parameters']['period'] == 7

    await db.update_bot_stats(bot_id, {'win_rate': 50.0, 'total_trades': 2})
    assert (await db.get_bot(bot_id))['win_rate'] == 50.0

    await db.set_bot_active(bot_id, False)
    assert await db.find_active_bots() == []
    assert await db.find_bot_ids() == [bot_id]
    await db.disconnect()


@pytest.mark.asyncio
async def test_open_and_close_are_atomic(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'db.sqlite'}")
    await db.connect()
    sim = TradeSimulator("USDT")
    await db.set_wallet('user-1', 'USDT', 1000.0)
    trade = await db.open_trade(_trade(), sim.open_legs('BTCUSDT', Side.BUY, 0.5, 100.0))
    assert trade.id
    assert await db.count_open_trades('bot-1') == 1
    assert (await db.get_wallet('user-1', 'BTC')).name == 'BTC'
    assert (await db.get_wallet('user-1', 'USDT')).balance == 950.0

    fill = sim.close_fill(trade, 104.0, CloseReason.TAKE_PROFIT, datetime(2024, 1, 2))
    assert await db.close_trade(trade, fill, sim.close_legs(trade, 104.0))
    assert not await db.close_trade(trade, fill, sim.close_legs(trade, 104.0))

    stored = await db.get_trade(trade.id)
    assert stored.status is TradeStatus.CLOSED
    assert stored.pnl == 2.0
    assert stored.exit_time == datetime(2024, 1, 2)
    assert (await db.get_wallet('user-1', 'USDT')).balance == 1002.0
    assert (await db.get_wallet('user-1', 'BTC')).balance == 0.0
    await db.disconnect()


@pytest.mark.asyncio
async def test_failed_leg_rolls_back_close(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'db.sqlite'}")
    await db.connect()
    sim = TradeSimulator("USDT")
    trade = await db.open_trade(_trade(), sim.open_legs('BTCUSDT', Side.BUY, 0.5, 100.0))
    # base sold elsewhere
    await db.set_wallet('user-1', 'BTC', 0.1)
    fill = sim.close_fill(trade, 98.0, CloseReason.STOP_LOSS, datetime(2024, 1, 2))
    assert not await db.close_trade(trade, fill, sim.close_legs(trade, 98.0))
    assert (await db.get_trade(trade.id)).status is TradeStatus.OPEN
    assert (await db.get_wallet('user-1', 'BTC')).balance == 0.1
    await db.disconnect()


@pytest.mark.asyncio
async def test_trade_levels_edit_only_while_open(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'db.sqlite'}")
    await db.connect()
    sim = TradeSimulator("USDT")
    trade = await db.open_trade(_trade(), sim.open_legs('BTCUSDT', Side.BUY, 0.5, 100.0))
    assert await db.update_trade_levels(trade.id, 97.0, 106.0)
    assert (await db.get_trade(trade.id)).stop_loss == 97.0

    fill = sim.close_fill(trade, 101.0, CloseReason.EXIT_CONDITION, datetime(2024, 1, 2))
    await db.close_trade(trade, fill, sim.close_legs(trade, 101.0))
    assert not await db.update_trade_levels(trade.id, 90.0, 120.0)
    assert (await db.get_trade(trade.id)).stop_loss == 97.0
    await db.disconnect()


@pytest.mark.asyncio
async def test_recent_trade_count(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'db.sqlite'}")
    await db.connect()
    sim = TradeSimulator("USDT")
    await db.open_trade(_trade(), sim.open_legs('BTCUSDT', Side.BUY, 0.5, 100.0))
    assert await db.count_recent_trades('bot-1', datetime(2023, 12, 31, 23, 55)) == 1
    assert await db.count_recent_trades('bot-1', datetime(2024, 1, 1, 0, 1)) == 0
    await db.disconnect()
