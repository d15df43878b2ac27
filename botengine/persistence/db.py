import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (JSON, Boolean, Column, DateTime, Float, Integer,
                        MetaData, String, Table, UniqueConstraint, and_,
                        create_engine, func, or_, select, text)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from botengine.errors import PersistenceError
from botengine.execution.simulator import ClosedFill
from botengine.models.trade_models import Trade, Wallet, WalletLeg
from botengine.utils.orders_enum import Side, TradeStatus
from botengine.utils.time_utils import utc_now

logger = logging.getLogger("database")

# float slack when comparing a wallet balance against a leg's requirement
BALANCE_EPSILON = 1e-9

metadata = MetaData()

bots = Table(
    'bots', metadata,
    Column('id', String, primary_key=True),
    Column('user_id', String, nullable=False, index=True),
    Column('name', String),
    Column('symbol', String, default='BTCUSDT'),
    Column('timeframe', String, default='1h'),
    Column('indicators', JSON),
    Column('primary_indicator', String),
    Column('primary_period', Integer),
    Column('secondary_indicator', String),
    Column('entry_condition', String),
    Column('exit_condition', String),
    Column('entry_value', Float),
    Column('exit_value', Float),
    Column('position_sizing_type', String, default='fixed'),
    Column('position_sizing_value', Float),
    Column('max_position', Float),
    Column('max_open_positions', Integer, default=1),
    Column('stop_loss_enabled', Boolean, default=False),
    Column('stop_loss_type', String, default='fixed'),
    Column('stop_loss_value', Float),
    Column('take_profit_enabled', Boolean, default=False),
    Column('take_profit_type', String, default='fixed'),
    Column('take_profit_value', Float),
    Column('operation_mode', String, default='continuous'),
    Column('operation_time', JSON),
    Column('entry_execution_mode', String, default='candle_close'),
    Column('exit_execution_mode', String, default='candle_close'),
    Column('entry_type', String, default='market'),
    Column('environment', String, default='simulated'),
    Column('is_active', Boolean, default=True),
    # performance snapshot, always derived from trades
    Column('total_trades', Integer, default=0),
    Column('open_trades', Integer, default=0),
    Column('closed_trades', Integer, default=0),
    Column('winning_trades', Integer, default=0),
    Column('losing_trades', Integer, default=0),
    Column('win_rate', Float, default=0.0),
    Column('total_profit', Float, default=0.0),
    Column('total_loss', Float, default=0.0),
    Column('realized_pnl', Float, default=0.0),
    Column('unrealized_pnl', Float, default=0.0),
    Column('net_profit', Float, default=0.0),
    Column('profit_factor', Float, default=0.0),
    Column('average_win', Float, default=0.0),
    Column('average_loss', Float, default=0.0),
    Column('largest_win', Float, default=0.0),
    Column('largest_loss', Float, default=0.0),
    Column('consecutive_wins', Integer, default=0),
    Column('consecutive_losses', Integer, default=0),
    Column('current_streak', Integer, default=0),
    Column('max_drawdown', Float, default=0.0),
    Column('sharpe_ratio', Float, default=0.0),
    Column('created_at', DateTime, default=utc_now),
    Column('updated_at', DateTime, default=utc_now, onupdate=utc_now),
)

trades = Table(
    'trades', metadata,
    Column('id', String, primary_key=True),
    Column('user_id', String, nullable=False, index=True),
    Column('bot_id', String, index=True),
    Column('bot_name', String),
    Column('symbol', String, nullable=False),
    Column('side', String, nullable=False),
    Column('type', String, default='market'),
    Column('trade_type', String, default='bot'),
    Column('environment', String, default='simulated'),
    Column('quantity', Float, nullable=False),
    Column('price', Float, nullable=False),
    Column('total', Float, nullable=False),
    Column('status', String, nullable=False, default='open', index=True),
    Column('stop_loss', Float),
    Column('take_profit', Float),
    Column('exit_price', Float),
    Column('entry_time', DateTime, nullable=False),
    Column('exit_time', DateTime),
    Column('pnl', Float),
    Column('pnl_percent', Float),
    Column('close_reason', String),
    Column('notes', String),
)

wallets = Table(
    'wallets', metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String, nullable=False),
    Column('type', String, nullable=False),
    Column('symbol', String, nullable=False),
    Column('name', String),
    Column('balance', Float, nullable=False, default=0.0),
    Column('value', Float, nullable=False, default=0.0),
    Column('is_active', Boolean, default=True),
    UniqueConstraint('user_id', 'type', 'symbol', name='uq_wallets_user_type_symbol'),
)


class _InsufficientBalance(Exception):
    def __init__(self, symbol: str, balance: float, required: float):
        super().__init__(f"{symbol}: balance {balance} < required {required}")
        self.symbol = symbol


def _trade_from_row(row) -> Trade:
    m = row._mapping
    return Trade(
        id=m['id'],
        user_id=m['user_id'],
        symbol=m['symbol'],
        side=Side(m['side']),
        quantity=m['quantity'],
        price=m['price'],
        total=m['total'],
        status=TradeStatus(m['status']),
        entry_time=m['entry_time'],
        bot_id=m['bot_id'],
        bot_name=m['bot_name'],
        type=m['type'],
        trade_type=m['trade_type'],
        environment=m['environment'],
        stop_loss=m['stop_loss'],
        take_profit=m['take_profit'],
        exit_price=m['exit_price'],
        exit_time=m['exit_time'],
        pnl=m['pnl'],
        pnl_percent=m['pnl_percent'],
        notes=m['notes'],
    )


class Database:
    """Bot/trade/wallet store.

    Wraps a synchronous SQLAlchemy engine behind async methods. Every
    operation that touches a wallet runs in one ``engine.begin()`` block
    together with the trade row it belongs to.
    """

    def __init__(self, url: str, wallet_type: str = "virtual"):
        self.url = url
        self.wallet_type = wallet_type
        self._connected = False
        kwargs: Dict[str, Any] = {}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
                kwargs["poolclass"] = StaticPool
        self.engine = create_engine(url, **kwargs)
        metadata.create_all(self.engine)
        logger.info("Database engine created for %s", url.split("@")[-1])

    async def connect(self):
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            self._connected = True
            logger.info("Database connected successfully")
        except SQLAlchemyError as e:
            logger.error(f"Database connection failed: {e}")
            self._connected = False
            raise PersistenceError(str(e)) from e

    async def disconnect(self):
        self._connected = False
        self.engine.dispose()
        logger.info("Database disconnected")

    @property
    def connected(self) -> bool:
        return self._connected

    def _require(self):
        if not self._connected:
            raise PersistenceError("Database not connected")

    # --- bots ---------------------------------------------------------------

    async def upsert_bot(self, row: Dict[str, Any]) -> str:
        self._require()
        values = dict(row)
        values.setdefault('id', str(uuid.uuid4()))
        with self.engine.begin() as conn:
            existing = conn.execute(select(bots.c.id).where(bots.c.id == values['id'])).first()
            if existing:
                conn.execute(bots.update().where(bots.c.id == values['id']).values(**values))
            else:
                conn.execute(bots.insert().values(**values))
        return values['id']

    async def get_bot(self, bot_id: str) -> Optional[Dict[str, Any]]:
        self._require()
        with self.engine.connect() as conn:
            row = conn.execute(bots.select().where(bots.c.id == bot_id)).first()
        return dict(row._mapping) if row else None

    async def find_active_bots(self) -> List[Dict[str, Any]]:
        self._require()
        with self.engine.connect() as conn:
            rows = conn.execute(bots.select().where(bots.c.is_active.is_(True)).order_by(bots.c.created_at)).fetchall()
        return [dict(r._mapping) for r in rows]

    async def find_bot_ids(self) -> List[str]:
        self._require()
        with self.engine.connect() as conn:
            rows = conn.execute(select(bots.c.id).order_by(bots.c.created_at)).fetchall()
        return [r[0] for r in rows]

    async def set_bot_active(self, bot_id: str, active: bool):
        self._require()
        with self.engine.begin() as conn:
            conn.execute(bots.update().where(bots.c.id == bot_id).values(is_active=active))

    async def update_bot_stats(self, bot_id: str, stats: Dict[str, Any]):
        self._require()
        with self.engine.begin() as conn:
            conn.execute(bots.update().where(bots.c.id == bot_id).values(**stats))

    # --- trades -------------------------------------------------------------

    async def find_trades(self, bot_id: str) -> List[Trade]:
        """All trades of a bot, oldest entry first."""
        self._require()
        query = trades.select().where(trades.c.bot_id == bot_id).order_by(trades.c.entry_time, trades.c.id)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_trade_from_row(r) for r in rows]

    async def find_open_trades(self, bot_id: str) -> List[Trade]:
        self._require()
        query = trades.select().where(
            and_(trades.c.bot_id == bot_id, trades.c.status == TradeStatus.OPEN.value)
        ).order_by(trades.c.entry_time)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_trade_from_row(r) for r in rows]

    async def find_open_sl_tp_trades(self, environment: str = "simulated") -> List[Trade]:
        """Open trades carrying a stop-loss or take-profit level."""
        self._require()
        query = trades.select().where(and_(
            trades.c.status == TradeStatus.OPEN.value,
            trades.c.environment == environment,
            or_(trades.c.stop_loss.isnot(None), trades.c.take_profit.isnot(None)),
        )).order_by(trades.c.symbol, trades.c.entry_time)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_trade_from_row(r) for r in rows]

    async def get_trade(self, trade_id: str) -> Optional[Trade]:
        self._require()
        with self.engine.connect() as conn:
            row = conn.execute(trades.select().where(trades.c.id == trade_id)).first()
        return _trade_from_row(row) if row else None

    async def count_open_trades(self, bot_id: str) -> int:
        self._require()
        query = select(func.count()).select_from(trades).where(
            and_(trades.c.bot_id == bot_id, trades.c.status == TradeStatus.OPEN.value)
        )
        with self.engine.connect() as conn:
            return conn.execute(query).scalar_one()

    async def count_recent_trades(self, bot_id: str, since: datetime) -> int:
        self._require()
        query = select(func.count()).select_from(trades).where(
            and_(trades.c.bot_id == bot_id, trades.c.entry_time >= since)
        )
        with self.engine.connect() as conn:
            return conn.execute(query).scalar_one()

    async def open_trade(self, trade: Trade, legs: List[WalletLeg]) -> Trade:
        """Insert an open trade and apply its wallet legs atomically."""
        self._require()
        if not trade.id:
            trade.id = str(uuid.uuid4())
        try:
            with self.engine.begin() as conn:
                conn.execute(trades.insert().values(
                    id=trade.id,
                    user_id=trade.user_id,
                    bot_id=trade.bot_id,
                    bot_name=trade.bot_name,
                    symbol=trade.symbol,
                    side=trade.side.value,
                    type=trade.type,
                    trade_type=trade.trade_type,
                    environment=trade.environment,
                    quantity=trade.quantity,
                    price=trade.price,
                    total=trade.total,
                    status=TradeStatus.OPEN.value,
                    stop_loss=trade.stop_loss,
                    take_profit=trade.take_profit,
                    entry_time=trade.entry_time,
                    notes=trade.notes,
                ))
                for leg in legs:
                    self._apply_leg(conn, trade.user_id, leg)
        except _InsufficientBalance as e:
            raise PersistenceError(f"trade {trade.id} not opened: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Failed to open trade {trade.id} ({trade.symbol}): {e}")
            raise PersistenceError(str(e)) from e
        return trade

    async def close_trade(self, trade: Trade, fill: ClosedFill, legs: List[WalletLeg]) -> bool:
        """Transition ``open -> closed`` and unwind the wallet legs.

        Returns False, leaving everything untouched, when the trade is no
        longer open or a debited wallet cannot cover its leg.
        """
        self._require()
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    trades.update()
                    .where(and_(trades.c.id == trade.id, trades.c.status == TradeStatus.OPEN.value))
                    .values(
                        status=TradeStatus.CLOSED.value,
                        exit_price=fill.exit_price,
                        exit_time=fill.exit_time,
                        pnl=fill.pnl,
                        pnl_percent=fill.pnl_percent,
                        close_reason=fill.reason.value,
                        notes=fill.notes,
                    )
                )
                if result.rowcount == 0:
                    logger.debug("Trade %s already closed, skipping", trade.id)
                    return False
                for leg in legs:
                    self._apply_leg(conn, trade.user_id, leg)
        except _InsufficientBalance as e:
            logger.warning("Trade %s (%s) left open: %s", trade.id, trade.symbol, e)
            return False
        except SQLAlchemyError as e:
            logger.error(f"Failed to close trade {trade.id} ({trade.symbol}): {e}")
            raise PersistenceError(str(e)) from e
        return True

    async def update_trade_levels(self, trade_id: str, stop_loss: Optional[float], take_profit: Optional[float]) -> bool:
        """Edit SL/TP of an open trade; refused once the trade is closed."""
        self._require()
        with self.engine.begin() as conn:
            result = conn.execute(
                trades.update()
                .where(and_(trades.c.id == trade_id, trades.c.status == TradeStatus.OPEN.value))
                .values(stop_loss=stop_loss, take_profit=take_profit)
            )
        return result.rowcount > 0

    # --- wallets ------------------------------------------------------------

    def _apply_leg(self, conn, user_id: str, leg: WalletLeg):
        key = and_(wallets.c.user_id == user_id, wallets.c.type == self.wallet_type, wallets.c.symbol == leg.symbol)
        row = conn.execute(select(wallets.c.id, wallets.c.balance).where(key)).first()
        if leg.min_balance is not None:
            balance = row.balance if row else 0.0
            if balance + BALANCE_EPSILON < leg.min_balance:
                raise _InsufficientBalance(leg.symbol, balance, leg.min_balance)
        if row is None:
            conn.execute(wallets.insert().values(
                user_id=user_id,
                type=self.wallet_type,
                symbol=leg.symbol,
                name=leg.name or leg.symbol,
                balance=leg.balance_delta,
                value=leg.value_delta,
                is_active=True,
            ))
            return
        conn.execute(
            wallets.update().where(wallets.c.id == row.id).values(
                balance=wallets.c.balance + leg.balance_delta,
                value=wallets.c.value + leg.value_delta,
            )
        )

    async def get_wallet(self, user_id: str, symbol: str) -> Optional[Wallet]:
        self._require()
        query = wallets.select().where(and_(
            wallets.c.user_id == user_id, wallets.c.type == self.wallet_type, wallets.c.symbol == symbol
        ))
        with self.engine.connect() as conn:
            row = conn.execute(query).first()
        if row is None:
            return None
        m = row._mapping
        return Wallet(m['user_id'], m['type'], m['symbol'], m['balance'], m['value'], m['name'], m['is_active'])

    async def set_wallet(self, user_id: str, symbol: str, balance: float, value: Optional[float] = None, name: Optional[str] = None):
        """Create or overwrite a wallet row (account management seeding)."""
        self._require()
        value = balance if value is None else value
        key = and_(wallets.c.user_id == user_id, wallets.c.type == self.wallet_type, wallets.c.symbol == symbol)
        with self.engine.begin() as conn:
            row = conn.execute(select(wallets.c.id).where(key)).first()
            if row:
                conn.execute(wallets.update().where(wallets.c.id == row.id).values(balance=balance, value=value))
            else:
                conn.execute(wallets.insert().values(
                    user_id=user_id, type=self.wallet_type, symbol=symbol,
                    name=name or symbol, balance=balance, value=value, is_active=True,
                ))
