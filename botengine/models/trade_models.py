"""
Trade and wallet records as the engine sees them.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from botengine.utils.orders_enum import Side, TradeStatus


@dataclass
class Trade:
	"""One simulated position; exit fields are set together, once."""
	id: str
	user_id: str
	symbol: str
	side: Side
	quantity: float
	price: float  # entry price
	total: float
	status: TradeStatus
	entry_time: datetime
	bot_id: Optional[str] = None
	bot_name: Optional[str] = None
	type: str = "market"
	trade_type: str = "bot"
	environment: str = "simulated"
	stop_loss: Optional[float] = None
	take_profit: Optional[float] = None
	exit_price: Optional[float] = None
	exit_time: Optional[datetime] = None
	pnl: Optional[float] = None
	pnl_percent: Optional[float] = None
	notes: Optional[str] = None

	@property
	def is_open(self) -> bool:
		return self.status == TradeStatus.OPEN


@dataclass
class WalletLeg:
	"""Signed change applied to one wallet inside a fill transaction."""
	symbol: str
	balance_delta: float
	value_delta: float
	name: Optional[str] = None
	# wallet must hold at least this much before the leg applies
	min_balance: Optional[float] = None


@dataclass
class Wallet:
	user_id: str
	type: str
	symbol: str
	balance: float
	value: float
	name: Optional[str] = None
	is_active: bool = True
