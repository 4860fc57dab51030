"""
Paper Trading Core - Trading Domain Models

Order enums and the immutable simulated fill record shared by the
simulator, the position tracker, the P&L calculator and the repositories.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional, Dict, Any


# Fixed precision for every monetary and price value crossing a boundary
MONEY_PLACES = Decimal("0.00000001")
PERCENT_PLACES = Decimal("0.000001")


def quantize_money(value: Decimal) -> Decimal:
    """Round a monetary amount or price to the system precision."""
    return value.quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def quantize_percent(value: Decimal) -> Decimal:
    return value.quantize(PERCENT_PLACES, rounding=ROUND_HALF_UP)


class OrderSide(str, Enum):
    """Order side."""
    BUY = "buy"
    SELL = "sell"

    @property
    def sign(self) -> int:
        return 1 if self is OrderSide.BUY else -1

    @property
    def opposite(self) -> "OrderSide":
        return OrderSide.SELL if self is OrderSide.BUY else OrderSide.BUY


class OrderType(str, Enum):
    """Order type."""
    MARKET = "market"
    LIMIT = "limit"


@dataclass(frozen=True)
class SimulatedOrder:
    """
    A filled paper trade.

    Immutable once created. ``is_paper_trade`` is not an init argument and
    is always True.
    """
    id: str
    account_id: str
    sequence: int
    symbol: str
    exchange: str
    side: OrderSide
    order_type: OrderType
    quantity: Decimal
    requested_price: Optional[Decimal]
    executed_price: Decimal
    fee: Decimal
    fee_percent: Decimal
    slippage: Decimal
    slippage_percent: Decimal
    realized_pnl: Decimal
    executed_at: datetime
    client_order_id: Optional[str] = None
    grid_id: Optional[str] = None
    is_paper_trade: bool = field(default=True, init=False)

    @property
    def notional(self) -> Decimal:
        """Quantity times executed price."""
        return quantize_money(self.quantity * self.executed_price)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API response."""
        return {
            "id": self.id,
            "account_id": self.account_id,
            "sequence": self.sequence,
            "symbol": self.symbol,
            "exchange": self.exchange,
            "side": self.side.value,
            "order_type": self.order_type.value,
            "quantity": str(self.quantity),
            "requested_price": str(self.requested_price) if self.requested_price is not None else None,
            "executed_price": str(self.executed_price),
            "fee": str(self.fee),
            "fee_percent": str(self.fee_percent),
            "slippage": str(self.slippage),
            "slippage_percent": str(self.slippage_percent),
            "realized_pnl": str(self.realized_pnl),
            "executed_at": self.executed_at.isoformat(),
            "client_order_id": self.client_order_id,
            "grid_id": self.grid_id,
            "is_paper_trade": True,
        }
