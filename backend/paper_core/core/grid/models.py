"""
Paper Trading Core - Grid Domain Models

A grid is a static ladder of buy/sell price levels for one symbol. Levels
flip to filled once the order simulator fills them; the ladder itself
never changes after creation.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List, Dict, Any

from paper_core.core.trading.models import OrderSide, quantize_money


class GridStatus(str, Enum):
    """Grid lifecycle status."""
    ACTIVE = "active"
    PAUSED = "paused"
    CLOSED = "closed"
    ERROR = "error"


class GridEventType(str, Enum):
    """Grid event types."""
    CREATED = "created"
    LEVEL_FILLED = "level_filled"
    LEVEL_SKIPPED = "level_skipped"
    PAUSED = "paused"
    RESUMED = "resumed"
    CLOSED = "closed"
    ERROR = "error"


def _dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass
class GridLevel:
    """One rung of the ladder."""
    index: int
    price: Decimal
    quantity: Decimal
    side: OrderSide
    filled: bool = False
    fill_id: Optional[str] = None
    filled_at: Optional[datetime] = None

    @property
    def notional(self) -> Decimal:
        return quantize_money(self.price * self.quantity)

    def is_crossed(self, price: Decimal) -> bool:
        """Buy levels trigger at or below their price, sell levels at or above."""
        if self.side == OrderSide.BUY:
            return price <= self.price
        return price >= self.price

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "price": str(self.price),
            "quantity": str(self.quantity),
            "side": self.side.value,
            "filled": self.filled,
            "fill_id": self.fill_id,
            "filled_at": _dt(self.filled_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GridLevel":
        return cls(
            index=int(data["index"]),
            price=Decimal(data["price"]),
            quantity=Decimal(data["quantity"]),
            side=OrderSide(data["side"]),
            filled=bool(data.get("filled", False)),
            fill_id=data.get("fill_id"),
            filled_at=_parse_dt(data.get("filled_at")),
        )


@dataclass
class GridLot:
    """Grid-owned open exposure not yet paired with an opposite fill."""
    side: OrderSide
    price: Decimal
    quantity: Decimal

    def unrealized(self, mark_price: Decimal) -> Decimal:
        return (mark_price - self.price) * self.quantity * self.side.sign

    def to_dict(self) -> Dict[str, str]:
        return {"side": self.side.value, "price": str(self.price), "quantity": str(self.quantity)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GridLot":
        return cls(side=OrderSide(data["side"]), price=Decimal(data["price"]), quantity=Decimal(data["quantity"]))


@dataclass
class GridEvent:
    """Entry in a grid's event log."""
    type: GridEventType
    at: datetime
    description: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "at": self.at.isoformat(),
            "description": self.description,
            "data": self.data,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GridEvent":
        return cls(
            type=GridEventType(data["type"]),
            at=datetime.fromisoformat(data["at"]),
            description=data.get("description", ""),
            data=dict(data.get("data") or {}),
        )


@dataclass
class Grid:
    """Grid strategy instance owned by one account."""
    id: str
    account_id: str
    symbol: str
    exchange: str
    strategy: str
    base_price: Decimal
    spacing: Optional[Decimal]
    levels: List[GridLevel]
    status: GridStatus = GridStatus.ACTIVE
    realized_profit: Decimal = Decimal("0")
    fees_paid: Decimal = Decimal("0")
    total_profit: Optional[Decimal] = None
    open_lots: List[GridLot] = field(default_factory=list)
    max_exposure: Optional[Decimal] = None
    last_price: Optional[Decimal] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    close_reason: Optional[str] = None
    error: Optional[str] = None
    events: List[GridEvent] = field(default_factory=list)

    @property
    def filled_levels(self) -> List[GridLevel]:
        return [level for level in self.levels if level.filled]

    @property
    def active_levels(self) -> List[GridLevel]:
        return [level for level in self.levels if not level.filled]

    def level(self, index: int) -> GridLevel:
        for level in self.levels:
            if level.index == index:
                return level
        raise KeyError(index)

    def unrealized_pnl(self, mark_price: Optional[Decimal]) -> Decimal:
        """Unrealized value of the grid's unpaired lots at a mark price."""
        if mark_price is None:
            return Decimal("0")
        return quantize_money(sum((lot.unrealized(mark_price) for lot in self.open_lots), Decimal("0")))
