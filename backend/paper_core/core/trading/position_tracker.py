"""
Paper Trading Core - Position Tracker

Net-per-symbol positions derived from fills:
- Increase: size and cost basis grow; entry price is cost basis / size
- Decrease: cost basis released pro rata, realized P&L on the closed quantity
- Reversal: remainder opens at the fill's executed price
- Flat: position removed, realized P&L kept in the account total

Cost basis is the cash actually exchanged for the open quantity (fill
notionals, fees excluded), so closing a position to flat realizes exactly
proceeds minus cost.
"""
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any

from paper_core.core.trading.models import OrderSide, quantize_money
from paper_core.utils.exceptions import InsufficientPositionError


@dataclass(frozen=True)
class Position:
    """Open net position. ``size`` is signed: positive long, negative short."""
    account_id: str
    symbol: str
    size: Decimal
    cost_basis: Decimal
    realized_pnl: Decimal
    opened_at: datetime
    updated_at: datetime

    @property
    def side(self) -> str:
        return "long" if self.size > 0 else "short"

    @property
    def direction(self) -> int:
        return 1 if self.size > 0 else -1

    @property
    def entry_price(self) -> Decimal:
        """Volume-weighted entry price, rounded for display."""
        return quantize_money(self.cost_basis / abs(self.size))

    def unrealized_pnl(self, mark_price: Decimal) -> Decimal:
        """(mark x |size| - cost basis) x direction, computed on demand."""
        return quantize_money((mark_price * abs(self.size) - self.cost_basis) * self.direction)

    def to_dict(self, mark_price: Optional[Decimal] = None) -> Dict[str, Any]:
        data = {
            "symbol": self.symbol,
            "side": self.side,
            "size": str(self.size),
            "entry_price": str(self.entry_price),
            "cost_basis": str(self.cost_basis),
            "realized_pnl": str(self.realized_pnl),
            "mark_price": None,
            "unrealized_pnl": None,
        }
        if mark_price is not None:
            data["mark_price"] = str(mark_price)
            data["unrealized_pnl"] = str(self.unrealized_pnl(mark_price))
        return data


@dataclass(frozen=True)
class PositionChange:
    """Effect of one fill on a symbol's position, computed before commit."""
    account_id: str
    symbol: str
    before: Optional[Position]
    after: Optional[Position]
    realized_pnl: Decimal


class PositionTracker:
    """
    Position Tracker

    Responsible for:
    - Previewing the effect of a fill (without mutating)
    - Applying committed fills
    - Account-level realized P&L totals
    """

    def __init__(self, allow_short_selling: bool = False):
        self.allow_short_selling = allow_short_selling
        self._positions: Dict[str, Dict[str, Position]] = {}
        self._realized: Dict[str, Decimal] = {}

    # ==================== QUERIES ====================

    def get_position(self, account_id: str, symbol: str) -> Optional[Position]:
        return self._positions.get(account_id, {}).get(symbol.upper())

    def get_positions(self, account_id: str) -> List[Position]:
        """Open positions sorted by symbol."""
        positions = self._positions.get(account_id, {})
        return [positions[s] for s in sorted(positions)]

    def realized_total(self, account_id: str) -> Decimal:
        """Realized P&L over every fill, including positions already closed."""
        return self._realized.get(account_id, Decimal("0"))

    def unrealized_total(self, account_id: str, marks: Dict[str, Decimal]) -> Decimal:
        total = Decimal("0")
        for position in self.get_positions(account_id):
            mark = marks.get(position.symbol)
            if mark is not None:
                total += position.unrealized_pnl(mark)
        return total

    # ==================== FILL PROCESSING ====================

    def preview(
        self,
        account_id: str,
        symbol: str,
        side: OrderSide,
        quantity: Decimal,
        price: Decimal,
        at: datetime
    ) -> PositionChange:
        """
        Compute the position after a fill without applying it.

        Raises:
            InsufficientPositionError: a sell would take a flat or long
                position below zero while short selling is disabled
        """
        symbol = symbol.upper()
        before = self.get_position(account_id, symbol)
        old_size = before.size if before else Decimal("0")
        signed_qty = quantity * side.sign
        new_size = old_size + signed_qty

        if not self.allow_short_selling and new_size < 0:
            raise InsufficientPositionError(
                f"Cannot sell {quantity} {symbol}: position size is {max(old_size, Decimal('0'))}",
                details={
                    "symbol": symbol,
                    "requested": str(quantity),
                    "held": str(max(old_size, Decimal("0"))),
                }
            )

        realized = Decimal("0")
        notional = quantize_money(quantity * price)

        if before is None or old_size == 0:
            after = Position(
                account_id=account_id,
                symbol=symbol,
                size=signed_qty,
                cost_basis=notional,
                realized_pnl=Decimal("0"),
                opened_at=at,
                updated_at=at
            )
        elif (old_size > 0) == (signed_qty > 0):
            after = replace(
                before,
                size=new_size,
                cost_basis=before.cost_basis + notional,
                updated_at=at
            )
        else:
            closed = min(quantity, abs(old_size))
            if closed == abs(old_size):
                released = before.cost_basis
            else:
                released = quantize_money(before.cost_basis * closed / abs(old_size))

            # Closed leg's share of this fill's notional; the rest opens any reversal
            closed_notional = notional if closed == quantity else quantize_money(closed * price)
            realized = (closed_notional - released) * before.direction

            if new_size == 0:
                after = None
            elif (new_size > 0) == (old_size > 0):
                after = replace(
                    before,
                    size=new_size,
                    cost_basis=before.cost_basis - released,
                    realized_pnl=before.realized_pnl + realized,
                    updated_at=at
                )
            else:
                after = Position(
                    account_id=account_id,
                    symbol=symbol,
                    size=new_size,
                    cost_basis=notional - closed_notional,
                    realized_pnl=before.realized_pnl + realized,
                    opened_at=at,
                    updated_at=at
                )

        return PositionChange(
            account_id=account_id,
            symbol=symbol,
            before=before,
            after=after,
            realized_pnl=realized
        )

    def apply(self, change: PositionChange) -> Optional[Position]:
        """Commit a previewed change."""
        positions = self._positions.setdefault(change.account_id, {})
        if change.after is None:
            positions.pop(change.symbol, None)
        else:
            positions[change.symbol] = change.after

        self._realized[change.account_id] = self.realized_total(change.account_id) + change.realized_pnl
        return change.after

    def reset(self, account_id: str) -> None:
        self._positions.pop(account_id, None)
        self._realized.pop(account_id, None)
