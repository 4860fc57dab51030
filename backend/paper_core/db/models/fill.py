"""
Paper Trading Core - Fill Model
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Boolean, Enum as SQLEnum, UniqueConstraint

from paper_core.core.trading.models import OrderSide, OrderType
from paper_core.db.database import Base


class FillRecord(Base):
    """Append-only simulated fill."""

    __tablename__ = "paper_fills"
    __table_args__ = (
        UniqueConstraint("account_id", "sequence", name="uq_paper_fills_account_sequence"),
    )

    pk = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(64), nullable=False, unique=True, index=True)
    account_id = Column(String(64), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)

    # Symbol info
    symbol = Column(String(20), nullable=False, index=True)
    exchange = Column(String(20), nullable=False)

    # Order details
    side = Column(SQLEnum(OrderSide), nullable=False)
    order_type = Column(SQLEnum(OrderType), nullable=False)
    quantity = Column(Numeric(28, 8), nullable=False)
    requested_price = Column(Numeric(28, 8), nullable=True)
    executed_price = Column(Numeric(28, 8), nullable=False)

    # Simulation detail
    fee = Column(Numeric(28, 8), nullable=False)
    fee_percent = Column(Numeric(12, 6), nullable=False)
    slippage = Column(Numeric(28, 8), nullable=False)
    slippage_percent = Column(Numeric(12, 6), nullable=False)
    realized_pnl = Column(Numeric(28, 8), nullable=False)

    client_order_id = Column(String(64), nullable=True)
    grid_id = Column(String(64), nullable=True, index=True)
    is_paper_trade = Column(Boolean, nullable=False, default=True)

    executed_at = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self):
        return f"<FillRecord {self.side.value} {self.symbol} qty={self.quantity} @ {self.executed_price}>"
