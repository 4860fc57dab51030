"""
Paper Trading Core - Grid Model
"""
from sqlalchemy import Column, String, Numeric, DateTime, Text, JSON, Enum as SQLEnum

from paper_core.core.grid.models import GridStatus
from paper_core.db.database import Base


class GridRecord(Base):
    """Grid definition and mutable level-fill state."""

    __tablename__ = "paper_grids"

    id = Column(String(64), primary_key=True)
    account_id = Column(String(64), nullable=False, index=True)

    symbol = Column(String(20), nullable=False, index=True)
    exchange = Column(String(20), nullable=False)
    strategy = Column(String(50), nullable=False, default="standard")
    status = Column(SQLEnum(GridStatus), nullable=False, default=GridStatus.ACTIVE, index=True)

    # Ladder
    base_price = Column(Numeric(28, 8), nullable=False)
    spacing = Column(Numeric(28, 8), nullable=True)
    max_exposure = Column(Numeric(28, 8), nullable=True)

    # Levels, lots and events as JSON with decimal strings
    levels = Column(JSON, nullable=False, default=list)
    open_lots = Column(JSON, nullable=False, default=list)
    events = Column(JSON, nullable=False, default=list)

    # Profit tracking
    realized_profit = Column(Numeric(28, 8), nullable=False, default=0)
    fees_paid = Column(Numeric(28, 8), nullable=False, default=0)
    total_profit = Column(Numeric(28, 8), nullable=True)
    last_price = Column(Numeric(28, 8), nullable=True)

    close_reason = Column(String(200), nullable=True)
    error = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)
    closed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<GridRecord {self.id} {self.symbol} status={self.status.value}>"
