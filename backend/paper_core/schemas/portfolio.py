"""
Paper Trading Core - Portfolio Schemas

Snapshots carry no read-time timestamps: two reads of an unchanged
account serialize identically.
"""
from decimal import Decimal
from typing import Optional, List

from pydantic import BaseModel, Field


class BalanceSnapshot(BaseModel):
    """Virtual balance for one account."""
    currency: str
    total: Decimal
    available: Decimal
    locked: Decimal
    initial_balance: Decimal


class PositionSnapshot(BaseModel):
    """Open net position."""
    symbol: str
    side: str
    size: Decimal
    entry_price: Decimal
    cost_basis: Decimal
    realized_pnl: Decimal
    mark_price: Optional[Decimal] = None
    unrealized_pnl: Optional[Decimal] = None


class PerformanceSnapshot(BaseModel):
    """Aggregate performance derived from the fill history."""
    total_trades: int
    closed_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: Decimal = Field(..., description="Percent of closing fills with positive realized P&L")
    avg_win: Decimal
    avg_loss: Decimal
    profit_factor: Decimal = Field(..., description="Gross profit / gross loss, 0 when there are no losses")
    total_fees: Decimal
    max_drawdown: Decimal
    max_drawdown_pct: Decimal
    current_drawdown: Decimal
    current_drawdown_pct: Decimal
    total_return: Decimal
    total_return_pct: Decimal


class PortfolioSnapshot(BaseModel):
    """Balance, positions and performance for one account."""
    account_id: str
    is_paper_trading: bool = True
    balance: BalanceSnapshot
    positions: List[PositionSnapshot]
    performance: PerformanceSnapshot
    realized_pnl: Decimal
    unrealized_pnl: Decimal
    equity: Decimal
    unpriced_symbols: List[str] = Field(default_factory=list)


class TradeStatistics(BaseModel):
    """Counts by side, volume and the most traded symbol."""
    total_trades: int
    buy_trades: int
    sell_trades: int
    total_volume: Decimal
    avg_trade_size: Decimal
    most_traded_symbol: Optional[str] = None
    symbols_traded: int


class SimulationStatsSnapshot(BaseModel):
    """Simulator-wide statistics."""
    total_orders: int
    buy_orders: int
    sell_orders: int
    rejected_orders: int
    total_fees: Decimal
    total_volume: Decimal
    average_slippage_percent: Decimal
    average_fee: Decimal

