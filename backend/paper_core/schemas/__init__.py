"""
Paper Trading Core - Pydantic Schemas
"""
from paper_core.schemas.orders import (
    MarketConditionsSchema,
    MarketOrderRequest,
    LimitOrderRequest,
    OrderRequest,
    parse_order_request,
)
from paper_core.schemas.grid import (
    GridSpec,
    GridLevelResponse,
    GridStatusResponse,
    CloseGridResponse,
    parse_grid_spec,
)
from paper_core.schemas.portfolio import (
    BalanceSnapshot,
    PositionSnapshot,
    PerformanceSnapshot,
    PortfolioSnapshot,
    TradeStatistics,
    SimulationStatsSnapshot,
)

__all__ = [
    # Orders
    "MarketConditionsSchema",
    "MarketOrderRequest",
    "LimitOrderRequest",
    "OrderRequest",
    "parse_order_request",
    # Grid
    "GridSpec",
    "GridLevelResponse",
    "GridStatusResponse",
    "CloseGridResponse",
    "parse_grid_spec",
    # Portfolio
    "BalanceSnapshot",
    "PositionSnapshot",
    "PerformanceSnapshot",
    "PortfolioSnapshot",
    "TradeStatistics",
    "SimulationStatsSnapshot",
]
