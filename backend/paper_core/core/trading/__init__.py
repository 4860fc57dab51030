"""
Paper Trading Core - Trading Engine Module

Core trading functionality including:
- Virtual balance ledger
- Fee and slippage models
- Position tracking
- P&L calculation

The order simulator lives in ``paper_core.core.trading.execution``.
"""
from paper_core.core.trading.models import (
    OrderSide,
    OrderType,
    SimulatedOrder,
    quantize_money,
    quantize_percent,
)
from paper_core.core.trading.locks import KeyedLocks
from paper_core.core.trading.ledger import (
    Ledger,
    AccountBalance,
    BalanceDirection,
)
from paper_core.core.trading.fees import (
    FeeModel,
    FeeConfig,
    FeeQuote,
)
from paper_core.core.trading.slippage import (
    SlippageModel,
    SlippageConfig,
    SlippageResult,
    MarketConditions,
    MarketConditionsRegistry,
)
from paper_core.core.trading.position_tracker import (
    PositionTracker,
    Position,
    PositionChange,
)
from paper_core.core.trading.pnl_calculator import (
    PnLCalculator,
    RealizedPnL,
    UnrealizedPnL,
    Drawdown,
    PerformanceMetrics,
)

__all__ = [
    # Models
    "OrderSide",
    "OrderType",
    "SimulatedOrder",
    "quantize_money",
    "quantize_percent",
    "KeyedLocks",

    # Ledger
    "Ledger",
    "AccountBalance",
    "BalanceDirection",

    # Fees / Slippage
    "FeeModel",
    "FeeConfig",
    "FeeQuote",
    "SlippageModel",
    "SlippageConfig",
    "SlippageResult",
    "MarketConditions",
    "MarketConditionsRegistry",

    # Position Tracking
    "PositionTracker",
    "Position",
    "PositionChange",

    # P&L
    "PnLCalculator",
    "RealizedPnL",
    "UnrealizedPnL",
    "Drawdown",
    "PerformanceMetrics",
]
