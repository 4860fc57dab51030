"""
Paper Trading Core - Grid Strategy Module

Grid ladders, sizing and lifecycle state. The engine that runs grids
against ticks lives in ``paper_core.core.grid.engine``.
"""
from paper_core.core.grid.models import (
    Grid,
    GridLevel,
    GridLot,
    GridEvent,
    GridEventType,
    GridStatus,
)
from paper_core.core.grid.levels import (
    GridCalculationResult,
    GridRiskAssessment,
    RiskRecommendation,
    generate_levels,
    generate_fibonacci_levels,
    dynamic_spacing,
    build_calculation_result,
)

__all__ = [
    "Grid",
    "GridLevel",
    "GridLot",
    "GridEvent",
    "GridEventType",
    "GridStatus",
    "GridCalculationResult",
    "GridRiskAssessment",
    "RiskRecommendation",
    "generate_levels",
    "generate_fibonacci_levels",
    "dynamic_spacing",
    "build_calculation_result",
]
