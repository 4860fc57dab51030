"""
Paper Trading Core - Grid Ladder Calculation

Builds the level ladder around a base price and sizes the grid before it
is created: capital required, rough profit estimate and risk assessment.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional, List, Dict, Any

from paper_core.core.grid.models import GridLevel
from paper_core.core.trading.models import OrderSide, quantize_money


DEFAULT_MAX_EXPOSURE = Decimal("10000")


class RiskRecommendation(str, Enum):
    SAFE = "safe"
    MODERATE = "moderate"
    RISKY = "risky"
    DANGEROUS = "dangerous"


@dataclass
class GridRiskAssessment:
    """Exposure and loss bounds for a ladder."""
    max_exposure: Decimal
    max_possible_loss: Decimal
    break_even_price: Decimal
    exposure_limit: Decimal
    recommendation: RiskRecommendation


@dataclass
class GridCalculationResult:
    """Sizing summary for a ladder."""
    levels: List[GridLevel]
    total_levels: int
    total_quantity: Decimal
    required_balance: Decimal
    estimated_profit: Decimal
    risk_assessment: GridRiskAssessment

    def to_dict(self) -> Dict[str, Any]:
        risk = self.risk_assessment
        return {
            "levels": [level.to_dict() for level in self.levels],
            "total_levels": self.total_levels,
            "total_quantity": str(self.total_quantity),
            "required_balance": str(self.required_balance),
            "estimated_profit": str(self.estimated_profit),
            "risk_assessment": {
                "max_exposure": str(risk.max_exposure),
                "max_possible_loss": str(risk.max_possible_loss),
                "break_even_price": str(risk.break_even_price),
                "exposure_limit": str(risk.exposure_limit),
                "recommendation": risk.recommendation.value,
            },
        }


def generate_levels(
    base_price: Decimal,
    spacing: Decimal,
    buy_levels: int,
    sell_levels: int,
    quantity: Decimal
) -> List[GridLevel]:
    """
    Buy levels at base - spacing * i, sell levels at base + spacing * i.

    Returned in ascending price order with indexes assigned in that order.
    """
    prices = [(base_price - spacing * i, OrderSide.BUY) for i in range(1, buy_levels + 1)]
    prices += [(base_price + spacing * i, OrderSide.SELL) for i in range(1, sell_levels + 1)]
    prices.sort(key=lambda item: item[0])

    return [
        GridLevel(index=i, price=quantize_money(price), quantity=quantity, side=side)
        for i, (price, side) in enumerate(prices)
    ]


FIBONACCI_RETRACEMENTS = (Decimal("0.236"), Decimal("0.382"), Decimal("0.5"), Decimal("0.618"), Decimal("0.786"))
FIBONACCI_EXTENSIONS = (Decimal("1.272"), Decimal("1.618"))


def generate_fibonacci_levels(
    base_price: Decimal,
    swing_high: Decimal,
    swing_low: Decimal,
    quantity: Decimal,
    include_extensions: bool = False
) -> List[GridLevel]:
    """
    Levels at the Fibonacci retracements of a swing, optionally with
    extensions projected above the swing high.

    Levels above ``base_price`` sell, levels below buy; a level landing on
    the base price is dropped.
    """
    move = swing_high - swing_low
    prices = [swing_high - move * ratio for ratio in FIBONACCI_RETRACEMENTS]
    if include_extensions:
        prices += [swing_low + move * ratio for ratio in FIBONACCI_EXTENSIONS]

    base = quantize_money(base_price)
    ladder = sorted({quantize_money(price) for price in prices} - {base})

    return [
        GridLevel(
            index=i,
            price=price,
            quantity=quantity,
            side=OrderSide.SELL if price > base else OrderSide.BUY
        )
        for i, price in enumerate(ladder)
    ]


def dynamic_spacing(spacing: Decimal, volatility: Decimal) -> Decimal:
    """Widen spacing with market volatility (0-1 scale): spacing x (1 + volatility)."""
    return quantize_money(spacing * (Decimal("1") + volatility))


def estimate_profit(levels: List[GridLevel]) -> Decimal:
    """Rough estimate: half of the levels complete one round trip of the average spacing."""
    if len(levels) < 2:
        return Decimal("0")

    ordered = sorted(levels, key=lambda level: level.price)
    gaps = [abs(b.price - a.price) for a, b in zip(ordered, ordered[1:])]
    avg_spacing = sum(gaps, Decimal("0")) / len(gaps)
    avg_quantity = sum((level.quantity for level in levels), Decimal("0")) / len(levels)

    return quantize_money(avg_spacing * avg_quantity * len(levels) * Decimal("0.5"))


def assess_risk(levels: List[GridLevel], exposure_limit: Optional[Decimal] = None) -> GridRiskAssessment:
    limit = exposure_limit if exposure_limit is not None else DEFAULT_MAX_EXPOSURE

    max_exposure = sum((level.notional for level in levels), Decimal("0"))
    if levels:
        low = min(level.price for level in levels)
        break_even = sum((level.price for level in levels), Decimal("0")) / len(levels)
    else:
        low = Decimal("0")
        break_even = Decimal("0")

    # Every buy level filled with price resting on the lowest rung
    max_loss = sum(
        ((level.price - low) * level.quantity for level in levels if level.side == OrderSide.BUY),
        Decimal("0")
    )

    if max_exposure > limit:
        recommendation = RiskRecommendation.DANGEROUS
    elif max_exposure > limit * Decimal("0.8"):
        recommendation = RiskRecommendation.RISKY
    elif max_exposure > limit * Decimal("0.5"):
        recommendation = RiskRecommendation.MODERATE
    else:
        recommendation = RiskRecommendation.SAFE

    return GridRiskAssessment(
        max_exposure=quantize_money(max_exposure),
        max_possible_loss=quantize_money(max_loss),
        break_even_price=break_even.quantize(Decimal("0.00000001"), rounding=ROUND_HALF_UP),
        exposure_limit=limit,
        recommendation=recommendation
    )


def build_calculation_result(
    levels: List[GridLevel],
    exposure_limit: Optional[Decimal] = None
) -> GridCalculationResult:
    """Summarize a ladder: quantity, capital for the buy side, profit estimate, risk."""
    return GridCalculationResult(
        levels=levels,
        total_levels=len(levels),
        total_quantity=sum((level.quantity for level in levels), Decimal("0")),
        required_balance=sum(
            (level.notional for level in levels if level.side == OrderSide.BUY),
            Decimal("0")
        ),
        estimated_profit=estimate_profit(levels),
        risk_assessment=assess_risk(levels, exposure_limit)
    )
