"""
Paper Trading Core - Fee Model

Deterministic venue fee schedule:
- Per-venue base rate (unknown venues fall back to the default rate)
- Volume tier discounts on the order notional
- Maker discount for limit orders
- Per-venue minimum rate floor
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Tuple, Optional

from paper_core.core.trading.models import OrderType, quantize_money, quantize_percent


@dataclass
class FeeConfig:
    """Fee schedule configuration. Rates are percentages (0.1 = 0.1%)."""
    enabled: bool = True

    default_fee_percent: Decimal = Decimal("0.1")

    venue_fee_percent: Dict[str, Decimal] = field(default_factory=lambda: {
        "binance": Decimal("0.09"),
        "kucoin": Decimal("0.1"),
    })

    # Floor applied after every discount
    venue_min_fee_percent: Dict[str, Decimal] = field(default_factory=lambda: {
        "binance": Decimal("0.075"),
    })

    maker_discount: Decimal = Decimal("0.8")

    # (minimum notional, multiplier), highest threshold first
    tiers: List[Tuple[Decimal, Decimal]] = field(default_factory=lambda: [
        (Decimal("100000"), Decimal("0.8")),
        (Decimal("50000"), Decimal("0.9")),
    ])

    @classmethod
    def from_settings(cls, settings) -> "FeeConfig":
        return cls(
            enabled=settings.ENABLE_FEES,
            default_fee_percent=Decimal(settings.DEFAULT_FEE_PERCENT),
            venue_fee_percent={k.lower(): Decimal(v) for k, v in settings.VENUE_FEE_PERCENT.items()},
            venue_min_fee_percent={k.lower(): Decimal(v) for k, v in settings.VENUE_MIN_FEE_PERCENT.items()},
            maker_discount=Decimal(settings.MAKER_FEE_DISCOUNT),
            tiers=sorted(
                ((Decimal(t), Decimal(m)) for t, m in settings.FEE_TIERS),
                key=lambda tier: tier[0],
                reverse=True
            ),
        )


@dataclass(frozen=True)
class FeeQuote:
    """Fee for one fill."""
    fee_amount: Decimal
    fee_percent: Decimal


class FeeModel:
    """Pure fee calculator; safe to share across accounts."""

    def __init__(self, config: Optional[FeeConfig] = None):
        self.config = config or FeeConfig()

    def rate_for(
        self,
        venue: str,
        notional: Decimal = Decimal("0"),
        order_type: OrderType = OrderType.MARKET
    ) -> Decimal:
        """Effective fee percent for a venue, order size and order type."""
        config = self.config
        venue = (venue or "").lower()

        rate = config.venue_fee_percent.get(venue, config.default_fee_percent)

        for threshold, multiplier in config.tiers:
            if notional > threshold:
                rate *= multiplier
                break

        if order_type == OrderType.LIMIT:
            rate *= config.maker_discount

        floor = config.venue_min_fee_percent.get(venue)
        if floor is not None:
            rate = max(rate, floor)

        return rate

    def fee(
        self,
        quantity: Decimal,
        price: Decimal,
        venue: str,
        order_type: OrderType = OrderType.MARKET
    ) -> FeeQuote:
        """
        Calculate the fee for a fill.

        Args:
            quantity: Filled quantity
            price: Executed price
            venue: Exchange identifier
            order_type: LIMIT orders get the maker discount

        Returns:
            FeeQuote with amount in settlement currency and the applied percent
        """
        if not self.config.enabled:
            return FeeQuote(fee_amount=Decimal("0"), fee_percent=Decimal("0"))

        notional = quantity * price
        rate = self.rate_for(venue, notional, order_type)
        amount = notional * rate / Decimal("100")

        return FeeQuote(
            fee_amount=quantize_money(amount),
            fee_percent=quantize_percent(rate)
        )
