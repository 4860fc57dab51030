"""
Paper Trading Core - Slippage Model

Market impact simulation for paper fills. Slippage percent is built from:
- Base slippage rate
- Volatility (higher = more slippage)
- Liquidity (lower = more slippage)
- Order size impact above the liquidity threshold
- Market order multiplier
- Bid/ask spread
- Bounded random multiplier from an injectable random source

Executed prices always move against the taker and never drop below the
price floor.
"""
import random
from dataclasses import dataclass, replace
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Dict

from paper_core.core.trading.models import (
    OrderSide,
    OrderType,
    quantize_money,
    quantize_percent,
)


# Lowest executable price; reference prices below it are rejected
PRICE_FLOOR = Decimal("0.01")


@dataclass(frozen=True)
class MarketConditions:
    """Market condition snapshot for one symbol."""
    volatility: Decimal = Decimal("0.5")  # 0-1 scale
    liquidity: Decimal = Decimal("0.65")  # 0-1 scale
    spread: Decimal = Decimal("0.03")  # bid/ask spread percent
    volume: Decimal = Decimal("0.75")  # relative volume


class MarketConditionsRegistry:
    """Latest known market conditions per symbol, with defaults for unknown symbols."""

    def __init__(self, default: Optional[MarketConditions] = None):
        self.default = default or MarketConditions()
        self._conditions: Dict[str, MarketConditions] = {}

    def get(self, symbol: str) -> MarketConditions:
        return self._conditions.get(symbol.upper(), self.default)

    def update(self, symbol: str, **changes) -> MarketConditions:
        """Partially update the conditions for a symbol."""
        current = self.get(symbol)
        updated = replace(current, **{k: Decimal(str(v)) for k, v in changes.items()})
        self._conditions[symbol.upper()] = updated
        return updated

    def clear(self, symbol: Optional[str] = None) -> None:
        if symbol is None:
            self._conditions.clear()
        else:
            self._conditions.pop(symbol.upper(), None)


@dataclass
class SlippageConfig:
    """Slippage configuration. Percent values (0.05 = 0.05%)."""
    enabled: bool = True

    base_slippage_percent: Decimal = Decimal("0.05")

    # Cap on the final slippage percent
    max_slippage_percent: Decimal = Decimal("2.0")

    volatility_multiplier: Decimal = Decimal("2.0")

    # Order value above which size impact applies
    liquidity_impact_threshold: Decimal = Decimal("10000")

    market_order_multiplier: Decimal = Decimal("1.2")

    random_min: Decimal = Decimal("0.7")
    random_max: Decimal = Decimal("1.3")

    @classmethod
    def from_settings(cls, settings) -> "SlippageConfig":
        return cls(
            enabled=settings.ENABLE_SLIPPAGE,
            base_slippage_percent=Decimal(settings.BASE_SLIPPAGE_PERCENT),
            max_slippage_percent=Decimal(settings.MAX_SLIPPAGE_PERCENT),
            volatility_multiplier=Decimal(settings.VOLATILITY_MULTIPLIER),
            liquidity_impact_threshold=Decimal(settings.LIQUIDITY_IMPACT_THRESHOLD),
            market_order_multiplier=Decimal(settings.MARKET_ORDER_SLIPPAGE_MULTIPLIER),
            random_min=Decimal(settings.SLIPPAGE_RANDOM_MIN),
            random_max=Decimal(settings.SLIPPAGE_RANDOM_MAX),
        )


@dataclass(frozen=True)
class SlippageResult:
    """Result of applying slippage to a reference price."""
    executed_price: Decimal
    slippage_amount: Decimal
    slippage_percent: Decimal


def _clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    return max(low, min(high, value))


class SlippageModel:
    """
    Stochastic slippage model.

    The random source is injected; production wiring passes a fresh
    ``random.Random()``, tests pass ``random.Random(seed)``.
    """

    def __init__(
        self,
        config: Optional[SlippageConfig] = None,
        rng: Optional[random.Random] = None
    ):
        self.config = config or SlippageConfig()
        self.rng = rng or random.Random()

    def slippage_percent(
        self,
        price: Decimal,
        quantity: Decimal,
        conditions: MarketConditions,
        order_type: OrderType = OrderType.MARKET,
        rng: Optional[random.Random] = None
    ) -> Decimal:
        """
        Calculate slippage percent for an order.

        Non-decreasing in volatility and non-increasing in liquidity for a
        given random draw.
        """
        config = self.config
        if not config.enabled or config.base_slippage_percent <= 0:
            return Decimal("0")

        volatility = max(Decimal("0"), conditions.volatility)
        liquidity = _clamp(conditions.liquidity, Decimal("0"), Decimal("1"))
        spread = max(Decimal("0"), conditions.spread)

        pct = config.base_slippage_percent
        pct *= 1 + volatility * config.volatility_multiplier
        pct *= 2 - liquidity

        order_value = quantity * price
        threshold = config.liquidity_impact_threshold
        if threshold > 0 and order_value > threshold:
            pct *= (order_value / threshold).sqrt()

        if order_type == OrderType.MARKET:
            pct *= config.market_order_multiplier

        pct *= 1 + spread * 10

        source = rng or self.rng
        span = config.random_max - config.random_min
        pct *= config.random_min + Decimal(str(source.random())) * span

        return min(pct, config.max_slippage_percent)

    def slip(
        self,
        price: Decimal,
        quantity: Decimal,
        side: OrderSide,
        conditions: Optional[MarketConditions] = None,
        order_type: OrderType = OrderType.MARKET,
        rng: Optional[random.Random] = None
    ) -> SlippageResult:
        """
        Apply slippage to a reference price.

        BUY executes at or above ``price``; SELL at or below, floored at
        PRICE_FLOOR.

        Raises:
            ValueError: ``price`` is below PRICE_FLOOR
        """
        if price < PRICE_FLOOR:
            raise ValueError(f"Reference price {price} is below the {PRICE_FLOOR} floor")

        conditions = conditions or MarketConditions()
        pct = self.slippage_percent(price, quantity, conditions, order_type, rng)

        adjustment = price * pct / Decimal("100")
        if side == OrderSide.BUY:
            executed = price + adjustment
        else:
            executed = max(price - adjustment, PRICE_FLOOR)

        executed = quantize_money(executed)
        if side == OrderSide.SELL:
            executed = min(executed, price)

        return SlippageResult(
            executed_price=executed,
            slippage_amount=quantize_money(abs(executed - price)),
            slippage_percent=quantize_percent(pct)
        )

    def estimate(
        self,
        price: Decimal,
        quantity: Decimal,
        conditions: Optional[MarketConditions] = None,
        order_type: OrderType = OrderType.MARKET
    ) -> Dict[str, Decimal]:
        """Expected slippage range without consuming the random source."""
        conditions = conditions or MarketConditions()
        low = self.slippage_percent(price, quantity, conditions, order_type, rng=_Fixed(0.0))
        high = self.slippage_percent(price, quantity, conditions, order_type, rng=_Fixed(1.0))
        mid = ((low + high) / 2).quantize(Decimal("0.000001"), rounding=ROUND_HALF_UP)
        return {"min_percent": quantize_percent(low), "expected_percent": mid, "max_percent": quantize_percent(high)}


class _Fixed(random.Random):
    """Random source pinned to one value."""

    def __init__(self, value: float):
        super().__init__()
        self._value = value

    def random(self) -> float:
        return self._value
