"""
Paper Trading Core - Order Schemas

Tagged order requests validated at the boundary before they reach the
order simulator.
"""
from decimal import Decimal
from typing import Optional, Union, Literal, Any, Dict, List, Annotated

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from paper_core.core.trading.models import OrderSide
from paper_core.core.trading.slippage import PRICE_FLOOR, MarketConditions
from paper_core.utils.exceptions import InvalidOrderError


class MarketConditionsSchema(BaseModel):
    """Explicit market condition snapshot supplied with an order."""
    volatility: Decimal = Field(Decimal("0.5"), ge=0, le=1)
    liquidity: Decimal = Field(Decimal("0.65"), ge=0, le=1)
    spread: Decimal = Field(Decimal("0.03"), ge=0)
    volume: Decimal = Field(Decimal("0.75"), ge=0)

    def to_domain(self) -> MarketConditions:
        return MarketConditions(
            volatility=self.volatility,
            liquidity=self.liquidity,
            spread=self.spread,
            volume=self.volume,
        )


class OrderRequestBase(BaseModel):
    """Fields shared by every order type."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    symbol: str = Field(..., min_length=1, max_length=20, description="Trading pair symbol, e.g. BTCUSDT")
    side: OrderSide
    quantity: Decimal = Field(..., gt=0)
    exchange: str = Field(..., min_length=1, max_length=20, description="Venue identifier")
    client_order_id: Optional[str] = Field(None, max_length=64)
    conditions: Optional[MarketConditionsSchema] = None

    @field_validator("symbol")
    @classmethod
    def normalize_symbol(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("symbol must not be blank")
        return v

    @field_validator("side", mode="before")
    @classmethod
    def lower_side(cls, v):
        return v.lower() if isinstance(v, str) else v

    @field_validator("exchange")
    @classmethod
    def normalize_exchange(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("exchange must not be blank")
        return v


class MarketOrderRequest(OrderRequestBase):
    """Market order. ``price`` is the reference price; omitted means use the feed."""
    order_type: Literal["market"] = "market"
    price: Optional[Decimal] = Field(None, ge=PRICE_FLOOR)

    @property
    def reference_price(self) -> Optional[Decimal]:
        return self.price


class LimitOrderRequest(OrderRequestBase):
    """
    Limit order.

    Fills at ``limit_price`` when marketable against ``mark_price`` (or the
    feed's latest mark when omitted).
    """
    order_type: Literal["limit"] = "limit"
    limit_price: Decimal = Field(..., ge=PRICE_FLOOR)
    mark_price: Optional[Decimal] = Field(None, gt=0)

    @property
    def reference_price(self) -> Decimal:
        return self.limit_price


OrderRequest = Annotated[
    Union[MarketOrderRequest, LimitOrderRequest],
    Field(discriminator="order_type"),
]

_order_request_adapter = TypeAdapter(OrderRequest)


def validation_details(exc: ValidationError) -> Dict[str, List[Dict[str, Any]]]:
    """Field errors in a plain, loggable shape."""
    return {
        "errors": [
            {
                "loc": ".".join(str(part) for part in error["loc"]),
                "msg": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]
    }


def parse_order_request(data: Union[Dict[str, Any], MarketOrderRequest, LimitOrderRequest]):
    """
    Validate a raw order payload.

    A missing ``order_type`` means market.

    Raises:
        InvalidOrderError: payload failed validation (field errors in details)
    """
    if isinstance(data, (MarketOrderRequest, LimitOrderRequest)):
        return data
    if not isinstance(data, dict):
        raise InvalidOrderError("Order request must be a mapping")

    payload = dict(data)
    payload.setdefault("order_type", "market")
    if isinstance(payload["order_type"], str):
        payload["order_type"] = payload["order_type"].lower()

    try:
        return _order_request_adapter.validate_python(payload)
    except ValidationError as e:
        raise InvalidOrderError("Invalid order request", details=validation_details(e)) from e
