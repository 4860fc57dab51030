"""
Paper Trading Core - Grid Schemas
"""
from decimal import Decimal
from typing import Optional, List, Dict, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from paper_core.core.grid.models import GridStatus
from paper_core.core.trading.slippage import PRICE_FLOOR
from paper_core.schemas.orders import validation_details
from paper_core.utils.exceptions import InvalidGridSpecError


class GridSpec(BaseModel):
    """Grid creation request."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    symbol: str = Field(..., min_length=1, max_length=20)
    exchange: str = Field(..., min_length=1, max_length=20)
    strategy: Literal["standard", "fibonacci", "dynamic"] = "standard"
    base_price: Decimal = Field(..., gt=0)
    spacing: Optional[Decimal] = Field(None, gt=0, description="Price distance between adjacent levels")
    buy_levels: int = Field(default=1, ge=0, le=200)
    sell_levels: int = Field(default=1, ge=0, le=200)
    quantity_per_level: Decimal = Field(..., gt=0)
    max_exposure: Optional[Decimal] = Field(None, gt=0, description="Exposure limit for the risk assessment")

    # Fibonacci ladder
    swing_high: Optional[Decimal] = Field(None, gt=0)
    swing_low: Optional[Decimal] = Field(None, ge=PRICE_FLOOR)
    include_extensions: bool = False

    @field_validator("symbol")
    @classmethod
    def upper_symbol(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("exchange")
    @classmethod
    def lower_exchange(cls, v: str) -> str:
        return v.strip().lower()

    @model_validator(mode="after")
    def check_ladder(self) -> "GridSpec":
        if self.strategy == "fibonacci":
            if self.swing_high is None or self.swing_low is None:
                raise ValueError("fibonacci grid needs swing_high and swing_low")
            if self.swing_high <= self.swing_low:
                raise ValueError("swing_high must be above swing_low")
            return self

        if self.spacing is None:
            raise ValueError(f"{self.strategy} grid needs a spacing")
        if self.buy_levels + self.sell_levels == 0:
            raise ValueError("grid needs at least one level")
        if self.base_price - self.spacing * self.buy_levels < PRICE_FLOOR:
            raise ValueError(f"lowest buy level must be at least {PRICE_FLOOR}")
        return self


def parse_grid_spec(data: Union[Dict[str, Any], GridSpec]) -> GridSpec:
    """
    Validate a raw grid specification.

    Raises:
        InvalidGridSpecError: payload failed validation (field errors in details)
    """
    if isinstance(data, GridSpec):
        return data
    if not isinstance(data, dict):
        raise InvalidGridSpecError("Grid specification must be a mapping")
    try:
        return GridSpec.model_validate(data)
    except ValidationError as e:
        raise InvalidGridSpecError("Invalid grid specification", details=validation_details(e)) from e


class GridLevelResponse(BaseModel):
    index: int
    price: Decimal
    quantity: Decimal
    side: str
    filled: bool
    fill_id: Optional[str] = None


class GridStatusResponse(BaseModel):
    """Grid monitoring data."""
    grid_id: str
    account_id: str
    symbol: str
    strategy: str
    status: GridStatus
    mark_price: Optional[Decimal] = None
    total_levels: int
    filled_levels: int
    active_levels: int
    realized_profit: Decimal
    unrealized_pnl: Decimal
    fees_paid: Decimal
    total_profit: Optional[Decimal] = None
    levels: List[GridLevelResponse]


class CloseGridResponse(BaseModel):
    """Result of closing a grid."""
    grid_id: str
    status: GridStatus
    total_profit: Decimal
    realized_profit: Decimal
    unrealized_pnl: Decimal
    close_reason: Optional[str] = None
