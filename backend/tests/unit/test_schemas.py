"""
Unit Tests - Schemas
Tests for order and grid request validation.
"""
import pytest
from decimal import Decimal

from paper_core.core.trading.models import OrderSide
from paper_core.schemas.orders import (
    LimitOrderRequest,
    MarketOrderRequest,
    parse_order_request,
)
from paper_core.schemas.grid import GridSpec, parse_grid_spec
from paper_core.utils.exceptions import InvalidGridSpecError, InvalidOrderError


# =========================
# Order Request Tests
# =========================

class TestOrderRequest:
    """Tests for tagged order requests."""

    def test_market_order(self, buy_order):
        request = parse_order_request(buy_order)

        assert isinstance(request, MarketOrderRequest)
        assert request.side == OrderSide.BUY
        assert request.quantity == Decimal("0.1")
        assert request.reference_price == Decimal("50000")

    def test_order_type_defaults_to_market(self, buy_order):
        buy_order.pop("order_type")
        assert isinstance(parse_order_request(buy_order), MarketOrderRequest)

    def test_limit_order(self):
        request = parse_order_request({
            "symbol": "ethusdt",
            "side": "SELL",
            "order_type": "LIMIT",
            "quantity": "2",
            "limit_price": "3100",
            "exchange": "KuCoin",
        })

        assert isinstance(request, LimitOrderRequest)
        assert request.symbol == "ETHUSDT"
        assert request.exchange == "kucoin"
        assert request.side == OrderSide.SELL
        assert request.reference_price == Decimal("3100")
        assert request.mark_price is None

    def test_limit_requires_limit_price(self):
        with pytest.raises(InvalidOrderError) as exc_info:
            parse_order_request({
                "symbol": "BTCUSDT",
                "side": "buy",
                "order_type": "limit",
                "quantity": "1",
                "exchange": "binance",
            })

        locations = [error["loc"] for error in exc_info.value.details["errors"]]
        assert any("limit_price" in loc for loc in locations)

    @pytest.mark.parametrize("changes", [
        {"price": "0.005"},
        {"order_type": "limit", "price": None, "limit_price": "0.009"},
    ])
    def test_reference_price_below_floor(self, sell_order, changes):
        sell_order.update(changes)
        if sell_order["price"] is None:
            del sell_order["price"]

        with pytest.raises(InvalidOrderError):
            parse_order_request(sell_order)

    def test_reference_price_at_floor(self, sell_order):
        sell_order["price"] = "0.01"
        assert parse_order_request(sell_order).reference_price == Decimal("0.01")

    def test_conditions(self, buy_order):
        buy_order["conditions"] = {"volatility": "0.9", "liquidity": "0.2"}
        conditions = parse_order_request(buy_order).conditions.to_domain()

        assert conditions.volatility == Decimal("0.9")
        assert conditions.liquidity == Decimal("0.2")
        assert conditions.spread == Decimal("0.03")

    def test_conditions_out_of_range(self, buy_order):
        buy_order["conditions"] = {"volatility": "1.5"}
        with pytest.raises(InvalidOrderError):
            parse_order_request(buy_order)

    def test_paper_flag_not_settable(self, buy_order):
        buy_order["is_paper_trade"] = False
        with pytest.raises(InvalidOrderError):
            parse_order_request(buy_order)

    def test_non_mapping_rejected(self):
        with pytest.raises(InvalidOrderError):
            parse_order_request(["BTCUSDT", "buy"])

    def test_validated_request_passes_through(self):
        request = MarketOrderRequest(symbol="BTCUSDT", side="buy", quantity=Decimal("1"), exchange="binance")
        assert parse_order_request(request) is request
        assert request.reference_price is None


# =========================
# Grid Spec Tests
# =========================

class TestGridSpec:
    """Tests for grid creation requests."""

    def test_defaults(self):
        spec = parse_grid_spec({
            "symbol": "btcusdt",
            "exchange": "Binance",
            "base_price": "50000",
            "spacing": "500",
            "quantity_per_level": "0.01",
        })

        assert spec.symbol == "BTCUSDT"
        assert spec.exchange == "binance"
        assert spec.strategy == "standard"
        assert spec.buy_levels == 1
        assert spec.sell_levels == 1
        assert spec.max_exposure is None

    def test_lowest_level_must_be_positive(self, grid_spec):
        grid_spec.update({"base_price": "100", "spacing": "50", "buy_levels": 2})
        with pytest.raises(InvalidGridSpecError) as exc_info:
            parse_grid_spec(grid_spec)
        assert exc_info.value.code == "INVALID_GRID_SPEC"

    def test_level_count_bounds(self, grid_spec):
        grid_spec["sell_levels"] = 201
        with pytest.raises(InvalidGridSpecError):
            parse_grid_spec(grid_spec)

    def test_passes_model_through(self, grid_spec):
        spec = GridSpec.model_validate(grid_spec)
        assert parse_grid_spec(spec) is spec

    def test_non_mapping_rejected(self):
        with pytest.raises(InvalidGridSpecError):
            parse_grid_spec("BTCUSDT")

    def test_fibonacci_needs_swing(self, grid_spec):
        grid_spec.update({"strategy": "fibonacci", "swing_high": "60000"})
        with pytest.raises(InvalidGridSpecError):
            parse_grid_spec(grid_spec)

        grid_spec["swing_low"] = "61000"
        with pytest.raises(InvalidGridSpecError):
            parse_grid_spec(grid_spec)

    def test_fibonacci_without_spacing(self, grid_spec):
        del grid_spec["spacing"]
        grid_spec.update({"strategy": "fibonacci", "swing_high": "60000", "swing_low": "40000"})

        spec = parse_grid_spec(grid_spec)
        assert spec.spacing is None

    @pytest.mark.parametrize("strategy", ["standard", "dynamic"])
    def test_spacing_required(self, grid_spec, strategy):
        del grid_spec["spacing"]
        grid_spec["strategy"] = strategy
        with pytest.raises(InvalidGridSpecError):
            parse_grid_spec(grid_spec)

    def test_unknown_strategy(self, grid_spec):
        grid_spec["strategy"] = "martingale"
        with pytest.raises(InvalidGridSpecError) as exc_info:
            parse_grid_spec(grid_spec)
        assert [error["loc"] for error in exc_info.value.details["errors"]] == ["strategy"]

    def test_lowest_level_below_price_floor(self, grid_spec):
        grid_spec.update({"base_price": "1", "spacing": "0.995"})
        with pytest.raises(InvalidGridSpecError):
            parse_grid_spec(grid_spec)
