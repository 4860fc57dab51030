"""
Paper Trading Core - Test Configuration
Shared fixtures and test configuration.
"""
import os
import random
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
import pytest

# Add backend to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set test environment
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["LOG_LEVEL"] = "WARNING"


class FixedClock:
    """Deterministic clock; each call advances one second."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        current = self.now
        self.now = current + timedelta(seconds=1)
        return current


# =========================
# Clock / Randomness Fixtures
# =========================

@pytest.fixture
def clock() -> FixedClock:
    """Clock starting at a fixed UTC instant."""
    return FixedClock(datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def rng() -> random.Random:
    """Seeded random source."""
    return random.Random(42)


# =========================
# Component Fixtures
# =========================

@pytest.fixture
def ledger(clock):
    """Ledger with the default 10000 USDT starting balance."""
    from paper_core.core.trading.ledger import Ledger
    return Ledger(initial_balance=Decimal("10000"), currency="USDT", clock=clock)


@pytest.fixture
def fee_model():
    """Fee model with the default venue schedule."""
    from paper_core.core.trading.fees import FeeModel, FeeConfig
    return FeeModel(FeeConfig())


@pytest.fixture
def no_slippage():
    """Slippage model that never moves the price."""
    from paper_core.core.trading.slippage import SlippageModel, SlippageConfig
    return SlippageModel(SlippageConfig(enabled=False))


@pytest.fixture
def price_feed():
    """Static price feed with a BTC mark."""
    from paper_core.services.price_feed import StaticPriceFeed
    return StaticPriceFeed({"BTCUSDT": Decimal("50000")})


@pytest.fixture
def fill_repository():
    from paper_core.db.repositories.fill import InMemoryFillRepository
    return InMemoryFillRepository()


@pytest.fixture
def grid_repository():
    from paper_core.db.repositories.grid import InMemoryGridRepository
    return InMemoryGridRepository()


@pytest.fixture
def simulator(ledger, fee_model, no_slippage, fill_repository, price_feed, clock):
    """Order simulator with fees on and slippage off."""
    from paper_core.core.trading.execution import OrderSimulator
    from paper_core.core.trading.position_tracker import PositionTracker
    return OrderSimulator(
        ledger=ledger,
        fee_model=fee_model,
        slippage_model=no_slippage,
        position_tracker=PositionTracker(),
        fill_repository=fill_repository,
        price_feed=price_feed,
        clock=clock
    )


@pytest.fixture
def grid_engine(simulator, grid_repository, price_feed, clock):
    from paper_core.core.grid.engine import GridStrategyEngine
    return GridStrategyEngine(
        simulator=simulator,
        repository=grid_repository,
        price_feed=price_feed,
        clock=clock
    )


# =========================
# Service Fixtures
# =========================

@pytest.fixture
def test_settings():
    """Settings with slippage disabled for exact arithmetic."""
    from paper_core.config import Settings
    return Settings(ENABLE_SLIPPAGE=False, INITIAL_BALANCE=Decimal("10000"))


@pytest.fixture
def service(test_settings, price_feed, rng, clock):
    """Paper trading service backed by in-memory repositories."""
    from paper_core.services.paper_trading import PaperTradingService
    return PaperTradingService.create(
        config=test_settings,
        price_feed=price_feed,
        rng=rng,
        clock=clock
    )


# =========================
# Order / Grid Payload Fixtures
# =========================

@pytest.fixture
def buy_order() -> dict:
    """Market buy of 0.1 BTC at 50000 on binance."""
    return {
        "symbol": "BTCUSDT",
        "side": "buy",
        "order_type": "market",
        "quantity": "0.1",
        "price": "50000",
        "exchange": "binance",
    }


@pytest.fixture
def sell_order() -> dict:
    """Market sell of 0.05 BTC at 52000 on binance."""
    return {
        "symbol": "BTCUSDT",
        "side": "sell",
        "order_type": "market",
        "quantity": "0.05",
        "price": "52000",
        "exchange": "binance",
    }


@pytest.fixture
def grid_spec() -> dict:
    """Two buy and two sell levels 1000 apart around 50000."""
    return {
        "symbol": "BTCUSDT",
        "exchange": "binance",
        "base_price": "50000",
        "spacing": "1000",
        "buy_levels": 2,
        "sell_levels": 2,
        "quantity_per_level": "0.01",
    }


@pytest.fixture
def captured_logs():
    """Collect loguru messages at WARNING and above."""
    from loguru import logger
    messages = []
    handler_id = logger.add(messages.append, level="WARNING", format="{level}|{message}")
    yield messages
    logger.remove(handler_id)
