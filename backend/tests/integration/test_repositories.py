"""
Integration Tests - Repositories
Tests for the SQLAlchemy fill and grid repositories against a SQLite file database.
"""
import pytest
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from paper_core.core.grid.models import Grid, GridEvent, GridEventType, GridLot, GridStatus
from paper_core.core.grid.levels import generate_levels
from paper_core.core.trading.models import OrderSide, OrderType, SimulatedOrder
from paper_core.db.database import create_engine, create_session_maker, init_db
from paper_core.db.repositories.fill import SqlFillRepository
from paper_core.db.repositories.grid import SqlGridRepository


NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


async def open_database(tmp_path):
    """Create tables in a fresh SQLite file and return (engine, session_maker)."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'paper_core.db'}", echo=False)
    await init_db(engine)
    return engine, create_session_maker(engine)


def make_fill(sequence, side=OrderSide.BUY, account_id="acc-1", **overrides):
    values = dict(
        id=f"sim_{account_id}_{sequence}",
        account_id=account_id,
        sequence=sequence,
        symbol="BTCUSDT",
        exchange="binance",
        side=side,
        order_type=OrderType.MARKET,
        quantity=Decimal("0.1"),
        requested_price=Decimal("50000"),
        executed_price=Decimal("50012.5"),
        fee=Decimal("4.50112500"),
        fee_percent=Decimal("0.09"),
        slippage=Decimal("12.5"),
        slippage_percent=Decimal("0.025"),
        realized_pnl=Decimal("0"),
        executed_at=NOW,
    )
    values.update(overrides)
    return SimulatedOrder(**values)


def make_grid(grid_id="grid_1", account_id="acc-1", symbol="BTCUSDT", status=GridStatus.ACTIVE):
    return Grid(
        id=grid_id,
        account_id=account_id,
        symbol=symbol,
        exchange="binance",
        strategy="standard",
        base_price=Decimal("50000"),
        spacing=Decimal("1000"),
        levels=generate_levels(Decimal("50000"), Decimal("1000"), 1, 1, Decimal("0.1")),
        status=status,
        created_at=NOW,
        updated_at=NOW,
    )


class TestSqlFillRepository:
    """Tests for durable fill history."""

    @pytest.mark.asyncio
    async def test_persist_and_load_in_sequence_order(self, tmp_path):
        engine, session_maker = await open_database(tmp_path)
        try:
            repository = SqlFillRepository(session_maker)
            second = make_fill(2, side=OrderSide.SELL, realized_pnl=Decimal("-1.25"), client_order_id="c-2")
            first = make_fill(1)
            await repository.persist_fill("acc-1", second)
            await repository.persist_fill("acc-1", first)
            await repository.persist_fill("acc-2", make_fill(1, account_id="acc-2"))

            history = await repository.load_fill_history("acc-1")

            assert [f.sequence for f in history] == [1, 2]
            assert history[0] == first
            assert history[1].side == OrderSide.SELL
            assert history[1].realized_pnl == Decimal("-1.25")
            assert history[1].client_order_id == "c-2"
            assert history[0].executed_at.tzinfo is not None
            assert history[0].is_paper_trade is True
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_sequence_unique_per_account(self, tmp_path):
        engine, session_maker = await open_database(tmp_path)
        try:
            repository = SqlFillRepository(session_maker)
            await repository.persist_fill("acc-1", make_fill(1))

            with pytest.raises(IntegrityError):
                await repository.persist_fill("acc-1", make_fill(1, id="sim_duplicate"))
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_clear_history(self, tmp_path):
        engine, session_maker = await open_database(tmp_path)
        try:
            repository = SqlFillRepository(session_maker)
            await repository.persist_fill("acc-1", make_fill(1))
            await repository.persist_fill("acc-1", make_fill(2))
            await repository.persist_fill("acc-2", make_fill(1, account_id="acc-2"))

            assert await repository.clear_history("acc-1") == 2
            assert await repository.load_fill_history("acc-1") == []
            assert len(await repository.load_fill_history("acc-2")) == 1
        finally:
            await engine.dispose()


class TestSqlGridRepository:
    """Tests for durable grid state."""

    @pytest.mark.asyncio
    async def test_save_and_load(self, tmp_path):
        engine, session_maker = await open_database(tmp_path)
        try:
            repository = SqlGridRepository(session_maker)
            grid = make_grid()
            grid.levels[0].filled = True
            grid.levels[0].fill_id = "sim_1"
            grid.levels[0].filled_at = NOW
            grid.open_lots.append(GridLot(side=OrderSide.BUY, price=Decimal("49000"), quantity=Decimal("0.1")))
            grid.events.append(GridEvent(GridEventType.CREATED, NOW, "Grid created", {"levels": 2}))
            grid.realized_profit = Decimal("-3.675")
            grid.fees_paid = Decimal("3.675")
            grid.last_price = Decimal("48900")

            await repository.save_grid(grid)
            loaded = await repository.load_grid(grid.id)

            assert loaded.status == GridStatus.ACTIVE
            assert loaded.base_price == Decimal("50000")
            assert loaded.realized_profit == Decimal("-3.675")
            assert loaded.last_price == Decimal("48900")
            assert loaded.total_profit is None
            assert [level.to_dict() for level in loaded.levels] == [level.to_dict() for level in grid.levels]
            assert loaded.open_lots == grid.open_lots
            assert loaded.events[0].type == GridEventType.CREATED
            assert loaded.events[0].data == {"levels": 2}
            assert loaded.created_at == NOW
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_save_replaces_state(self, tmp_path):
        engine, session_maker = await open_database(tmp_path)
        try:
            repository = SqlGridRepository(session_maker)
            grid = make_grid()
            await repository.save_grid(grid)

            grid.status = GridStatus.CLOSED
            grid.total_profit = Decimal("192.5")
            grid.close_reason = "manual"
            await repository.save_grid(grid)

            loaded = await repository.load_grid(grid.id)
            assert loaded.status == GridStatus.CLOSED
            assert loaded.total_profit == Decimal("192.5")
            assert loaded.close_reason == "manual"
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_list_filters(self, tmp_path):
        engine, session_maker = await open_database(tmp_path)
        try:
            repository = SqlGridRepository(session_maker)
            await repository.save_grid(make_grid("grid_a"))
            await repository.save_grid(make_grid("grid_b", account_id="acc-2"))
            await repository.save_grid(make_grid("grid_c", status=GridStatus.PAUSED))
            await repository.save_grid(make_grid("grid_d", symbol="ETHUSDT"))

            active_btc = await repository.list_grids(symbol="btcusdt", status=GridStatus.ACTIVE)
            assert [g.id for g in active_btc] == ["grid_a", "grid_b"]

            by_account = await repository.list_grids(account_id="acc-2")
            assert [g.id for g in by_account] == ["grid_b"]

            assert await repository.load_grid("grid_missing") is None
        finally:
            await engine.dispose()


class TestPersistentService:
    """Service restart against the same database."""

    @pytest.mark.asyncio
    async def test_restore_after_restart(self, tmp_path, test_settings, price_feed, buy_order, sell_order):
        from paper_core.services.paper_trading import PaperTradingService

        engine, session_maker = await open_database(tmp_path)
        try:
            service = PaperTradingService.create(
                config=test_settings, session_maker=session_maker, price_feed=price_feed
            )
            await service.simulate_order("acc-1", buy_order)
            await service.simulate_order("acc-1", sell_order)
            grid = await service.create_grid("acc-1", {
                "symbol": "BTCUSDT",
                "exchange": "binance",
                "base_price": "50000",
                "spacing": "1000",
                "quantity_per_level": "0.01",
            })
            await service.tick_grid(grid.id, Decimal("48900"))
            expected = await service.get_portfolio("acc-1")

            restarted = PaperTradingService.create(
                config=test_settings, session_maker=session_maker, price_feed=price_feed
            )
            await restarted.restore_account("acc-1")
            portfolio = await restarted.get_portfolio("acc-1")

            assert portfolio.balance.total == expected.balance.total
            assert portfolio.realized_pnl == Decimal("100")
            assert [p.size for p in portfolio.positions] == [Decimal("0.06")]

            status = await restarted.get_grid_status(grid.id)
            assert status.filled_levels == 1
        finally:
            await engine.dispose()
