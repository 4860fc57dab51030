"""
Integration Tests - Trading Flow
Tests for order execution, portfolio views and grids through the service facade.
"""
import asyncio
import random
import pytest
from decimal import Decimal

from paper_core.core.grid.models import GridStatus
from paper_core.utils.exceptions import InsufficientFundsError, InvalidOrderError


class TestOrderFlow:
    """End-to-end order scenarios."""

    @pytest.mark.asyncio
    async def test_buy_then_partial_sell(self, service, buy_order, sell_order):
        await service.simulate_order("acc-1", buy_order)
        portfolio = await service.get_portfolio("acc-1")

        assert portfolio.is_paper_trading is True
        assert portfolio.balance.available == Decimal("4995.5")
        assert portfolio.positions[0].size == Decimal("0.1")
        assert portfolio.positions[0].entry_price == Decimal("50000")

        await service.simulate_order("acc-1", sell_order)
        portfolio = await service.get_portfolio("acc-1")

        assert portfolio.balance.available == Decimal("7593.16")
        assert portfolio.realized_pnl == Decimal("100")
        assert portfolio.positions[0].size == Decimal("0.05")
        assert portfolio.positions[0].entry_price == Decimal("50000")
        assert portfolio.performance.total_fees == Decimal("6.84")
        assert portfolio.performance.closed_trades == 1
        assert portfolio.performance.win_rate == Decimal("100.00")

    @pytest.mark.asyncio
    async def test_unrealized_from_feed(self, service, price_feed, buy_order):
        await service.simulate_order("acc-1", buy_order)
        price_feed.set_price("BTCUSDT", Decimal("51000"))

        portfolio = await service.get_portfolio("acc-1")

        assert portfolio.unrealized_pnl == Decimal("100")
        assert portfolio.positions[0].mark_price == Decimal("51000")
        assert portfolio.equity == Decimal("10095.5")
        assert portfolio.unpriced_symbols == []

    @pytest.mark.asyncio
    async def test_unpriced_position(self, service, buy_order):
        eth_order = dict(buy_order, symbol="ETHUSDT", quantity="1", price="3000")
        await service.simulate_order("acc-1", eth_order)

        portfolio = await service.get_portfolio("acc-1")

        assert portfolio.unpriced_symbols == ["ETHUSDT"]
        assert portfolio.positions[0].unrealized_pnl is None

    @pytest.mark.asyncio
    async def test_new_account_portfolio(self, service):
        portfolio = await service.get_portfolio("fresh")

        assert portfolio.balance.total == Decimal("10000")
        assert portfolio.positions == []
        assert portfolio.equity == Decimal("10000")

    @pytest.mark.asyncio
    async def test_rejected_orders_leave_portfolio_unchanged(self, service, buy_order, sell_order):
        """Snapshots before and after a rejected order serialize identically."""
        await service.simulate_order("acc-1", buy_order)
        before = (await service.get_portfolio("acc-1")).model_dump_json()

        with pytest.raises(InsufficientFundsError):
            await service.simulate_order("acc-1", dict(buy_order, quantity="1"))
        with pytest.raises(InvalidOrderError):
            await service.simulate_order("acc-1", dict(sell_order, quantity="5"))
        with pytest.raises(InvalidOrderError):
            await service.simulate_order("acc-1", dict(buy_order, quantity="abc"))

        after = (await service.get_portfolio("acc-1")).model_dump_json()
        assert after == before

    @pytest.mark.asyncio
    async def test_conservation_over_round_trips(self, price_feed, clock):
        """With fees and slippage on, total == initial + realized - fees after closed pairs."""
        from paper_core.config import Settings
        from paper_core.services.paper_trading import PaperTradingService

        service = PaperTradingService.create(
            config=Settings(), price_feed=price_feed, rng=random.Random(7), clock=clock
        )
        pair = {"symbol": "ETHUSDT", "exchange": "kucoin", "quantity": "1"}

        for buy_price, sell_price in [("3000", "3100"), ("3050", "2990"), ("2980", "2980"), ("3010", "3200")]:
            await service.simulate_order("acc-1", dict(pair, side="buy", price=buy_price))
            await service.simulate_order("acc-1", dict(pair, side="sell", price=sell_price))

        history = service.get_trade_history("acc-1")
        realized = sum((f.realized_pnl for f in history), Decimal("0"))
        fees = sum((f.fee for f in history), Decimal("0"))
        balance = (await service.get_portfolio("acc-1")).balance

        assert len(history) == 8
        assert balance.total == Decimal("10000") + realized - fees
        assert balance.locked == Decimal("0")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("orders", [
        # Averaged long: the weighted entry is not representable in 8 decimals
        [("buy", "1000", "1"), ("buy", "2000", "2"), ("sell", "3000", "2")],
        [("buy", "1", "3000"), ("buy", "2", "3013.37"), ("sell", "1.5", "3100"), ("sell", "1.5", "2990.5")],
        # Long reversed through zero into a short, then covered
        [("buy", "1.5", "3000.5"), ("sell", "4", "3100"), ("buy", "1", "3050"), ("buy", "1.5", "2950.25")],
    ])
    async def test_conservation_with_averaging_and_reversal(self, price_feed, clock, orders):
        from paper_core.config import Settings
        from paper_core.services.paper_trading import PaperTradingService

        service = PaperTradingService.create(
            config=Settings(INITIAL_BALANCE=Decimal("100000"), ALLOW_SHORT_SELLING=True),
            price_feed=price_feed, rng=random.Random(11), clock=clock
        )
        for side, quantity, price in orders:
            await service.simulate_order("acc-1", {
                "symbol": "ETHUSDT", "exchange": "kucoin", "side": side, "quantity": quantity, "price": price,
            })

        history = service.get_trade_history("acc-1")
        realized = sum((f.realized_pnl for f in history), Decimal("0"))
        fees = sum((f.fee for f in history), Decimal("0"))
        portfolio = await service.get_portfolio("acc-1")

        assert portfolio.positions == []
        assert portfolio.realized_pnl == realized
        assert portfolio.balance.total == Decimal("100000") + realized - fees
        assert portfolio.balance.locked == Decimal("0")

    @pytest.mark.asyncio
    async def test_averaged_position_without_costs(self, price_feed, clock):
        """Buy 1000 @ 1, buy 2000 @ 2, sell 3000 @ 2 realizes exactly 1000."""
        from paper_core.config import Settings
        from paper_core.services.paper_trading import PaperTradingService

        service = PaperTradingService.create(
            config=Settings(INITIAL_BALANCE=Decimal("100000"), ENABLE_FEES=False, ENABLE_SLIPPAGE=False),
            price_feed=price_feed, clock=clock
        )
        for side, quantity, price in [("buy", "1000", "1"), ("buy", "2000", "2"), ("sell", "3000", "2")]:
            await service.simulate_order("acc-1", {
                "symbol": "ADAUSDT", "exchange": "binance", "side": side, "quantity": quantity, "price": price,
            })

        portfolio = await service.get_portfolio("acc-1")
        assert portfolio.realized_pnl == Decimal("1000")
        assert portfolio.balance.total == Decimal("101000")

    @pytest.mark.asyncio
    async def test_concurrent_accounts(self, service, buy_order):
        """Orders on different accounts do not affect each other."""
        await asyncio.gather(*(
            service.simulate_order(f"acc-{i}", buy_order) for i in range(5)
        ))

        for i in range(5):
            portfolio = await service.get_portfolio(f"acc-{i}")
            assert portfolio.balance.available == Decimal("4995.5")

    @pytest.mark.asyncio
    async def test_statistics(self, service, buy_order, sell_order):
        await service.simulate_order("acc-1", buy_order)
        await service.simulate_order("acc-1", sell_order)

        trade_stats = service.get_trade_statistics("acc-1")
        assert trade_stats.total_trades == 2
        assert trade_stats.most_traded_symbol == "BTCUSDT"

        sim_stats = service.get_simulation_stats()
        assert sim_stats.total_orders == 2
        assert sim_stats.total_fees == Decimal("6.84")

    @pytest.mark.asyncio
    async def test_market_conditions_update(self, service):
        conditions = service.update_market_conditions("BTCUSDT", volatility="0.9")

        assert conditions.volatility == Decimal("0.9")
        assert service.simulator.market_conditions.get("btcusdt") is conditions


class TestAdministration:
    """Reset and restore."""

    @pytest.mark.asyncio
    async def test_reset_keeps_persisted_history(self, service, buy_order, sell_order):
        await service.simulate_order("acc-1", buy_order)
        await service.simulate_order("acc-1", sell_order)
        expected = await service.get_portfolio("acc-1")

        balance = await service.reset_account("acc-1")
        assert balance.total == Decimal("10000")
        assert service.get_trade_history("acc-1") == []

        balance = await service.restore_account("acc-1")
        restored = await service.get_portfolio("acc-1")

        assert balance.total == expected.balance.total
        assert restored.model_dump_json() == expected.model_dump_json()

    @pytest.mark.asyncio
    async def test_reset_with_cleared_history(self, service, buy_order):
        await service.simulate_order("acc-1", buy_order)
        await service.reset_account("acc-1", starting_balance=Decimal("2000"), clear_persisted=True)

        balance = await service.restore_account("acc-1", starting_balance=Decimal("2000"))

        assert balance.total == Decimal("2000")
        assert service.get_trade_history("acc-1") == []


class TestGridFlow:
    """Grid strategy through the service facade."""

    @pytest.mark.asyncio
    async def test_grid_round_trip(self, service):
        """Ticks 48900 then 51100 fill the buy and sell levels in order."""
        grid = await service.create_grid("acc-1", {
            "symbol": "BTCUSDT",
            "exchange": "binance",
            "base_price": "50000",
            "spacing": "1000",
            "buy_levels": 1,
            "sell_levels": 1,
            "quantity_per_level": "0.1",
        })

        first = await service.tick_symbol("BTCUSDT", Decimal("48900"))
        second = await service.tick_symbol("BTCUSDT", Decimal("51100"))
        assert len(first[grid.id]) == 1
        assert len(second[grid.id]) == 1

        status = await service.get_grid_status(grid.id)
        assert status.filled_levels == 2
        assert status.active_levels == 0

        result = await service.close_grid(grid.id)
        assert result.status == GridStatus.CLOSED
        assert result.total_profit == Decimal("192.5")
        assert result.unrealized_pnl == Decimal("0")
        assert result.close_reason == "manual"

        portfolio = await service.get_portfolio("acc-1")
        assert portfolio.balance.total == Decimal("10192.5")
        assert portfolio.positions == []

    @pytest.mark.asyncio
    async def test_pause_resume(self, service, grid_spec):
        grid = await service.create_grid("acc-1", grid_spec)

        status = await service.pause_grid(grid.id)
        assert status.status == GridStatus.PAUSED
        assert await service.tick_grid(grid.id, Decimal("48900")) == []

        status = await service.resume_grid(grid.id)
        assert status.status == GridStatus.ACTIVE

        events = await service.get_grid_events(grid.id)
        assert [event.type.value for event in events] == ["created", "paused", "resumed"]

    def test_calculate_grid(self, service, grid_spec):
        result = service.calculate_grid(grid_spec)

        assert result.required_balance == Decimal("970")
        assert result.risk_assessment.recommendation.value == "safe"
