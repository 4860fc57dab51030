"""
Paper Trading Core - Paper Trading Service

Facade consumed by the transport/controller layer. Wires the ledger,
fee and slippage models, position tracker, order simulator, P&L
calculator and grid engine to the persistence adapters.
"""
import random
from decimal import Decimal
from typing import Optional, List, Dict, Any, Union

from sqlalchemy.ext.asyncio import async_sessionmaker

from paper_core.config import Settings, settings as default_settings
from paper_core.core.grid.engine import GridStrategyEngine
from paper_core.core.grid.levels import GridCalculationResult
from paper_core.core.grid.models import Grid, GridEvent
from paper_core.core.trading.execution import OrderSimulator
from paper_core.core.trading.fees import FeeModel, FeeConfig
from paper_core.core.trading.ledger import Ledger, AccountBalance
from paper_core.core.trading.models import SimulatedOrder
from paper_core.core.trading.pnl_calculator import PnLCalculator
from paper_core.core.trading.position_tracker import PositionTracker
from paper_core.core.trading.slippage import (
    SlippageModel,
    SlippageConfig,
    MarketConditions,
    MarketConditionsRegistry,
)
from paper_core.db.repositories.fill import FillRepository, InMemoryFillRepository, SqlFillRepository
from paper_core.db.repositories.grid import GridRepository, InMemoryGridRepository, SqlGridRepository
from paper_core.schemas.grid import GridSpec, GridStatusResponse, CloseGridResponse
from paper_core.schemas.orders import LimitOrderRequest, MarketOrderRequest
from paper_core.schemas.portfolio import (
    BalanceSnapshot,
    PositionSnapshot,
    PerformanceSnapshot,
    PortfolioSnapshot,
    TradeStatistics,
    SimulationStatsSnapshot,
)
from paper_core.services.price_feed import PriceFeed, StaticPriceFeed
from paper_core.utils.logger import get_logger


logger = get_logger(__name__)


def _balance_snapshot(balance: AccountBalance) -> BalanceSnapshot:
    return BalanceSnapshot(
        currency=balance.currency,
        total=balance.total,
        available=balance.available,
        locked=balance.locked,
        initial_balance=balance.initial_balance,
    )


class PaperTradingService:
    """
    Paper Trading Service

    One instance per process. Every account and grid it touches is keyed
    by id inside the injected components; nothing is module-global.
    """

    def __init__(
        self,
        ledger: Ledger,
        simulator: OrderSimulator,
        grid_engine: GridStrategyEngine,
        fill_repository: FillRepository,
        price_feed: PriceFeed,
        pnl_calculator: Optional[PnLCalculator] = None
    ):
        self.ledger = ledger
        self.simulator = simulator
        self.grid_engine = grid_engine
        self.fill_repository = fill_repository
        self.price_feed = price_feed
        self.pnl_calculator = pnl_calculator or PnLCalculator()

    @classmethod
    def create(
        cls,
        config: Optional[Settings] = None,
        session_maker: Optional[async_sessionmaker] = None,
        price_feed: Optional[PriceFeed] = None,
        rng: Optional[random.Random] = None,
        fill_repository: Optional[FillRepository] = None,
        grid_repository: Optional[GridRepository] = None,
        market_conditions: Optional[MarketConditionsRegistry] = None,
        clock=None
    ) -> "PaperTradingService":
        """
        Build a service from settings.

        With a session factory the fill and grid repositories are
        SQLAlchemy-backed; otherwise they are in memory.
        """
        config = config or default_settings
        price_feed = price_feed or StaticPriceFeed()

        if fill_repository is None:
            fill_repository = SqlFillRepository(session_maker) if session_maker else InMemoryFillRepository()
        if grid_repository is None:
            grid_repository = SqlGridRepository(session_maker) if session_maker else InMemoryGridRepository()

        ledger = Ledger(
            initial_balance=config.INITIAL_BALANCE,
            currency=config.BASE_CURRENCY,
            clock=clock
        )
        simulator = OrderSimulator(
            ledger=ledger,
            fee_model=FeeModel(FeeConfig.from_settings(config)),
            slippage_model=SlippageModel(SlippageConfig.from_settings(config), rng=rng),
            position_tracker=PositionTracker(allow_short_selling=config.ALLOW_SHORT_SELLING),
            fill_repository=fill_repository,
            price_feed=price_feed,
            market_conditions=market_conditions,
            clock=clock
        )
        grid_engine = GridStrategyEngine(
            simulator=simulator,
            repository=grid_repository,
            price_feed=price_feed,
            clock=clock
        )

        logger.info(
            f"{config.APP_NAME} service ready: initial balance {ledger.initial_balance} {ledger.currency}, "
            f"fees {'on' if config.ENABLE_FEES else 'off'}, slippage {'on' if config.ENABLE_SLIPPAGE else 'off'}"
        )
        return cls(
            ledger=ledger,
            simulator=simulator,
            grid_engine=grid_engine,
            fill_repository=fill_repository,
            price_feed=price_feed
        )

    # ==================== ORDERS ====================

    async def simulate_order(
        self,
        account_id: str,
        request: Union[Dict[str, Any], MarketOrderRequest, LimitOrderRequest]
    ) -> SimulatedOrder:
        """Simulate an order; see OrderSimulator.simulate for the failure taxonomy."""
        return await self.simulator.simulate(account_id, request)

    def get_trade_history(self, account_id: str, limit: Optional[int] = None) -> List[SimulatedOrder]:
        return self.simulator.get_trade_history(account_id, limit)

    def get_trade_statistics(self, account_id: str) -> TradeStatistics:
        fills = self.simulator.get_trade_history(account_id)
        return TradeStatistics(**self.pnl_calculator.get_trade_statistics(fills))

    def get_simulation_stats(self) -> SimulationStatsSnapshot:
        return SimulationStatsSnapshot.model_validate(self.simulator.stats.to_dict())

    def update_market_conditions(self, symbol: str, **changes) -> MarketConditions:
        return self.simulator.market_conditions.update(symbol, **changes)

    # ==================== PORTFOLIO ====================

    async def get_portfolio(self, account_id: str) -> PortfolioSnapshot:
        """Balance, positions and performance; initializes the account on first use."""
        await self.ledger.initialize(account_id)

        balance = self.ledger.require_balance(account_id)
        positions = self.simulator.position_tracker.get_positions(account_id)
        realized_total = self.simulator.position_tracker.realized_total(account_id)
        fills = self.simulator.get_trade_history(account_id)

        marks: Dict[str, Decimal] = {}
        for position in positions:
            mark = await self.price_feed.latest_mark_price(position.symbol)
            if mark is not None:
                marks[position.symbol] = mark

        performance = self.pnl_calculator.calculate_performance(
            fills, balance.initial_balance, positions, marks
        )
        realized = performance.realized

        return PortfolioSnapshot(
            account_id=account_id,
            balance=_balance_snapshot(balance),
            positions=[
                PositionSnapshot(**position.to_dict(marks.get(position.symbol)))
                for position in positions
            ],
            performance=PerformanceSnapshot(
                total_trades=performance.total_trades,
                closed_trades=realized.closed_trades,
                winning_trades=realized.winning_trades,
                losing_trades=realized.losing_trades,
                win_rate=realized.win_rate,
                avg_win=realized.avg_win,
                avg_loss=realized.avg_loss,
                profit_factor=realized.profit_factor,
                total_fees=performance.total_fees,
                max_drawdown=performance.drawdown.max_drawdown,
                max_drawdown_pct=performance.drawdown.max_drawdown_pct,
                current_drawdown=performance.drawdown.current_drawdown,
                current_drawdown_pct=performance.drawdown.current_drawdown_pct,
                total_return=performance.total_return,
                total_return_pct=performance.total_return_pct,
            ),
            realized_pnl=realized_total,
            unrealized_pnl=performance.unrealized.total,
            equity=performance.equity,
            unpriced_symbols=performance.unrealized.unpriced,
        )

    # ==================== GRIDS ====================

    def calculate_grid(self, spec: Union[Dict[str, Any], GridSpec]) -> GridCalculationResult:
        return self.grid_engine.calculate(spec)

    async def create_grid(self, account_id: str, spec: Union[Dict[str, Any], GridSpec]) -> Grid:
        return await self.grid_engine.create_grid(account_id, spec)

    async def tick_grid(self, grid_id: str, price: Decimal) -> List[SimulatedOrder]:
        return await self.grid_engine.tick_grid(grid_id, price)

    async def tick_symbol(self, symbol: str, price: Decimal) -> Dict[str, List[SimulatedOrder]]:
        return await self.grid_engine.tick_symbol(symbol, price)

    async def close_grid(
        self,
        grid_id: str,
        reason: str = "manual",
        mark_price: Optional[Decimal] = None
    ) -> CloseGridResponse:
        grid = await self.grid_engine.close_grid(grid_id, reason, mark_price)
        return CloseGridResponse(
            grid_id=grid.id,
            status=grid.status,
            total_profit=grid.total_profit,
            realized_profit=grid.realized_profit,
            unrealized_pnl=grid.total_profit - grid.realized_profit,
            close_reason=grid.close_reason,
        )

    async def pause_grid(self, grid_id: str) -> GridStatusResponse:
        await self.grid_engine.pause_grid(grid_id)
        return await self.get_grid_status(grid_id)

    async def resume_grid(self, grid_id: str) -> GridStatusResponse:
        await self.grid_engine.resume_grid(grid_id)
        return await self.get_grid_status(grid_id)

    async def get_grid_status(self, grid_id: str, mark_price: Optional[Decimal] = None) -> GridStatusResponse:
        status = await self.grid_engine.get_grid_status(grid_id, mark_price)
        return GridStatusResponse(**status)

    async def get_grid_events(self, grid_id: str) -> List[GridEvent]:
        return await self.grid_engine.get_events(grid_id)

    # ==================== ADMINISTRATION ====================

    async def reset_account(
        self,
        account_id: str,
        starting_balance: Optional[Decimal] = None,
        clear_persisted: bool = False
    ) -> BalanceSnapshot:
        """
        Administrative reset: fresh balance, no positions, empty history.

        Persisted fills are kept unless ``clear_persisted`` is set, so the
        account can still be restored from them.
        """
        balance = await self.simulator.reset_account(account_id, starting_balance)
        if clear_persisted:
            await self.fill_repository.clear_history(account_id)
        return _balance_snapshot(balance)

    async def restore_account(
        self,
        account_id: str,
        starting_balance: Optional[Decimal] = None
    ) -> BalanceSnapshot:
        """Rebuild in-memory state by replaying the persisted fill history."""
        fills = await self.fill_repository.load_fill_history(account_id)
        balance = await self.simulator.restore_account(account_id, fills, starting_balance)
        return _balance_snapshot(balance)
