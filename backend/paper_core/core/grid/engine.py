"""
Paper Trading Core - Grid Strategy Engine

Runs static grid ladders against price ticks:
- Crossed levels are filled through the order simulator as limit orders
- Level state is saved inside the simulator's commit, so a level is never
  marked filled without the matching balance and position effect
- Profit is tracked per grid by pairing opposite fills FIFO

Status transitions:
    ACTIVE -> PAUSED -> ACTIVE       (manual)
    ACTIVE/PAUSED/ERROR -> CLOSED    (manual, terminal)
    ACTIVE -> ERROR                  (initialization or fill failure)
"""
import asyncio
import copy
from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List, Dict, Any, Callable, Tuple, Union
from uuid import uuid4

from paper_core.core.grid.levels import (
    GridCalculationResult,
    build_calculation_result,
    dynamic_spacing,
    generate_fibonacci_levels,
    generate_levels,
)
from paper_core.core.grid.models import Grid, GridLevel, GridLot, GridEvent, GridEventType, GridStatus
from paper_core.core.trading.execution import OrderSimulator
from paper_core.core.trading.locks import KeyedLocks
from paper_core.core.trading.models import OrderSide, SimulatedOrder, quantize_money
from paper_core.core.trading.slippage import PRICE_FLOOR
from paper_core.db.repositories.grid import GridRepository
from paper_core.schemas.grid import GridSpec, parse_grid_spec
from paper_core.schemas.orders import LimitOrderRequest
from paper_core.services.price_feed import PriceFeed
from paper_core.utils.logger import logger
from paper_core.utils.exceptions import (
    GridInitializationError,
    GridNotFoundError,
    GridStateError,
    InsufficientFundsError,
    InsufficientPositionError,
    InvalidGridSpecError,
    InvalidOrderError,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GridStrategyEngine:
    """
    Grid Strategy Engine

    Responsible for:
    - Grid creation from a GridSpec
    - Tick evaluation and level fills
    - Lifecycle transitions and the grid event log
    - Grid monitoring data
    """

    def __init__(
        self,
        simulator: OrderSimulator,
        repository: GridRepository,
        price_feed: Optional[PriceFeed] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.simulator = simulator
        self.repository = repository
        self.price_feed = price_feed
        self._clock = clock or _utcnow
        self._locks = KeyedLocks()

    # ==================== CREATION ====================

    def calculate(self, spec: Union[Dict[str, Any], GridSpec]) -> GridCalculationResult:
        """Ladder and sizing for a spec, without creating anything."""
        spec = parse_grid_spec(spec)
        levels, _ = self._ladder(spec)
        return build_calculation_result(levels, spec.max_exposure)

    def _ladder(self, spec: GridSpec) -> Tuple[List[GridLevel], Optional[Decimal]]:
        """Levels and effective spacing for the spec's strategy."""
        if spec.strategy == "fibonacci":
            levels = generate_fibonacci_levels(
                spec.base_price, spec.swing_high, spec.swing_low,
                spec.quantity_per_level, spec.include_extensions
            )
            return levels, None

        spacing = spec.spacing
        if spec.strategy == "dynamic":
            conditions = self.simulator.market_conditions.get(spec.symbol)
            spacing = dynamic_spacing(spacing, conditions.volatility)
            if spec.base_price - spacing * spec.buy_levels < PRICE_FLOOR:
                raise InvalidGridSpecError(
                    f"Volatility-adjusted spacing puts the lowest buy level below {PRICE_FLOOR}",
                    details={"spacing": str(spacing), "volatility": str(conditions.volatility)}
                )

        levels = generate_levels(
            spec.base_price, spacing, spec.buy_levels, spec.sell_levels, spec.quantity_per_level
        )
        return levels, spacing

    async def create_grid(self, account_id: str, spec: Union[Dict[str, Any], GridSpec]) -> Grid:
        """
        Create an ACTIVE grid for an account.

        Raises:
            InvalidGridSpecError: spec rejected, nothing created
            GridInitializationError: grid could not be stored; left in ERROR
        """
        spec = parse_grid_spec(spec)
        levels, spacing = self._ladder(spec)
        calculation = build_calculation_result(levels, spec.max_exposure)
        now = self._clock()

        grid = Grid(
            id=f"grid_{uuid4().hex}",
            account_id=account_id,
            symbol=spec.symbol,
            exchange=spec.exchange,
            strategy=spec.strategy,
            base_price=spec.base_price,
            spacing=spacing,
            levels=calculation.levels,
            max_exposure=spec.max_exposure,
            created_at=now,
            updated_at=now,
        )

        risk = calculation.risk_assessment
        self._record(grid, GridEventType.CREATED, f"Grid created with {len(grid.levels)} levels", {
            "strategy": spec.strategy,
            "base_price": str(spec.base_price),
            "spacing": str(spacing) if spacing is not None else None,
            "required_balance": str(calculation.required_balance),
            "recommendation": risk.recommendation.value,
        })

        try:
            await self.simulator.ledger.initialize(account_id)
            await self.repository.save_grid(grid)
        except Exception as e:
            await self._mark_error(grid, f"Initialization failed: {e}")
            raise GridInitializationError(grid.id, f"Grid initialization failed: {e}") from e

        buys = sum(1 for level in grid.levels if level.side == OrderSide.BUY)
        logger.info(
            f"Grid {grid.id} created for account {account_id}: {spec.symbol} {spec.strategy} "
            f"base {spec.base_price} spacing {spacing} "
            f"({buys} buy / {len(grid.levels) - buys} sell, risk: {risk.recommendation.value})"
        )
        return grid

    # ==================== TICKS ====================

    async def tick_grid(self, grid_id: str, price: Decimal) -> List[SimulatedOrder]:
        """
        Evaluate one price tick against a grid.

        Unfilled levels crossed by ``price`` are filled in ascending price
        order. Levels that cannot be funded (or sold) stay unfilled. Any
        other failure moves the grid to ERROR and propagates.

        Returns:
            Fills placed by this tick
        """
        price = Decimal(str(price))
        if price <= 0:
            raise InvalidOrderError("Tick price must be positive", details={"grid_id": grid_id})

        async with self._locks(grid_id):
            grid = await self._require(grid_id)
            if grid.status != GridStatus.ACTIVE:
                logger.debug(f"Ignoring tick {price} for grid {grid_id} in status {grid.status.value}")
                return []

            grid.last_price = price
            fills: List[SimulatedOrder] = []

            crossed = [level.index for level in sorted(grid.active_levels, key=lambda l: l.price)
                       if level.is_crossed(price)]

            for index in crossed:
                try:
                    grid, fill = await self._fill_level(grid, index, price)
                except (InsufficientFundsError, InsufficientPositionError) as e:
                    level = grid.level(index)
                    logger.warning(
                        f"Grid {grid.id} level {index} ({level.side.value} {level.quantity} @ {level.price}) "
                        f"skipped: {e.message}"
                    )
                    self._record(grid, GridEventType.LEVEL_SKIPPED, f"Grid level skipped at {level.price}", {
                        "index": index,
                        "price": str(level.price),
                        "reason": e.code,
                    })
                    continue
                except Exception as e:
                    await self._mark_error(grid, f"Level {index} fill failed: {e}")
                    raise
                fills.append(fill)

            grid.updated_at = self._clock()
            await self.repository.save_grid(grid)
            return fills

    async def tick_symbol(self, symbol: str, price: Decimal) -> Dict[str, List[SimulatedOrder]]:
        """
        Fan a tick out to every ACTIVE grid on a symbol.

        Grids of one account run one after another; accounts run
        concurrently. The first failure is raised after all accounts finish.
        """
        grids = await self.repository.list_grids(symbol=symbol, status=GridStatus.ACTIVE)

        by_account: Dict[str, List[str]] = defaultdict(list)
        for grid in grids:
            by_account[grid.account_id].append(grid.id)

        results: Dict[str, List[SimulatedOrder]] = {}

        async def run_account(grid_ids: List[str]) -> None:
            for grid_id in grid_ids:
                results[grid_id] = await self.tick_grid(grid_id, price)

        outcomes = await asyncio.gather(
            *(run_account(ids) for ids in by_account.values()),
            return_exceptions=True
        )

        errors = [outcome for outcome in outcomes if isinstance(outcome, BaseException)]
        if errors:
            logger.error(f"Tick {price} on {symbol.upper()} failed for {len(errors)} account(s)")
            raise errors[0]
        return results

    async def _fill_level(self, grid: Grid, index: int, price: Decimal):
        """Fill one level; returns the updated grid and the fill."""
        level = grid.level(index)
        candidate = copy.deepcopy(grid)
        pending: Optional[SimulatedOrder] = None

        async def on_fill(fill: SimulatedOrder) -> None:
            nonlocal pending
            pending = fill
            self._apply_fill(candidate, candidate.level(index), fill)
            await self.repository.save_grid(candidate)

        request = LimitOrderRequest(
            symbol=grid.symbol,
            side=level.side,
            quantity=level.quantity,
            exchange=grid.exchange,
            limit_price=level.price,
            mark_price=price,
        )

        try:
            fill = await self.simulator.simulate(
                grid.account_id, request, grid_id=grid.id, on_fill=on_fill
            )
        except BaseException:
            # Level state follows the ledger: put the grid back unless the fill committed
            if pending is not None and not self.simulator.is_committed(grid.account_id, pending.id):
                await self.repository.save_grid(grid)
            raise

        return candidate, fill

    def _apply_fill(self, grid: Grid, level: GridLevel, fill: SimulatedOrder) -> None:
        """Mark the level filled and pair the fill FIFO against opposite lots."""
        level.filled = True
        level.fill_id = fill.id
        level.filled_at = fill.executed_at

        remaining = fill.quantity
        realized = Decimal("0")
        for lot in grid.open_lots:
            if remaining == 0:
                break
            if lot.side != fill.side.opposite:
                continue
            matched = min(remaining, lot.quantity)
            realized += (fill.executed_price - lot.price) * matched * lot.side.sign
            lot.quantity -= matched
            remaining -= matched

        grid.open_lots = [lot for lot in grid.open_lots if lot.quantity > 0]
        if remaining > 0:
            grid.open_lots.append(GridLot(side=fill.side, price=fill.executed_price, quantity=remaining))

        grid.fees_paid += fill.fee
        grid.realized_profit = quantize_money(grid.realized_profit + realized - fill.fee)
        grid.updated_at = fill.executed_at

        self._record(grid, GridEventType.LEVEL_FILLED, f"Grid level filled at {level.price}", {
            "index": level.index,
            "side": level.side.value,
            "price": str(fill.executed_price),
            "quantity": str(fill.quantity),
            "fee": str(fill.fee),
            "fill_id": fill.id,
            "realized": str(quantize_money(realized)),
        })

    # ==================== LIFECYCLE ====================

    async def close_grid(
        self,
        grid_id: str,
        reason: str = "manual",
        mark_price: Optional[Decimal] = None
    ) -> Grid:
        """
        Close a grid, folding unpaired lots' unrealized value into total profit.

        Closing an already CLOSED grid returns it unchanged.
        """
        async with self._locks(grid_id):
            grid = await self._require(grid_id)
            if grid.status == GridStatus.CLOSED:
                return grid

            mark = await self._mark_for(grid, mark_price)
            unrealized = grid.unrealized_pnl(mark)
            now = self._clock()

            grid.total_profit = quantize_money(grid.realized_profit + unrealized)
            grid.status = GridStatus.CLOSED
            grid.closed_at = now
            grid.updated_at = now
            grid.close_reason = reason

            self._record(grid, GridEventType.CLOSED, f"Grid closed: {reason}", {
                "reason": reason,
                "mark_price": str(mark) if mark is not None else None,
                "realized_profit": str(grid.realized_profit),
                "unrealized_pnl": str(unrealized),
                "total_profit": str(grid.total_profit),
            })
            await self.repository.save_grid(grid)

            logger.info(f"Grid {grid_id} closed ({reason}): total profit {grid.total_profit}")
            return grid

    async def pause_grid(self, grid_id: str) -> Grid:
        return await self._transition(grid_id, GridStatus.ACTIVE, GridStatus.PAUSED, GridEventType.PAUSED)

    async def resume_grid(self, grid_id: str) -> Grid:
        return await self._transition(grid_id, GridStatus.PAUSED, GridStatus.ACTIVE, GridEventType.RESUMED)

    async def _transition(
        self,
        grid_id: str,
        source: GridStatus,
        target: GridStatus,
        event: GridEventType
    ) -> Grid:
        async with self._locks(grid_id):
            grid = await self._require(grid_id)
            if grid.status != source:
                raise GridStateError(
                    f"Cannot move grid {grid_id} from {grid.status.value} to {target.value}",
                    details={"grid_id": grid_id, "status": grid.status.value, "target": target.value}
                )

            grid.status = target
            grid.updated_at = self._clock()
            self._record(grid, event, f"Grid {event.value}")
            await self.repository.save_grid(grid)

            logger.info(f"Grid {grid_id} {source.value} -> {target.value}")
            return grid

    # ==================== MONITORING ====================

    async def get_grid(self, grid_id: str) -> Grid:
        return await self._require(grid_id)

    async def get_grid_status(self, grid_id: str, mark_price: Optional[Decimal] = None) -> Dict[str, Any]:
        """Level counts and profit figures at the latest mark."""
        grid = await self._require(grid_id)
        mark = await self._mark_for(grid, mark_price)

        return {
            "grid_id": grid.id,
            "account_id": grid.account_id,
            "symbol": grid.symbol,
            "strategy": grid.strategy,
            "status": grid.status,
            "mark_price": mark,
            "total_levels": len(grid.levels),
            "filled_levels": len(grid.filled_levels),
            "active_levels": len(grid.active_levels),
            "realized_profit": grid.realized_profit,
            "unrealized_pnl": grid.unrealized_pnl(mark),
            "fees_paid": grid.fees_paid,
            "total_profit": grid.total_profit,
            "levels": [
                {
                    "index": level.index,
                    "price": level.price,
                    "quantity": level.quantity,
                    "side": level.side.value,
                    "filled": level.filled,
                    "fill_id": level.fill_id,
                }
                for level in grid.levels
            ],
        }

    async def get_events(self, grid_id: str) -> List[GridEvent]:
        grid = await self._require(grid_id)
        return list(grid.events)

    # ==================== INTERNAL ====================

    async def _require(self, grid_id: str) -> Grid:
        grid = await self.repository.load_grid(grid_id)
        if grid is None:
            raise GridNotFoundError(grid_id)
        return grid

    async def _mark_for(self, grid: Grid, mark_price: Optional[Decimal]) -> Optional[Decimal]:
        if mark_price is not None:
            return Decimal(str(mark_price))
        if self.price_feed is not None:
            mark = await self.price_feed.latest_mark_price(grid.symbol)
            if mark is not None:
                return mark
        return grid.last_price

    async def _mark_error(self, grid: Grid, message: str) -> None:
        grid.status = GridStatus.ERROR
        grid.error = message
        grid.updated_at = self._clock()
        self._record(grid, GridEventType.ERROR, message)
        logger.error(f"Grid {grid.id} moved to ERROR: {message}")
        try:
            await self.repository.save_grid(grid)
        except Exception as e:
            logger.error(f"Could not persist ERROR state for grid {grid.id}: {e}")

    def _record(
        self,
        grid: Grid,
        event_type: GridEventType,
        description: str,
        data: Optional[Dict[str, Any]] = None
    ) -> None:
        grid.events.append(GridEvent(type=event_type, at=self._clock(), description=description, data=data or {}))
        logger.info(f"Grid event: {event_type.value} [{grid.id}] {description}")
