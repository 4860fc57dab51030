"""
Paper Trading Core - Order Simulator

Turns a validated order request into a filled paper trade:
- Market orders: reference price plus slippage against the taker
- Limit orders: fill at the limit price when marketable, no slippage
- Venue fees from the fee model
- Funds reserved then settled against the ledger
- Position updated and fill appended to the trade history

Everything for one account runs under that account's lock, so fills are
committed in the order their calls acquire it. A rejected order leaves
ledger, positions and history untouched.
"""
import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Dict, List, Any, Callable, Awaitable, Union
from uuid import uuid4

from paper_core.core.trading.fees import FeeModel
from paper_core.core.trading.ledger import Ledger, BalanceDirection, AccountBalance
from paper_core.core.trading.locks import KeyedLocks
from paper_core.core.trading.models import (
    OrderSide,
    OrderType,
    SimulatedOrder,
    quantize_money,
    quantize_percent,
)
from paper_core.core.trading.position_tracker import PositionTracker
from paper_core.core.trading.slippage import (
    PRICE_FLOOR,
    SlippageModel,
    MarketConditions,
    MarketConditionsRegistry,
)
from paper_core.db.repositories.fill import FillRepository
from paper_core.schemas.orders import (
    LimitOrderRequest,
    MarketOrderRequest,
    parse_order_request,
)
from paper_core.services.price_feed import PriceFeed
from paper_core.utils.logger import logger
from paper_core.utils.exceptions import (
    InsufficientFundsError,
    InvalidOrderError,
)


FillHook = Callable[[SimulatedOrder], Awaitable[None]]


@dataclass
class SimulationStats:
    """Running statistics for one simulator instance."""
    total_orders: int = 0
    buy_orders: int = 0
    sell_orders: int = 0
    rejected_orders: int = 0
    total_fees: Decimal = Decimal("0")
    total_slippage_percent: Decimal = Decimal("0")
    total_volume: Decimal = Decimal("0")

    @property
    def average_slippage_percent(self) -> Decimal:
        if self.total_orders == 0:
            return Decimal("0")
        return quantize_percent(self.total_slippage_percent / self.total_orders)

    @property
    def average_fee(self) -> Decimal:
        if self.total_orders == 0:
            return Decimal("0")
        return quantize_money(self.total_fees / self.total_orders)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_orders": self.total_orders,
            "buy_orders": self.buy_orders,
            "sell_orders": self.sell_orders,
            "rejected_orders": self.rejected_orders,
            "total_fees": str(self.total_fees),
            "total_volume": str(self.total_volume),
            "average_slippage_percent": str(self.average_slippage_percent),
            "average_fee": str(self.average_fee),
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderSimulator:
    """
    Order Simulator

    Responsible for:
    - Validating order requests
    - Pricing fills (slippage, fees)
    - Reserving and settling funds
    - Updating positions and trade history
    """

    def __init__(
        self,
        ledger: Ledger,
        fee_model: FeeModel,
        slippage_model: SlippageModel,
        position_tracker: PositionTracker,
        fill_repository: Optional[FillRepository] = None,
        price_feed: Optional[PriceFeed] = None,
        market_conditions: Optional[MarketConditionsRegistry] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.ledger = ledger
        self.fee_model = fee_model
        self.slippage_model = slippage_model
        self.position_tracker = position_tracker
        self.fill_repository = fill_repository
        self.price_feed = price_feed
        self.market_conditions = market_conditions or MarketConditionsRegistry()
        self._clock = clock or _utcnow

        self._locks = KeyedLocks()
        self._history: Dict[str, List[SimulatedOrder]] = {}
        self._sequences: Dict[str, int] = {}
        self.stats = SimulationStats()

    # ==================== SIMULATION ====================

    async def simulate(
        self,
        account_id: str,
        request: Union[Dict[str, Any], MarketOrderRequest, LimitOrderRequest],
        *,
        grid_id: Optional[str] = None,
        on_fill: Optional[FillHook] = None
    ) -> SimulatedOrder:
        """
        Simulate an order for an account.

        Args:
            account_id: Owning account
            request: Raw payload or validated order request
            grid_id: Tags the fill as placed by a grid
            on_fill: Awaited with the priced fill before anything is
                committed; raising aborts the order with no effect

        Returns:
            The committed SimulatedOrder

        Raises:
            InvalidOrderError: malformed request, no reference price,
                limit not marketable, or sell beyond the held position
            InsufficientFundsError: buy cannot be funded
        """
        if not account_id:
            raise InvalidOrderError("Account id is required")

        try:
            request = parse_order_request(request)
        except InvalidOrderError:
            self.stats.rejected_orders += 1
            raise

        async with self._locks(account_id):
            await self.ledger.initialize(account_id)
            try:
                return await self._execute(account_id, request, grid_id, on_fill)
            except (InvalidOrderError, InsufficientFundsError) as e:
                self.stats.rejected_orders += 1
                logger.warning(
                    f"Paper order rejected for account {account_id}: "
                    f"{request.side.value} {request.quantity} {request.symbol} ({e.code}: {e.message})"
                )
                raise

    async def _execute(
        self,
        account_id: str,
        request: Union[MarketOrderRequest, LimitOrderRequest],
        grid_id: Optional[str],
        on_fill: Optional[FillHook]
    ) -> SimulatedOrder:
        order_type = OrderType(request.order_type)
        side = request.side
        quantity = request.quantity

        if order_type == OrderType.LIMIT:
            executed_price, slippage, slippage_percent = await self._price_limit(request)
        else:
            executed_price, slippage, slippage_percent = await self._price_market(request)

        fee = self.fee_model.fee(quantity, executed_price, request.exchange, order_type)
        executed_at = self._clock()

        # Raises on an oversell before any funds move
        change = self.position_tracker.preview(
            account_id, request.symbol, side, quantity, executed_price, executed_at
        )

        fill = SimulatedOrder(
            id=f"sim_{uuid4().hex}",
            account_id=account_id,
            sequence=self._sequences.get(account_id, 0) + 1,
            symbol=request.symbol,
            exchange=request.exchange,
            side=side,
            order_type=order_type,
            quantity=quantity,
            requested_price=request.reference_price,
            executed_price=executed_price,
            fee=fee.fee_amount,
            fee_percent=fee.fee_percent,
            slippage=slippage,
            slippage_percent=slippage_percent,
            realized_pnl=change.realized_pnl,
            executed_at=executed_at,
            client_order_id=request.client_order_id,
            grid_id=grid_id,
        )

        reserved = Decimal("0")
        if side == OrderSide.BUY:
            reserved = fill.notional + fill.fee
            await self.ledger.reserve(account_id, reserved)

        try:
            if on_fill is not None:
                await on_fill(fill)
            if self.fill_repository is not None:
                await self.fill_repository.persist_fill(account_id, fill)
        except BaseException as e:
            # Includes cancellation: nothing is committed, so the reservation goes back
            if reserved > 0:
                await self.ledger.release(account_id, reserved)
            logger.error(f"Paper order for account {account_id} aborted before commit: {e!r}")
            raise

        # Admitted. A caller cancelling from here on waits for the commit to finish.
        settlement = asyncio.ensure_future(self._settle(account_id, fill, change, reserved))
        try:
            await asyncio.shield(settlement)
        except asyncio.CancelledError:
            await settlement
            logger.warning(f"Paper fill {fill.id} committed for account {account_id} after the caller was cancelled")
            raise

        logger.info(
            f"Paper fill {fill.id} #{fill.sequence} for account {account_id}: "
            f"{side.value} {quantity} {fill.symbol} on {fill.exchange} @ {executed_price} "
            f"(requested: {fill.requested_price}, slippage: {slippage_percent}%, "
            f"fee: {fill.fee} [{fill.fee_percent}%], is_paper_trade=True)"
        )
        return fill

    async def _settle(self, account_id: str, fill: SimulatedOrder, change, reserved: Decimal) -> None:
        if fill.side == OrderSide.BUY:
            await self.ledger.settle(account_id, reserved, BalanceDirection.DEBIT, reserved=reserved)
        else:
            await self.ledger.settle(account_id, fill.notional - fill.fee, BalanceDirection.CREDIT)
        self._commit(account_id, fill, change)

    async def _reference_price(self, symbol: str) -> Optional[Decimal]:
        if self.price_feed is None:
            return None
        return await self.price_feed.latest_mark_price(symbol)

    async def _price_market(self, request: MarketOrderRequest):
        price = request.price
        if price is None:
            price = await self._reference_price(request.symbol)
        if price is None:
            raise InvalidOrderError(
                f"No reference price available for {request.symbol}",
                details={"symbol": request.symbol}
            )
        if price < PRICE_FLOOR:
            raise InvalidOrderError(
                f"Reference price {price} for {request.symbol} is below {PRICE_FLOOR}",
                details={"symbol": request.symbol, "price": str(price)}
            )

        conditions = self._conditions_for(request)
        result = self.slippage_model.slip(
            Decimal(price), request.quantity, request.side, conditions, OrderType.MARKET
        )
        return result.executed_price, result.slippage_amount, result.slippage_percent

    async def _price_limit(self, request: LimitOrderRequest):
        limit_price = request.limit_price
        mark = request.mark_price
        if mark is None:
            mark = await self._reference_price(request.symbol)

        if mark is not None:
            if request.side == OrderSide.BUY:
                limit_met = mark <= limit_price
            else:
                limit_met = mark >= limit_price

            if not limit_met:
                raise InvalidOrderError(
                    f"Limit not met: current {mark}, limit {limit_price}",
                    details={"symbol": request.symbol, "mark_price": str(mark), "limit_price": str(limit_price)}
                )

        return quantize_money(limit_price), Decimal("0"), Decimal("0")

    def _conditions_for(self, request) -> MarketConditions:
        if request.conditions is not None:
            return request.conditions.to_domain()
        return self.market_conditions.get(request.symbol)

    def _commit(self, account_id: str, fill: SimulatedOrder, change) -> None:
        self.position_tracker.apply(change)
        self._history.setdefault(account_id, []).append(fill)
        self._sequences[account_id] = fill.sequence

        stats = self.stats
        stats.total_orders += 1
        if fill.side == OrderSide.BUY:
            stats.buy_orders += 1
        else:
            stats.sell_orders += 1
        stats.total_fees += fill.fee
        stats.total_slippage_percent += fill.slippage_percent
        stats.total_volume += fill.notional

    # ==================== HISTORY ====================

    def get_trade_history(self, account_id: str, limit: Optional[int] = None) -> List[SimulatedOrder]:
        """Committed fills in sequence order; ``limit`` keeps the most recent."""
        history = self._history.get(account_id, [])
        if limit is not None:
            if limit <= 0:
                return []
            history = history[-limit:]
        return list(history)

    def is_committed(self, account_id: str, fill_id: str) -> bool:
        return any(fill.id == fill_id for fill in reversed(self._history.get(account_id, [])))

    # ==================== ADMINISTRATION ====================

    async def reset_account(
        self,
        account_id: str,
        starting_balance: Optional[Decimal] = None
    ) -> AccountBalance:
        """Drop positions and history and reset the balance."""
        async with self._locks(account_id):
            self._history.pop(account_id, None)
            self._sequences.pop(account_id, None)
            self.position_tracker.reset(account_id)
            return await self.ledger.reset(account_id, starting_balance)

    async def restore_account(
        self,
        account_id: str,
        fills: List[SimulatedOrder],
        starting_balance: Optional[Decimal] = None
    ) -> AccountBalance:
        """
        Rebuild balance, positions and history by replaying fills.

        Fills are replayed in sequence order on top of a fresh starting
        balance; no fees or slippage are recomputed.
        """
        async with self._locks(account_id):
            self._history.pop(account_id, None)
            self._sequences.pop(account_id, None)
            self.position_tracker.reset(account_id)
            balance = await self.ledger.reset(account_id, starting_balance)

            for fill in sorted(fills, key=lambda f: f.sequence):
                change = self.position_tracker.preview(
                    account_id, fill.symbol, fill.side, fill.quantity, fill.executed_price, fill.executed_at
                )
                if fill.side == OrderSide.BUY:
                    balance = await self.ledger.settle(account_id, fill.notional + fill.fee, BalanceDirection.DEBIT)
                else:
                    balance = await self.ledger.settle(account_id, fill.notional - fill.fee, BalanceDirection.CREDIT)

                self.position_tracker.apply(change)
                self._history.setdefault(account_id, []).append(fill)
                self._sequences[account_id] = fill.sequence

            logger.info(f"Restored account {account_id} from {len(fills)} persisted fills")
            return balance
