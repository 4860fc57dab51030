"""
Grid Repository

Grid definitions and their mutable level-fill state.
"""
import copy
from abc import ABC, abstractmethod
from datetime import timezone
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker
from loguru import logger

from paper_core.core.grid.models import Grid, GridStatus, GridLevel, GridLot, GridEvent
from paper_core.db.models.grid import GridRecord


class GridRepository(ABC):
    """Durable storage for grids."""

    @abstractmethod
    async def load_grid(self, grid_id: str) -> Optional[Grid]:
        pass

    @abstractmethod
    async def save_grid(self, grid: Grid) -> None:
        """Insert or replace the grid's full state."""
        pass

    @abstractmethod
    async def list_grids(
        self,
        symbol: Optional[str] = None,
        status: Optional[GridStatus] = None,
        account_id: Optional[str] = None
    ) -> List[Grid]:
        pass


class InMemoryGridRepository(GridRepository):
    """Process-local grid storage. Stores and returns copies."""

    def __init__(self):
        self._grids: Dict[str, Grid] = {}

    async def load_grid(self, grid_id: str) -> Optional[Grid]:
        grid = self._grids.get(grid_id)
        return copy.deepcopy(grid) if grid is not None else None

    async def save_grid(self, grid: Grid) -> None:
        self._grids[grid.id] = copy.deepcopy(grid)

    async def list_grids(
        self,
        symbol: Optional[str] = None,
        status: Optional[GridStatus] = None,
        account_id: Optional[str] = None
    ) -> List[Grid]:
        grids = []
        for grid in self._grids.values():
            if symbol is not None and grid.symbol != symbol.upper():
                continue
            if status is not None and grid.status != status:
                continue
            if account_id is not None and grid.account_id != account_id:
                continue
            grids.append(copy.deepcopy(grid))
        return sorted(grids, key=lambda g: g.id)


def _utc(value):
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _dec(value) -> Optional[Decimal]:
    return Decimal(str(value)) if value is not None else None


class SqlGridRepository(GridRepository):
    """
    Repository for GridRecord database operations.

    Each call runs in its own session from the injected factory.
    """

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def load_grid(self, grid_id: str) -> Optional[Grid]:
        async with self.session_maker() as session:
            record = await session.get(GridRecord, grid_id)
            return self._to_domain(record) if record is not None else None

    async def save_grid(self, grid: Grid) -> None:
        async with self.session_maker() as session:
            record = await session.get(GridRecord, grid.id)
            if record is None:
                record = GridRecord(id=grid.id)
                session.add(record)
            self._apply(record, grid)
            await session.commit()

        logger.debug(f"Saved grid {grid.id} (status: {grid.status.value})")

    async def list_grids(
        self,
        symbol: Optional[str] = None,
        status: Optional[GridStatus] = None,
        account_id: Optional[str] = None
    ) -> List[Grid]:
        query = select(GridRecord).order_by(GridRecord.id)
        if symbol is not None:
            query = query.where(GridRecord.symbol == symbol.upper())
        if status is not None:
            query = query.where(GridRecord.status == status)
        if account_id is not None:
            query = query.where(GridRecord.account_id == account_id)

        async with self.session_maker() as session:
            result = await session.execute(query)
            return [self._to_domain(record) for record in result.scalars().all()]

    @staticmethod
    def _apply(record: GridRecord, grid: Grid) -> None:
        record.account_id = grid.account_id
        record.symbol = grid.symbol
        record.exchange = grid.exchange
        record.strategy = grid.strategy
        record.status = grid.status
        record.base_price = grid.base_price
        record.spacing = grid.spacing
        record.max_exposure = grid.max_exposure
        record.levels = [level.to_dict() for level in grid.levels]
        record.open_lots = [lot.to_dict() for lot in grid.open_lots]
        record.events = [event.to_dict() for event in grid.events]
        record.realized_profit = grid.realized_profit
        record.fees_paid = grid.fees_paid
        record.total_profit = grid.total_profit
        record.last_price = grid.last_price
        record.close_reason = grid.close_reason
        record.error = grid.error
        record.created_at = grid.created_at
        record.updated_at = grid.updated_at
        record.closed_at = grid.closed_at

    @staticmethod
    def _to_domain(record: GridRecord) -> Grid:
        return Grid(
            id=record.id,
            account_id=record.account_id,
            symbol=record.symbol,
            exchange=record.exchange,
            strategy=record.strategy,
            base_price=_dec(record.base_price),
            spacing=_dec(record.spacing),
            levels=[GridLevel.from_dict(level) for level in record.levels or []],
            status=record.status,
            realized_profit=_dec(record.realized_profit),
            fees_paid=_dec(record.fees_paid),
            total_profit=_dec(record.total_profit),
            open_lots=[GridLot.from_dict(lot) for lot in record.open_lots or []],
            max_exposure=_dec(record.max_exposure),
            last_price=_dec(record.last_price),
            created_at=_utc(record.created_at),
            updated_at=_utc(record.updated_at),
            closed_at=_utc(record.closed_at),
            close_reason=record.close_reason,
            error=record.error,
            events=[GridEvent.from_dict(event) for event in record.events or []],
        )
