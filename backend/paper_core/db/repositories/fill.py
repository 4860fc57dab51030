"""
Fill Repository

Append-only durable trade history.
"""
from abc import ABC, abstractmethod
from datetime import timezone
from decimal import Decimal
from typing import Dict, List

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import async_sessionmaker
from loguru import logger

from paper_core.core.trading.models import SimulatedOrder, quantize_money, quantize_percent
from paper_core.db.models.fill import FillRecord


class FillRepository(ABC):
    """Durable storage for simulated fills."""

    @abstractmethod
    async def persist_fill(self, account_id: str, fill: SimulatedOrder) -> None:
        """Append a fill to the account's history."""
        pass

    @abstractmethod
    async def load_fill_history(self, account_id: str) -> List[SimulatedOrder]:
        """All fills for the account ordered by sequence."""
        pass

    @abstractmethod
    async def clear_history(self, account_id: str) -> int:
        """Administrative: drop the account's history. Returns rows removed."""
        pass


class InMemoryFillRepository(FillRepository):
    """Process-local fill storage."""

    def __init__(self):
        self._fills: Dict[str, List[SimulatedOrder]] = {}

    async def persist_fill(self, account_id: str, fill: SimulatedOrder) -> None:
        self._fills.setdefault(account_id, []).append(fill)

    async def load_fill_history(self, account_id: str) -> List[SimulatedOrder]:
        return sorted(self._fills.get(account_id, []), key=lambda f: f.sequence)

    async def clear_history(self, account_id: str) -> int:
        return len(self._fills.pop(account_id, []))


class SqlFillRepository(FillRepository):
    """
    Repository for FillRecord database operations.

    Each call runs in its own session from the injected factory.
    """

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def persist_fill(self, account_id: str, fill: SimulatedOrder) -> None:
        record = FillRecord(
            id=fill.id,
            account_id=account_id,
            sequence=fill.sequence,
            symbol=fill.symbol,
            exchange=fill.exchange,
            side=fill.side,
            order_type=fill.order_type,
            quantity=fill.quantity,
            requested_price=fill.requested_price,
            executed_price=fill.executed_price,
            fee=fill.fee,
            fee_percent=fill.fee_percent,
            slippage=fill.slippage,
            slippage_percent=fill.slippage_percent,
            realized_pnl=fill.realized_pnl,
            client_order_id=fill.client_order_id,
            grid_id=fill.grid_id,
            is_paper_trade=True,
            executed_at=fill.executed_at,
        )

        async with self.session_maker() as session:
            session.add(record)
            await session.commit()

        logger.debug(f"Persisted fill {fill.id} (#{fill.sequence}) for account {account_id}")

    async def load_fill_history(self, account_id: str) -> List[SimulatedOrder]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(FillRecord)
                .where(FillRecord.account_id == account_id)
                .order_by(FillRecord.sequence)
            )
            return [self._to_domain(record) for record in result.scalars().all()]

    async def clear_history(self, account_id: str) -> int:
        async with self.session_maker() as session:
            result = await session.execute(
                delete(FillRecord).where(FillRecord.account_id == account_id)
            )
            await session.commit()

        logger.warning(f"Cleared {result.rowcount} persisted fills for account {account_id}")
        return result.rowcount

    @staticmethod
    def _to_domain(record: FillRecord) -> SimulatedOrder:
        executed_at = record.executed_at
        if executed_at.tzinfo is None:
            executed_at = executed_at.replace(tzinfo=timezone.utc)

        return SimulatedOrder(
            id=record.id,
            account_id=record.account_id,
            sequence=record.sequence,
            symbol=record.symbol,
            exchange=record.exchange,
            side=record.side,
            order_type=record.order_type,
            quantity=quantize_money(Decimal(record.quantity)),
            requested_price=(
                quantize_money(Decimal(record.requested_price))
                if record.requested_price is not None else None
            ),
            executed_price=quantize_money(Decimal(record.executed_price)),
            fee=quantize_money(Decimal(record.fee)),
            fee_percent=quantize_percent(Decimal(record.fee_percent)),
            slippage=quantize_money(Decimal(record.slippage)),
            slippage_percent=quantize_percent(Decimal(record.slippage_percent)),
            realized_pnl=quantize_money(Decimal(record.realized_pnl)),
            executed_at=executed_at,
            client_order_id=record.client_order_id,
            grid_id=record.grid_id,
        )
