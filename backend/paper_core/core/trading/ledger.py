"""
Paper Trading Core - Virtual Balance Ledger

Single source of truth for per-account virtual funds in one settlement
currency. Each account holds total / available / locked amounts with
total == available + locked at every observable point.

Every mutation runs under the account's lock and is all-or-nothing:
new values are computed, checked, and only then written.
"""
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, Dict, Callable

from loguru import logger

from paper_core.core.trading.locks import KeyedLocks
from paper_core.core.trading.models import quantize_money
from paper_core.utils.exceptions import (
    AccountNotFoundError,
    InsufficientFundsError,
    LedgerInvariantViolation,
)


class BalanceDirection(str, Enum):
    """Direction of a settlement adjustment to the available balance."""
    CREDIT = "credit"
    DEBIT = "debit"


@dataclass(frozen=True)
class AccountBalance:
    """Balance snapshot for one account."""
    account_id: str
    currency: str
    total: Decimal
    available: Decimal
    locked: Decimal
    initial_balance: Decimal
    updated_at: datetime

    def to_dict(self) -> Dict[str, str]:
        return {
            "account_id": self.account_id,
            "currency": self.currency,
            "total": str(self.total),
            "available": str(self.available),
            "locked": str(self.locked),
            "initial_balance": str(self.initial_balance),
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Ledger:
    """
    Virtual Balance Ledger

    Responsible for:
    - Lazy account initialization with a starting balance
    - Reservations (available -> locked)
    - Settlements (release reservation, apply signed adjustment)
    - Administrative reset
    """

    def __init__(
        self,
        initial_balance: Decimal = Decimal("10000"),
        currency: str = "USDT",
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.initial_balance = quantize_money(Decimal(initial_balance))
        self.currency = currency
        self._clock = clock or _utcnow
        self._balances: Dict[str, AccountBalance] = {}
        self._locks = KeyedLocks()

    # ==================== READ ====================

    def get_balance(self, account_id: str) -> Optional[AccountBalance]:
        """Get the balance snapshot for an account, or None if never initialized."""
        return self._balances.get(account_id)

    def require_balance(self, account_id: str) -> AccountBalance:
        balance = self._balances.get(account_id)
        if balance is None:
            raise AccountNotFoundError(account_id)
        return balance

    # ==================== MUTATE ====================

    async def initialize(
        self,
        account_id: str,
        starting_balance: Optional[Decimal] = None
    ) -> AccountBalance:
        """
        Create the account's balance record if it does not exist.

        Idempotent: an existing record is returned unchanged and the
        starting balance argument is ignored.
        """
        async with self._locks(account_id):
            existing = self._balances.get(account_id)
            if existing is not None:
                return existing

            amount = quantize_money(Decimal(starting_balance)) if starting_balance is not None else self.initial_balance
            if amount < 0:
                raise ValueError("Starting balance must not be negative")

            balance = AccountBalance(
                account_id=account_id,
                currency=self.currency,
                total=amount,
                available=amount,
                locked=Decimal("0"),
                initial_balance=amount,
                updated_at=self._clock()
            )
            self._balances[account_id] = balance

            logger.info(
                f"Virtual balance initialized for account {account_id}: "
                f"{amount} {self.currency} (paper trading)"
            )
            return balance

    async def reserve(self, account_id: str, amount: Decimal) -> AccountBalance:
        """
        Move ``amount`` from available to locked.

        Raises:
            InsufficientFundsError: amount exceeds available (no effect)
        """
        amount = self._positive_amount(amount)
        async with self._locks(account_id):
            balance = self.require_balance(account_id)
            if amount > balance.available:
                raise InsufficientFundsError(
                    f"Insufficient virtual balance. Required: {amount}, "
                    f"Available: {balance.available}",
                    details={
                        "account_id": account_id,
                        "required": str(amount),
                        "available": str(balance.available),
                    }
                )
            return self._commit(
                balance,
                available=balance.available - amount,
                locked=balance.locked + amount,
                operation="reserve"
            )

    async def release(self, account_id: str, amount: Decimal) -> AccountBalance:
        """Return a prior reservation from locked to available."""
        amount = self._positive_amount(amount)
        async with self._locks(account_id):
            balance = self.require_balance(account_id)
            return self._commit(
                balance,
                available=balance.available + amount,
                locked=balance.locked - amount,
                operation="release"
            )

    async def settle(
        self,
        account_id: str,
        amount: Decimal,
        direction: BalanceDirection,
        reserved: Decimal = Decimal("0")
    ) -> AccountBalance:
        """
        Apply a signed adjustment to available.

        When ``reserved`` is given the prior reservation is resolved in the
        same step: locked drops by ``reserved`` and the reserved funds return
        to available before the adjustment is applied.

        Raises:
            LedgerInvariantViolation: the result would be negative anywhere
        """
        amount = Decimal(amount)
        reserved = Decimal(reserved)
        if amount < 0 or reserved < 0:
            raise ValueError("Settlement amounts must not be negative")

        signed = amount if direction == BalanceDirection.CREDIT else -amount
        async with self._locks(account_id):
            balance = self.require_balance(account_id)
            return self._commit(
                balance,
                available=balance.available + reserved + signed,
                locked=balance.locked - reserved,
                operation=f"settle_{direction.value}"
            )

    async def reset(
        self,
        account_id: str,
        starting_balance: Optional[Decimal] = None
    ) -> AccountBalance:
        """Administrative reset to a fresh starting balance."""
        async with self._locks(account_id):
            amount = quantize_money(Decimal(starting_balance)) if starting_balance is not None else self.initial_balance
            balance = AccountBalance(
                account_id=account_id,
                currency=self.currency,
                total=amount,
                available=amount,
                locked=Decimal("0"),
                initial_balance=amount,
                updated_at=self._clock()
            )
            self._balances[account_id] = balance
            logger.warning(f"Virtual balance reset for account {account_id} to {amount} {self.currency}")
            return balance

    # ==================== INTERNAL ====================

    @staticmethod
    def _positive_amount(amount: Decimal) -> Decimal:
        amount = Decimal(amount)
        if amount <= 0:
            raise ValueError("Amount must be positive")
        return amount

    def _commit(
        self,
        balance: AccountBalance,
        available: Decimal,
        locked: Decimal,
        operation: str
    ) -> AccountBalance:
        total = available + locked
        if available < 0 or locked < 0 or total < 0:
            state = {
                "account_id": balance.account_id,
                "operation": operation,
                "before": balance.to_dict(),
                "attempted": {
                    "total": str(total),
                    "available": str(available),
                    "locked": str(locked),
                },
            }
            logger.error(f"Ledger invariant violation on {operation}: {state}")
            raise LedgerInvariantViolation(
                f"Ledger invariant violated by {operation} on account {balance.account_id}",
                details=state
            )

        updated = replace(
            balance,
            total=total,
            available=available,
            locked=locked,
            updated_at=self._clock()
        )
        self._balances[balance.account_id] = updated
        return updated
