"""
Paper Trading Core - Custom Exceptions
Application-specific exceptions with stable error codes
"""
from typing import Optional, Any, Dict


class PaperTradingException(Exception):
    """Base exception for the paper trading core."""

    def __init__(
        self,
        message: str = "An error occurred",
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


# =========================
# Trading Exceptions
# =========================

class TradingError(PaperTradingException):
    """Trading related errors."""
    pass


class InvalidOrderError(TradingError):
    """Invalid order parameters. Rejected before any mutation."""

    def __init__(
        self,
        message: str = "Invalid order",
        details: Optional[Dict[str, Any]] = None,
        code: str = "INVALID_ORDER"
    ):
        super().__init__(message=message, code=code, details=details)


class InsufficientPositionError(InvalidOrderError):
    """Sell would drive the position size below zero."""

    def __init__(self, message: str = "Insufficient position", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, details=details, code="INSUFFICIENT_POSITION")


# =========================
# Ledger Exceptions
# =========================

class LedgerError(PaperTradingException):
    """Ledger related errors."""
    pass


class InsufficientFundsError(LedgerError):
    """Insufficient available balance. Rejected before any mutation."""

    def __init__(self, message: str = "Insufficient funds", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="INSUFFICIENT_FUNDS", details=details)


class AccountNotFoundError(LedgerError):
    """No ledger entry for the account."""

    def __init__(self, account_id: str = ""):
        message = f"Account '{account_id}' not found" if account_id else "Account not found"
        super().__init__(message=message, code="ACCOUNT_NOT_FOUND", details={"account_id": account_id})


class LedgerInvariantViolation(LedgerError):
    """
    A ledger mutation would break total == available + locked or drive a
    balance negative. Signals a bug; never recovered from.
    """

    def __init__(self, message: str = "Ledger invariant violated", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="LEDGER_INVARIANT_VIOLATION", details=details)


# =========================
# Grid Exceptions
# =========================

class GridError(PaperTradingException):
    """Grid strategy related errors."""
    pass


class GridNotFoundError(GridError):
    """Grid not found."""

    def __init__(self, grid_id: str = ""):
        message = f"Grid '{grid_id}' not found" if grid_id else "Grid not found"
        super().__init__(message=message, code="GRID_NOT_FOUND", details={"grid_id": grid_id})


class InvalidGridSpecError(GridError):
    """Grid specification rejected before any grid was created."""

    def __init__(self, message: str = "Invalid grid specification", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="INVALID_GRID_SPEC", details=details)


class GridInitializationError(GridError):
    """Grid creation failed part way; the grid is left in ERROR."""

    def __init__(self, grid_id: str, message: str = "Grid initialization failed"):
        super().__init__(message=message, code="GRID_INITIALIZATION_FAILED", details={"grid_id": grid_id})
        self.grid_id = grid_id


class GridStateError(GridError):
    """Requested lifecycle transition is not allowed from the current status."""

    def __init__(self, message: str = "Invalid grid state transition", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="INVALID_GRID_STATE", details=details)
