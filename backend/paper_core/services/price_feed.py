"""
Paper Trading Core - Price Feed

Market data is an external collaborator; the core only needs the latest
mark price per symbol.
"""
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional, Dict


class PriceFeed(ABC):
    """Source of mark prices for unrealized P&L and order reference prices."""

    @abstractmethod
    async def latest_mark_price(self, symbol: str) -> Optional[Decimal]:
        """
        Get the latest mark price for a symbol.

        Returns:
            Price, or None if the symbol has no known price
        """
        pass


class StaticPriceFeed(PriceFeed):
    """In-memory price feed updated by whoever consumes market data."""

    def __init__(self, prices: Optional[Dict[str, Decimal]] = None):
        self._prices: Dict[str, Decimal] = {}
        for symbol, price in (prices or {}).items():
            self.set_price(symbol, price)

    def set_price(self, symbol: str, price: Decimal) -> None:
        price = Decimal(str(price))
        if price <= 0:
            raise ValueError(f"Mark price for {symbol} must be positive")
        self._prices[symbol.upper()] = price

    async def latest_mark_price(self, symbol: str) -> Optional[Decimal]:
        return self._prices.get(symbol.upper())
