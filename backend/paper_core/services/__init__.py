"""
Paper Trading Core - Services Package

The service facade lives in ``paper_core.services.paper_trading``.
"""
from paper_core.services.price_feed import PriceFeed, StaticPriceFeed

__all__ = [
    "PriceFeed",
    "StaticPriceFeed",
]
