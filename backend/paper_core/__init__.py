"""
Paper Trading Core

Simulated order execution against virtual balances: ledger, fee and
slippage models, position P&L and grid strategies. Never touches a
real exchange.
"""

__version__ = "1.0.0"
