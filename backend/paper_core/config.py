"""
Paper Trading Core - Configuration Settings
"""
from decimal import Decimal
from typing import Dict, List, Tuple
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )
    
    # =========================
    # Application Settings
    # =========================
    APP_NAME: str = "Paper Trading Core"
    APP_ENV: str = "development"
    DEBUG: bool = False
    
    # =========================
    # Database
    # =========================
    DATABASE_URL: str = "sqlite+aiosqlite:///./paper_core.db"
    DATABASE_ECHO: bool = False
    
    # =========================
    # Ledger
    # =========================
    INITIAL_BALANCE: Decimal = Decimal("10000")
    BASE_CURRENCY: str = "USDT"
    
    # =========================
    # Fees (percent values, 0.1 = 0.1%)
    # =========================
    ENABLE_FEES: bool = True
    DEFAULT_FEE_PERCENT: Decimal = Decimal("0.1")
    VENUE_FEE_PERCENT: Dict[str, Decimal] = {
        "binance": Decimal("0.09"),
        "kucoin": Decimal("0.1"),
    }
    VENUE_MIN_FEE_PERCENT: Dict[str, Decimal] = {
        "binance": Decimal("0.075"),
    }
    MAKER_FEE_DISCOUNT: Decimal = Decimal("0.8")
    # Volume tiers: (minimum notional, multiplier), highest threshold first
    FEE_TIERS: List[Tuple[Decimal, Decimal]] = [
        (Decimal("100000"), Decimal("0.8")),
        (Decimal("50000"), Decimal("0.9")),
    ]

    # =========================
    # Slippage (percent values)
    # =========================
    ENABLE_SLIPPAGE: bool = True
    BASE_SLIPPAGE_PERCENT: Decimal = Decimal("0.05")
    MAX_SLIPPAGE_PERCENT: Decimal = Decimal("2.0")
    VOLATILITY_MULTIPLIER: Decimal = Decimal("2.0")
    LIQUIDITY_IMPACT_THRESHOLD: Decimal = Decimal("10000")
    MARKET_ORDER_SLIPPAGE_MULTIPLIER: Decimal = Decimal("1.2")
    SLIPPAGE_RANDOM_MIN: Decimal = Decimal("0.7")
    SLIPPAGE_RANDOM_MAX: Decimal = Decimal("1.3")
    
    # =========================
    # Trading Policy
    # =========================
    ALLOW_SHORT_SELLING: bool = False
    
    # =========================
    # Logging
    # =========================
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""


# Create global settings instance
settings = Settings()
