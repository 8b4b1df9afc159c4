"""
Application Configuration

All settings loaded from environment variables.
"""

from functools import lru_cache
from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings from environment variables."""

    # Application
    app_name: str = "Confluence Signal Engine"
    app_version: str = "0.1.0"
    log_level: str = "INFO"

    # Cache
    cache_backend: str = "memory"  # Options: memory, redis
    redis_url: str = "redis://localhost:6379"
    signal_cache_ttl: int = 900  # 15 minutes
    cache_max_entries: int = 200

    # Analysis
    analysis_periods: int = 300
    min_candles: int = 50
    scan_concurrency: int = 5
    default_symbols: list[str] = ["BTCUSDT", "ETHUSDT", "SOLUSDT", "BNBUSDT", "XRPUSDT"]
    mock_data_seed: Optional[int] = 42

    # Signal Generation
    confluence_threshold: float = 60.0
    divergence_strength_threshold: float = 60.0
    signal_valid_minutes: int = 30
    default_account_balance: float = 10_000.0
    default_leverage: float = 10.0

    # Risk Limits (Defaults)
    default_max_risk_per_trade: float = 2.0
    default_max_leverage: float = 20.0
    default_min_risk_reward: float = 2.0
    default_max_consecutive_losses: int = 3
    default_emergency_stop_percent: float = 20.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
