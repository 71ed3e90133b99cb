"""
MarketLens — Configuration Management

Pydantic Settings: loads from .env, validates all configuration at startup.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Analytics configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Cache ──
    cache_backend: str = "memory"  # 'memory' or 'redis'
    redis_url: str = "redis://localhost:6379/0"
    regression_cache_ttl: int = 300  # seconds

    # ── Regression channel ──
    regression_candle_size: str = "1d"
    regression_limit: int = 200
    projection_days: int = 365
    price_floor: float = 0.01  # floor applied before ln()

    # ── Key levels (dark pool prints) ──
    key_level_threshold: int = 5
    cluster_radius: float = 0.5  # price units

    # ── Flow alerts ──
    expiration_days_ahead: int = 30
    iv_spike_threshold: float = 0.05  # +5% relative IV change
    iv_spike_high_count: int = 10


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance — created once, reused everywhere."""
    return Settings()
