from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # Database Connection Pool Settings
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # App Settings
    APP_NAME: str = "Warehouse Fulfillment Backend"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "*",
    ]

    # Redis Cache Settings
    REDIS_URL: Optional[str] = None  # e.g., "redis://localhost:6379/0"
    CACHE_ENABLED: bool = True
    SERVICEABILITY_CACHE_TTL: int = 3600  # 1 hour for pincode -> zone lookups

    # Bid / Enquiry workflow
    BID_PAYMENT_WINDOW_MINUTES: int = 30  # Locked bid must be paid within this window
    DEFAULT_BID_VALIDITY_HOURS: int = 24
    ENQUIRY_VALIDITY_DAYS: int = 7

    # Background jobs
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_TIMEZONE: str = "Asia/Kolkata"
    LOCKED_BID_SWEEP_INTERVAL_MINUTES: int = 2
    BID_EXPIRY_SWEEP_INTERVAL_MINUTES: int = 5
    INVENTORY_MONITOR_INTERVAL_MINUTES: int = 60

    # Division replenishment
    LOW_STOCK_LEVEL: int = 2  # Division rows at or below this level get topped up
    DEFAULT_TRANSFER_QUANTITY: int = 10  # Used when a row has no minimum_threshold

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        return self.CORS_ORIGINS

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
