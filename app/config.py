from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional
from decimal import Decimal
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
    APP_NAME: str = "LPG Distribution Backend"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False  # Single-line JSON records instead of plain text

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Order rules
    MINIMUM_ORDER_AMOUNT: Decimal = Decimal("100")  # Orders below this total are rejected
    PRICE_TOLERANCE: Decimal = Decimal("0.01")  # Allowed drift between client and current price
    ORDER_STOCK_WARNING_RATIO: Decimal = Decimal("0.8")  # Warn when a line takes >80% of available stock
    DEFAULT_TAX_PERCENT: Decimal = Decimal("0")

    # Transfer rules
    TRANSFER_MAX_ITEMS_WARNING: int = 100
    TRANSFER_MAX_WEIGHT_KG_WARNING: Decimal = Decimal("5000")
    TRANSFER_LARGE_QUANTITY: int = 1000
    TRANSFER_CONFLICT_ITEM_LIMIT: int = 50

    # Idempotency
    IDEMPOTENCY_TTL_HOURS: int = 24
    IDEMPOTENCY_OPERATION_ORDER_CREATE: str = "order_create"

    # Admin UI origin, appended to CORS_ORIGINS
    FRONTEND_URL: Optional[str] = None

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
        origins = list(self.CORS_ORIGINS)
        if self.FRONTEND_URL and self.FRONTEND_URL not in origins:
            origins.append(self.FRONTEND_URL)
        return origins

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
