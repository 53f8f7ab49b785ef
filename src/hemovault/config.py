"""Configuration management for HemoVault."""
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

DATABASE_URL_VARIABLES = (
    "DATABASE_URL",
    "POSTGRES_URL",
    "POSTGRES_PRISMA_URL",
    "POSTGRES_URL_NON_POOLING",
)


def get_database_url() -> Optional[str]:
    """Return the first database URL found in the environment."""
    for name in DATABASE_URL_VARIABLES:
        value = os.getenv(name)
        if value:
            return value
    return None


class DatabaseConfig(BaseModel):
    """Database connection configuration."""
    url: Optional[str] = Field(default_factory=get_database_url)
    connection_timeout_ms: int = Field(
        default_factory=lambda: int(os.getenv("DB_CONNECTION_TIMEOUT_MS", "10000"))
    )
    query_timeout_ms: int = Field(
        default_factory=lambda: int(os.getenv("DB_QUERY_TIMEOUT_MS", "30000"))
    )
    pool_size: int = Field(
        default_factory=lambda: int(os.getenv("DB_POOL_SIZE", "10"))
    )


class CacheConfig(BaseModel):
    """Query cache configuration."""
    ttl_ms: int = Field(
        default_factory=lambda: int(os.getenv("CACHE_TTL_MS", "60000"))
    )


class RetrySettings(BaseModel):
    """Default retry policy for database queries."""
    attempts: int = Field(
        default_factory=lambda: int(os.getenv("DB_RETRY_ATTEMPTS", "3"))
    )
    delay_ms: int = Field(
        default_factory=lambda: int(os.getenv("DB_RETRY_DELAY_MS", "500"))
    )
    backoff_multiplier: float = Field(
        default_factory=lambda: float(os.getenv("DB_RETRY_BACKOFF", "2.0"))
    )


class HealthConfig(BaseModel):
    """Health monitoring configuration."""
    enabled: bool = Field(
        default_factory=lambda: os.getenv("HEALTH_ENABLED", "true").lower() == "true"
    )
    interval_ms: int = Field(
        default_factory=lambda: int(os.getenv("HEALTH_CHECK_INTERVAL_MS", "300000"))
    )
    # a failed check younger than this short-circuits critical queries
    critical_window_ms: int = Field(
        default_factory=lambda: int(os.getenv("HEALTH_CRITICAL_WINDOW_MS", "60000"))
    )
    # /db-status reuses a check younger than this instead of probing again
    status_reuse_ms: int = Field(
        default_factory=lambda: int(os.getenv("HEALTH_STATUS_REUSE_MS", "30000"))
    )
    host: str = Field(default_factory=lambda: os.getenv("STATUS_HOST", "localhost"))
    port: int = Field(
        default_factory=lambda: int(os.getenv("STATUS_PORT", "8080"))
    )


class InventoryConfig(BaseModel):
    """Stock alert thresholds."""
    low_stock_threshold: int = Field(
        default_factory=lambda: int(os.getenv("LOW_STOCK_THRESHOLD", "5"))
    )
    surplus_threshold: int = Field(
        default_factory=lambda: int(os.getenv("SURPLUS_THRESHOLD", "10"))
    )


class Config(BaseModel):
    """Main application configuration."""
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    health: HealthConfig = Field(default_factory=HealthConfig)
    inventory: InventoryConfig = Field(default_factory=InventoryConfig)
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_dir: str = Field(default_factory=lambda: os.getenv("LOG_DIR", "logs"))


def load_config() -> Config:
    """Build a configuration from the current environment."""
    return Config()
