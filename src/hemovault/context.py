"""Application context owning the process-wide data-access objects."""
from dataclasses import dataclass
from typing import Optional

from loguru import logger

from .config import Config, load_config
from .infrastructure.cache import QueryCache
from .infrastructure.database import Database
from .infrastructure.error_handling import ErrorHandler
from .infrastructure.health_monitor import HealthMonitor
from .infrastructure.query_executor import QueryExecutor
from .infrastructure.retry import RetryConfig
from .inventory.repository import InventoryRepository


@dataclass
class AppContext:
    """Everything a collaborator needs, built once at process start."""
    config: Config
    cache: QueryCache
    database: Database
    error_handler: ErrorHandler
    health_monitor: HealthMonitor
    executor: QueryExecutor
    repository: InventoryRepository

    @classmethod
    def create(cls, config: Optional[Config] = None) -> "AppContext":
        """Wire up the cache, database, monitor, executor and repository."""
        config = config or load_config()

        cache = QueryCache(default_ttl_ms=config.cache.ttl_ms)
        database = Database(config.database)
        error_handler = ErrorHandler()
        health_monitor = HealthMonitor(
            database,
            cache,
            interval_seconds=config.health.interval_ms / 1000,
        )
        executor = QueryExecutor(
            database,
            cache,
            health_monitor,
            retry_config=RetryConfig(
                max_attempts=config.retry.attempts,
                base_delay_ms=config.retry.delay_ms,
                backoff_multiplier=config.retry.backoff_multiplier,
            ),
            critical_window_seconds=config.health.critical_window_ms / 1000,
            error_handler=error_handler,
        )
        repository = InventoryRepository(
            executor,
            cache,
            low_stock_threshold=config.inventory.low_stock_threshold,
            surplus_threshold=config.inventory.surplus_threshold,
        )

        return cls(
            config=config,
            cache=cache,
            database=database,
            error_handler=error_handler,
            health_monitor=health_monitor,
            executor=executor,
            repository=repository,
        )

    def start(self):
        """Start background health checks (requires a running event loop)."""
        if not self.config.health.enabled:
            logger.warning("Database health checks are disabled")
            return

        if not self.database.is_configured:
            logger.error("No database URL found in environment variables")

        self.health_monitor.start_health_checks()

    async def close(self):
        """Stop health checks and close the database pool."""
        await self.health_monitor.close()
        await self.database.close()
