"""Query execution façade combining cache, health gate and retry."""
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .cache import QueryCache
from .database import Database
from .error_handling import AppError, ErrorHandler, ErrorKind, classify_exception, log_error
from .health_monitor import HealthMonitor
from .retry import DEFAULT_RETRY_CONFIG, RetryConfig, with_retry

T = TypeVar("T")

QueryOperation = Callable[[Database], Awaitable[T]]

DEFAULT_CRITICAL_WINDOW_SECONDS = 60

_MISSING = object()


class QueryExecutor:
    """Single entry point for database reads and writes."""

    def __init__(
        self,
        database: Database,
        cache: QueryCache,
        health_monitor: HealthMonitor,
        retry_config: RetryConfig = DEFAULT_RETRY_CONFIG,
        critical_window_seconds: float = DEFAULT_CRITICAL_WINDOW_SECONDS,
        error_handler: Optional[ErrorHandler] = None,
    ):
        self.database = database
        self.cache = cache
        self.health_monitor = health_monitor
        self.retry_config = retry_config
        self.critical_window_seconds = critical_window_seconds
        self.error_handler = error_handler

    async def execute_query(
        self,
        operation: QueryOperation,
        *,
        cache_key: Optional[str] = None,
        cache_ttl_ms: Optional[int] = None,
        retry_config: Optional[RetryConfig] = None,
        critical: bool = False,
    ) -> Any:
        """
        Run a query operation with caching, health gating and retries.

        Args:
            operation: Coroutine function receiving the Database handle
            cache_key: Serve from / store into the cache under this key
            cache_ttl_ms: TTL for the stored result (cache default if None)
            retry_config: Overrides the executor's retry policy
            critical: Fail fast when a recent health check found the
                database down

        Returns:
            The operation's result (possibly from the cache)

        Raises:
            AppError: classified connection/timeout failures, or whatever
                the operation raised, unchanged
        """
        if cache_key is not None:
            cached = self.cache.get(cache_key, _MISSING)
            if cached is not _MISSING:
                return cached

        try:
            self._check_available(critical)

            async def database_query():
                return await self._invoke(operation)

            result = await with_retry(database_query, retry_config or self.retry_config)

            if cache_key is not None and result is not None:
                self.cache.set(cache_key, result, cache_ttl_ms)

            return result

        except Exception as e:
            app_error = log_error(e, "Database Query")
            if self.error_handler is not None:
                self.error_handler.record_error(app_error)
            raise

    def _check_available(self, critical: bool):
        if not self.database.is_configured:
            raise AppError(
                ErrorKind.CONNECTION,
                "Database client not initialized",
                "Database URL environment variable may be missing or invalid",
            )

        if critical:
            health = self.health_monitor.get_status()
            if not health.is_connected and health.checked_within(self.critical_window_seconds):
                raise AppError(
                    ErrorKind.CONNECTION,
                    "Database is currently unavailable",
                    health.error or "Recent health check failed",
                )

    async def _invoke(self, operation: QueryOperation) -> Any:
        try:
            return await operation(self.database)
        except AppError:
            raise
        except Exception as e:
            classified = classify_exception(e)
            if classified is None:
                raise
            raise classified from e
