"""
HemoVault Health Monitor
Periodically probes the database and flushes the query cache on recovery.
"""
import asyncio
import time
from datetime import datetime
from typing import Callable, Optional

from loguru import logger

from ..models import HealthStatus
from .cache import QueryCache
from .database import Database
from .error_handling import AppError, ErrorKind, log_error

DEFAULT_INTERVAL_SECONDS = 300


class HealthMonitor:
    """Tracks database connectivity and drives cache invalidation on recovery."""

    def __init__(
        self,
        database: Database,
        cache: QueryCache,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        timeout_seconds: Optional[float] = None,
    ):
        self.database = database
        self.cache = cache
        self.interval_seconds = interval_seconds
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else database.connection_timeout
        )
        self.monitoring_task: Optional[asyncio.Task] = None
        self.recoveries = 0
        self._status = HealthStatus.initial()

    def get_status(self) -> HealthStatus:
        """Last health snapshot (non-blocking)."""
        return self._status

    async def check_db_health(self) -> HealthStatus:
        """
        Probe the database and record a new snapshot.

        Never raises; failures are recorded in the snapshot. A transition
        from disconnected to connected flushes the query cache.
        """
        try:
            if not self.database.is_configured:
                raise AppError(
                    ErrorKind.CONNECTION,
                    "Database URL not found",
                    "Check environment variables",
                )

            start = time.perf_counter()
            try:
                await asyncio.wait_for(self.database.ping(), timeout=self.timeout_seconds)
            except asyncio.TimeoutError as e:
                raise AppError(
                    ErrorKind.TIMEOUT,
                    "Database health check timed out",
                    f"No response within {self.timeout_seconds:.1f}s",
                ) from e

            status = HealthStatus(
                is_connected=True,
                last_checked=datetime.now(),
                response_time_ms=round((time.perf_counter() - start) * 1000, 2),
                error=None,
            )

        except Exception as e:
            app_error = log_error(e, "Database Health Check")
            status = HealthStatus(
                is_connected=False,
                last_checked=datetime.now(),
                response_time_ms=None,
                error=app_error.message,
            )

        # no await between reading and replacing the snapshot
        previous = self._status
        self._status = status
        self._on_transition(previous, status)
        return status

    def _on_transition(self, previous: HealthStatus, current: HealthStatus):
        if current.is_connected and not previous.is_connected:
            self.recoveries += 1
            logger.info("Database connection restored, invalidating cache")
            self.cache.invalidate_all()
        elif previous.is_connected and not current.is_connected:
            logger.warning(f"Database connection lost: {current.error}")

    def start_health_checks(
        self, interval_seconds: Optional[float] = None
    ) -> Callable[[], None]:
        """
        Start periodic health checks on the running event loop.

        Args:
            interval_seconds: Seconds between probes (defaults to the
                monitor's configured interval)

        Returns:
            A function that stops the checks
        """
        if interval_seconds is not None:
            self.interval_seconds = interval_seconds

        if self.monitoring_task is None or self.monitoring_task.done():
            self.monitoring_task = asyncio.create_task(self._monitor_loop())
            logger.info(f"Database health checks every {self.interval_seconds}s")

        return self.stop_health_checks

    def stop_health_checks(self):
        """Cancel the periodic checks."""
        if self.monitoring_task and not self.monitoring_task.done():
            self.monitoring_task.cancel()
            logger.info("Database health checks stopped")

    async def close(self):
        """Cancel the periodic checks and wait for the task to finish."""
        task = self.monitoring_task
        self.stop_health_checks()
        if task:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.monitoring_task = None

    async def _monitor_loop(self):
        """Probe immediately, then every interval."""
        while True:
            try:
                await self.check_db_health()
            except Exception as e:
                logger.error(f"Error in health monitoring loop: {e}")
            await asyncio.sleep(self.interval_seconds)
