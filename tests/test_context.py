"""Tests for application wiring and the service command runner."""
import asyncio
from unittest.mock import AsyncMock

import pytest
from rich.console import Console

from hemovault.config import (
    CacheConfig,
    Config,
    DatabaseConfig,
    HealthConfig,
    RetrySettings,
)
from hemovault.context import AppContext
from hemovault.service import HemoVaultService, check_connection, run_command


@pytest.fixture
def config():
    return Config(
        database=DatabaseConfig(url=None),
        cache=CacheConfig(ttl_ms=1234),
        retry=RetrySettings(attempts=4, delay_ms=20, backoff_multiplier=3.0),
        health=HealthConfig(enabled=True, interval_ms=60_000, critical_window_ms=15_000, port=0),
    )


class TestAppContext:
    """Test context creation and lifecycle."""

    def test_wiring(self, config):
        """Test every collaborator shares one cache and database."""
        context = AppContext.create(config)

        assert context.cache.default_ttl_ms == 1234
        assert context.executor.cache is context.cache
        assert context.health_monitor.cache is context.cache
        assert context.repository.cache is context.cache
        assert context.executor.database is context.database
        assert context.executor.health_monitor is context.health_monitor
        assert context.executor.error_handler is context.error_handler
        assert context.executor.critical_window_seconds == 15
        assert context.health_monitor.interval_seconds == 60

    def test_retry_policy_from_config(self, config):
        retry = AppContext.create(config).executor.retry_config

        assert retry.max_attempts == 4
        assert retry.base_delay_ms == 20
        assert retry.backoff_multiplier == 3.0

    def test_contexts_are_independent(self, config):
        first = AppContext.create(config)
        second = AppContext.create(config)

        first.cache.set("redblood:1", [])

        assert "redblood:1" not in second.cache

    @pytest.mark.asyncio
    async def test_start_and_close(self, config):
        """Test health checks run until the context is closed."""
        context = AppContext.create(config)

        context.start()
        assert context.health_monitor.monitoring_task is not None
        await asyncio.sleep(0)

        await context.close()
        assert context.health_monitor.monitoring_task is None
        assert context.health_monitor.get_status().error == "Database URL not found"

    @pytest.mark.asyncio
    async def test_disabled_health_checks(self, config):
        config.health.enabled = False
        context = AppContext.create(config)

        context.start()

        assert context.health_monitor.monitoring_task is None


class TestService:
    """Test the service runner and commands."""

    @pytest.mark.asyncio
    async def test_service_shutdown(self, config):
        """Test the service stops cleanly when shutdown is requested."""
        service = HemoVaultService(config)

        task = asyncio.create_task(service.run())
        await asyncio.sleep(0.05)
        service.request_shutdown()
        await asyncio.wait_for(task, timeout=5)

        assert service.context.health_monitor.monitoring_task is None

    @pytest.mark.asyncio
    async def test_check_connection_without_url(self, config):
        console = Console(record=True)
        context = AppContext.create(config)

        assert await check_connection(context, console) is False
        assert "Database connection string is missing" in console.export_text()

    @pytest.mark.asyncio
    async def test_check_connection_success(self, config):
        console = Console(record=True, width=120)
        context = AppContext.create(config)
        context.database.test_connection = AsyncMock(return_value={
            'connected': True,
            'diagnostics': {
                'response_time_ms': 4,
                'database_url': "postgresql://u:****@db/blood",
                'server_version': "16.2",
            },
        })

        assert await check_connection(context, console) is True
        assert "16.2" in console.export_text()

    @pytest.mark.asyncio
    async def test_unknown_command(self):
        console = Console(record=True)

        assert await run_command("transfuse", [], console) == 2
        assert "Invalid command" in console.export_text()

    @pytest.mark.asyncio
    async def test_typed_error_reported(self, monkeypatch):
        """Test typed errors are printed and mapped to exit code 1."""
        for name in ("DATABASE_URL", "POSTGRES_URL", "POSTGRES_PRISMA_URL",
                     "POSTGRES_URL_NON_POOLING"):
            monkeypatch.delenv(name, raising=False)
        console = Console(record=True)

        assert await run_command("inventory", ["1"], console) == 1
        assert "CONNECTION: Database client not initialized" in console.export_text()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
