"""
HemoVault Status Server
HTTP endpoints exposing database health, cache and error statistics.
"""
import os
from datetime import datetime
from typing import Any, Dict, Optional

import psutil
from aiohttp import web
from loguru import logger

from .context import AppContext

NO_STORE = {"Cache-Control": "no-store, max-age=0"}


class StatusServer:
    """Serves health and diagnostics for the data-access layer."""

    def __init__(self, context: AppContext, host: str = "localhost", port: int = 8080):
        self.context = context
        self.host = host
        self.port = port
        self.start_time = datetime.now()
        self.process = psutil.Process(os.getpid())
        self.app = self.create_app()
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get('/health', self.health_check_handler)
        app.router.add_get('/db-status', self.db_status_handler)
        app.router.add_get('/metrics', self.metrics_handler)
        app.router.add_post('/cache/flush', self.cache_flush_handler)
        return app

    async def start(self):
        """Start the HTTP server."""
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        self.site = web.TCPSite(self.runner, self.host, self.port)
        await self.site.start()

        logger.info(f"Status server listening on http://{self.host}:{self.port}")

    async def cleanup(self):
        """Cleanup resources."""
        if self.site:
            await self.site.stop()
        if self.runner:
            await self.runner.cleanup()

    async def health_check_handler(self, request: web.Request) -> web.Response:
        """Simple health check endpoint (returns 200 if the database is reachable)."""
        monitor = self.context.health_monitor
        health = self.context.config.health
        status = monitor.get_status()

        # nothing refreshes the snapshot when background checks are off
        if not health.enabled and not status.checked_within(health.status_reuse_ms / 1000):
            status = await monitor.check_db_health()

        if status.is_connected:
            return web.Response(text="OK", status=200, headers=NO_STORE)
        return web.Response(text="UNAVAILABLE", status=503, headers=NO_STORE)

    async def db_status_handler(self, request: web.Request) -> web.Response:
        """Report database connectivity, reusing a recent health check."""
        monitor = self.context.health_monitor
        status = monitor.get_status()
        reuse_seconds = self.context.config.health.status_reuse_ms / 1000

        if status.checked_within(reuse_seconds):
            return web.json_response({
                'connected': status.is_connected,
                'error': status.error,
                'message': self._message(status.is_connected),
                'diagnostics': {
                    'response_time_ms': status.response_time_ms,
                    'last_checked': status.last_checked.isoformat(),
                },
            }, headers=NO_STORE)

        result = await self.context.database.test_connection()
        return web.json_response({
            'connected': result['connected'],
            'error': result.get('error'),
            'message': self._message(result['connected']),
            'diagnostics': result.get('diagnostics'),
        }, headers=NO_STORE)

    async def metrics_handler(self, request: web.Request) -> web.Response:
        """Return cache, error and process metrics as JSON."""
        return web.json_response(self.collect_metrics(), headers=NO_STORE)

    async def cache_flush_handler(self, request: web.Request) -> web.Response:
        """Administrative cache flush."""
        removed = self.context.cache.invalidate_all()
        return web.json_response({'flushed': removed})

    def collect_metrics(self) -> Dict[str, Any]:
        uptime = (datetime.now() - self.start_time).total_seconds()
        return {
            'uptime_seconds': round(uptime, 1),
            'memory_usage_mb': round(self.process.memory_info().rss / 1024 / 1024, 2),
            'database': self.context.health_monitor.get_status().to_dict(),
            'recoveries': self.context.health_monitor.recoveries,
            'cache': self.context.cache.get_stats(),
            'errors': self.context.error_handler.get_error_stats(),
        }

    @staticmethod
    def _message(connected: bool) -> str:
        return "Database is connected" if connected else "Database connection failed"
