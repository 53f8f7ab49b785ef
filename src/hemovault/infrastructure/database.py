"""Database access for HemoVault, backed by an asyncpg pool."""
import asyncio
import re
import time
from typing import Any, Dict, List, Optional

import asyncpg
from asyncpg import exceptions as pg_exceptions
from loguru import logger

from ..config import DatabaseConfig
from .error_handling import AppError, ErrorKind, classify_exception

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS hospital (
        hospital_id SERIAL PRIMARY KEY,
        hospital_name TEXT NOT NULL,
        hospital_contact_phone TEXT DEFAULT '',
        hospital_contact_mail TEXT DEFAULT ''
    )
    """,
    # hospital logins; read only by the external auth layer, never by this service
    """
    CREATE TABLE IF NOT EXISTS admin (
        admin_id SERIAL PRIMARY KEY,
        hospital_id INTEGER NOT NULL REFERENCES hospital(hospital_id),
        admin_username TEXT NOT NULL UNIQUE,
        admin_password TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS redblood_inventory (
        bag_id SERIAL PRIMARY KEY,
        donor_name TEXT NOT NULL,
        amount INTEGER NOT NULL CHECK (amount > 0),
        hospital_id INTEGER NOT NULL REFERENCES hospital(hospital_id),
        expiration_date DATE NOT NULL,
        blood_type TEXT NOT NULL,
        rh TEXT NOT NULL,
        active BOOLEAN NOT NULL DEFAULT TRUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS plasma_inventory (
        bag_id SERIAL PRIMARY KEY,
        donor_name TEXT NOT NULL,
        amount INTEGER NOT NULL CHECK (amount > 0),
        hospital_id INTEGER NOT NULL REFERENCES hospital(hospital_id),
        expiration_date DATE NOT NULL,
        blood_type TEXT NOT NULL,
        active BOOLEAN NOT NULL DEFAULT TRUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS platelets_inventory (
        bag_id SERIAL PRIMARY KEY,
        donor_name TEXT NOT NULL,
        amount INTEGER NOT NULL CHECK (amount > 0),
        hospital_id INTEGER NOT NULL REFERENCES hospital(hospital_id),
        expiration_date DATE NOT NULL,
        blood_type TEXT NOT NULL,
        rh TEXT NOT NULL,
        active BOOLEAN NOT NULL DEFAULT TRUE
    )
    """,
)


def mask_database_url(url: str) -> str:
    """Hide the password part of a connection string."""
    return re.sub(r":[^:@/]*@", ":****@", url)


class Database:
    """Handles all database round trips for the inventory."""

    def __init__(self, config: DatabaseConfig):
        """Initialise database handle; the pool is created on first use."""
        self.config = config
        self.pool: Optional[asyncpg.Pool] = None
        self.connection_error_message = ""
        self._pool_lock = asyncio.Lock()

    @property
    def is_configured(self) -> bool:
        """Whether a connection string is available."""
        return bool(self.config.url)

    @property
    def connection_timeout(self) -> float:
        return self.config.connection_timeout_ms / 1000

    @property
    def query_timeout(self) -> float:
        return self.config.query_timeout_ms / 1000

    async def _get_pool(self) -> asyncpg.Pool:
        """Create the connection pool if needed."""
        if self.pool is not None:
            return self.pool

        if not self.is_configured:
            raise AppError(
                ErrorKind.CONNECTION,
                "Database URL not found",
                "Check the DATABASE_URL environment variable",
            )

        async with self._pool_lock:
            if self.pool is None:
                logger.info(f"Creating database pool with size {self.config.pool_size}")
                try:
                    self.pool = await asyncio.wait_for(
                        asyncpg.create_pool(
                            self.config.url,
                            min_size=1,
                            max_size=self.config.pool_size,
                            timeout=self.connection_timeout,
                            command_timeout=self.query_timeout,
                        ),
                        timeout=self.connection_timeout,
                    )
                except Exception as e:
                    raise self._translate(e) from e
                logger.info("Database pool created")

        return self.pool

    def _translate(self, error: Exception) -> Exception:
        """Turn a driver failure into a typed error where one applies."""
        if isinstance(error, pg_exceptions.IntegrityConstraintViolationError):
            return AppError(
                ErrorKind.VALIDATION,
                "Database constraint violated",
                str(error),
            )

        classified = classify_exception(error)
        if classified is None:
            return error

        if classified.kind is ErrorKind.CONNECTION:
            self.connection_error_message = classified.detail or classified.message
        return classified

    async def _run(self, method: str, query: str, *args) -> Any:
        pool = await self._get_pool()
        try:
            return await asyncio.wait_for(
                getattr(pool, method)(query, *args),
                timeout=self.query_timeout,
            )
        except AppError:
            raise
        except Exception as e:
            translated = self._translate(e)
            if translated is e:
                raise
            raise translated from e

    async def fetch(self, query: str, *args) -> List[asyncpg.Record]:
        """Fetch multiple rows."""
        return await self._run("fetch", query, *args)

    async def fetchrow(self, query: str, *args) -> Optional[asyncpg.Record]:
        """Fetch a single row."""
        return await self._run("fetchrow", query, *args)

    async def fetchval(self, query: str, *args) -> Any:
        """Fetch a single value."""
        return await self._run("fetchval", query, *args)

    async def execute(self, query: str, *args) -> str:
        """Execute a query without returning results."""
        return await self._run("execute", query, *args)

    async def ping(self) -> bool:
        """Minimal round trip."""
        return await self.fetchval("SELECT 1") == 1

    async def create_schema(self):
        """Create database tables if they don't exist."""
        for statement in SCHEMA:
            await self.execute(statement)
        logger.info("Database schema initialized")

    async def test_connection(self) -> Dict[str, Any]:
        """
        Test the database connection with diagnostics.

        Returns:
            `connected`, and either `error` or `diagnostics` with the
            response time, masked URL and server version.
        """
        if not self.is_configured:
            self.connection_error_message = "Database connection string is missing"
            logger.error(self.connection_error_message)
            return {'connected': False, 'error': self.connection_error_message}

        start = time.perf_counter()
        try:
            row = await asyncio.wait_for(
                self.fetchrow(
                    "SELECT 1 AS connection_test, current_setting('server_version') AS version"
                ),
                timeout=self.connection_timeout,
            )
        except Exception as e:
            message = f"Error connecting to database: {e}"
            logger.error(f"Database connection test failed: {message}")
            self.connection_error_message = message
            return {'connected': False, 'error': message}

        response_time_ms = round((time.perf_counter() - start) * 1000)
        self.connection_error_message = ""

        return {
            'connected': True,
            'diagnostics': {
                'response_time_ms': response_time_ms,
                'database_url': mask_database_url(self.config.url),
                'server_version': (row['version'] if row else None) or "Unknown",
            },
        }

    async def close(self):
        """Close the connection pool."""
        if self.pool is not None:
            await self.pool.close()
            self.pool = None
            logger.info("Database connection closed")
