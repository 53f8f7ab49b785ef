"""Data-access infrastructure: caching, database, error handling, retries and health monitoring."""

from .cache import QueryCache, CacheKeys, CacheEntry
from .database import Database
from .error_handling import (
    AppError,
    ErrorKind,
    ErrorHandler,
    classify_exception,
    log_error,
)
from .retry import RetryConfig, DEFAULT_RETRY_CONFIG, NO_RETRY, with_retry, is_retryable
from .health_monitor import HealthMonitor
from .query_executor import QueryExecutor

__all__ = [
    "QueryCache",
    "CacheKeys",
    "CacheEntry",
    "Database",
    "AppError",
    "ErrorKind",
    "ErrorHandler",
    "classify_exception",
    "log_error",
    "RetryConfig",
    "DEFAULT_RETRY_CONFIG",
    "NO_RETRY",
    "with_retry",
    "is_retryable",
    "HealthMonitor",
    "QueryExecutor",
]
