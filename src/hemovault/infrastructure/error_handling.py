"""Typed error taxonomy and classification for the data-access layer."""
import asyncio
from enum import Enum
from typing import Optional

from asyncpg import exceptions as pg_exceptions
from loguru import logger


class ErrorKind(Enum):
    """Closed set of failure categories."""
    CONNECTION = "connection"
    TIMEOUT = "timeout"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    AUTHENTICATION = "authentication"
    DATA_PROCESSING = "data_processing"
    SERVER = "server"


RETRYABLE_BY_DEFAULT = frozenset({ErrorKind.CONNECTION, ErrorKind.TIMEOUT})
NEVER_RETRYABLE = frozenset({
    ErrorKind.VALIDATION,
    ErrorKind.NOT_FOUND,
    ErrorKind.AUTHENTICATION,
})

_TIMEOUT_EXCEPTIONS = (
    asyncio.TimeoutError,
    TimeoutError,
    pg_exceptions.QueryCanceledError,
)

# local filesystem failures are OSErrors too, but never connection problems
_NON_NETWORK_OS_ERRORS = (
    FileNotFoundError,
    FileExistsError,
    PermissionError,
    IsADirectoryError,
    NotADirectoryError,
)

_CONNECTION_EXCEPTIONS = (
    pg_exceptions.PostgresConnectionError,
    pg_exceptions.CannotConnectNowError,
    pg_exceptions.TooManyConnectionsError,
    pg_exceptions.InterfaceError,
    ConnectionError,
    OSError,
)


class AppError(Exception):
    """Uniform application error carrying a kind and a retryability flag."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        detail: Optional[str] = None,
        retryable: Optional[bool] = None,
    ):
        """
        Initialize application error.

        Args:
            kind: Failure category
            message: Human-readable message
            detail: Optional diagnostic detail
            retryable: Override for the kind's default retryability.
                Ignored for kinds that are never retryable.
        """
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.detail = detail

        if kind in NEVER_RETRYABLE:
            self.retryable = False
        elif retryable is None:
            self.retryable = kind in RETRYABLE_BY_DEFAULT
        else:
            self.retryable = retryable

    def __repr__(self) -> str:
        return (
            f"AppError(kind={self.kind.name}, message={self.message!r}, "
            f"detail={self.detail!r}, retryable={self.retryable})"
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON responses."""
        return {
            'kind': self.kind.value,
            'message': self.message,
            'detail': self.detail,
            'retryable': self.retryable,
        }


def classify_exception(error: BaseException) -> Optional[AppError]:
    """
    Map an exception to a typed AppError by its type.

    Returns None for exceptions that are not a recognised timeout or
    connection failure; those are left to propagate unmodified.
    """
    if isinstance(error, AppError):
        return error

    # bad DSN or connect options
    if isinstance(error, pg_exceptions.ClientConfigurationError):
        return AppError(
            ErrorKind.CONNECTION,
            "Invalid database configuration",
            str(error) or type(error).__name__,
            retryable=False,
        )

    if isinstance(error, _TIMEOUT_EXCEPTIONS):
        return AppError(
            ErrorKind.TIMEOUT,
            "Database query timed out",
            str(error) or type(error).__name__,
        )

    if isinstance(error, _NON_NETWORK_OS_ERRORS):
        return None

    if isinstance(error, _CONNECTION_EXCEPTIONS):
        return AppError(
            ErrorKind.CONNECTION,
            "Database connection error",
            str(error) or type(error).__name__,
        )

    return None


def as_app_error(error: BaseException) -> AppError:
    """Return the AppError view of any exception (unknown ones become SERVER)."""
    classified = classify_exception(error)
    if classified is not None:
        return classified

    return AppError(
        ErrorKind.SERVER,
        str(error) or "An unexpected error occurred",
        type(error).__name__,
    )


def log_error(error: BaseException, context: str) -> AppError:
    """
    Log an error with a context label.

    Args:
        error: The failure to log
        context: Label of the operation that failed (e.g. "Database Query")

    Returns:
        The AppError view of the error; the original exception is untouched.
    """
    app_error = as_app_error(error)
    logger.bind(
        context=context,
        kind=app_error.kind.value,
        retryable=app_error.retryable,
    ).error(
        f"[{context}] {app_error.kind.name}: {app_error.message}"
        + (f" ({app_error.detail})" if app_error.detail else "")
    )
    return app_error


class ErrorHandler:
    """Per-kind error statistics for the running process."""

    def __init__(self):
        """Initialize error handler."""
        self.error_counts: dict[str, int] = {}
        self.last_error: Optional[AppError] = None

    def record_error(self, error: AppError):
        """Record an error occurrence."""
        key = error.kind.value
        self.error_counts[key] = self.error_counts.get(key, 0) + 1
        self.last_error = error

    def get_error_stats(self) -> dict:
        """Get error statistics."""
        return {
            'total_errors': sum(self.error_counts.values()),
            'error_kinds': self.error_counts.copy(),
            'last_error': self.last_error.to_dict() if self.last_error else None,
        }

    def reset(self):
        """Clear all recorded errors."""
        self.error_counts.clear()
        self.last_error = None
        logger.info("Error statistics reset")
