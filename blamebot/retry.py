"""Retry wrapper for store operations.

Every read or write issued against the store goes through :func:`with_retry`.
Each attempt is raced against a timeout; connection-level failures (refused,
timed out, reset) are retried with a linear backoff of ``base_delay * attempt``
and anything else is re-raised on the spot. Once the retry budget is spent the
caller receives a :class:`DataAccessError` carrying a stable, user-presentable
message instead of the low-level error.

Wrapped operations may run more than once, so they must be safe to repeat.
"""
from __future__ import annotations

import asyncio
import logging
import sqlite3
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 1.0
DEFAULT_QUERY_TIMEOUT = 30.0


class FailureCategory(str, Enum):
    CONNECTION_REFUSED = "connection_refused"
    CONNECTION_TIMEOUT = "connection_timeout"
    CONNECTION_RESET = "connection_reset"
    OTHER = "other"


_CATEGORY_MESSAGES = {
    FailureCategory.CONNECTION_REFUSED: "Database connection refused. Please try again later.",
    FailureCategory.CONNECTION_TIMEOUT: "Database operation timed out. Please try again later.",
    FailureCategory.CONNECTION_RESET: "Database connection was closed. Please try again later.",
    FailureCategory.OTHER: "A database error occurred. Please try again later.",
}

# sqlite3 reports transient conditions as OperationalError; map them onto the
# connection-level categories by message.
_SQLITE_TRANSIENT_MARKERS = (
    ("database is locked", FailureCategory.CONNECTION_TIMEOUT),
    ("database table is locked", FailureCategory.CONNECTION_TIMEOUT),
    ("database is busy", FailureCategory.CONNECTION_TIMEOUT),
    ("unable to open database file", FailureCategory.CONNECTION_REFUSED),
)


class DataAccessError(RuntimeError):
    """Raised once a store operation has exhausted its retries."""

    def __init__(
        self,
        category: FailureCategory,
        operation_name: str,
        attempts: int,
    ) -> None:
        super().__init__(database_error_message(category))
        self.category = category
        self.operation_name = operation_name
        self.attempts = attempts

    @property
    def user_message(self) -> str:
        return database_error_message(self.category)


# Failures a view surfaces as the generic "try again later" message.
DATA_ACCESS_ERRORS = (DataAccessError, sqlite3.Error)


def classify_failure(error: BaseException) -> FailureCategory:
    """Map an exception onto a failure category."""

    if isinstance(error, ConnectionRefusedError):
        return FailureCategory.CONNECTION_REFUSED
    if isinstance(error, (ConnectionResetError, ConnectionAbortedError, BrokenPipeError)):
        return FailureCategory.CONNECTION_RESET
    if isinstance(error, (TimeoutError, asyncio.TimeoutError)):
        return FailureCategory.CONNECTION_TIMEOUT
    if isinstance(error, sqlite3.OperationalError):
        message = str(error).lower()
        for marker, category in _SQLITE_TRANSIENT_MARKERS:
            if marker in message:
                return category
    return FailureCategory.OTHER


def is_retryable_error(error: BaseException) -> bool:
    return classify_failure(error) is not FailureCategory.OTHER


def database_error_message(category: FailureCategory) -> str:
    return _CATEGORY_MESSAGES.get(category, _CATEGORY_MESSAGES[FailureCategory.OTHER])


def describe_data_error(error: BaseException) -> str:
    """User-facing message for any member of DATA_ACCESS_ERRORS."""

    if isinstance(error, DataAccessError):
        return error.user_message
    return database_error_message(FailureCategory.OTHER)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    operation_name: str = "database operation",
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_RETRY_DELAY,
    timeout: Optional[float] = DEFAULT_QUERY_TIMEOUT,
) -> T:
    """Run ``operation`` with a per-attempt timeout and bounded retries."""

    attempts = max(1, max_retries)
    last_error: Optional[BaseException] = None
    for attempt in range(1, attempts + 1):
        try:
            return await asyncio.wait_for(operation(), timeout)
        except Exception as exc:
            last_error = exc
            if not is_retryable_error(exc):
                logger.error("Non-retryable error in %s: %r", operation_name, exc)
                raise
            logger.warning(
                "%s failed (attempt %d/%d): %r", operation_name, attempt, attempts, exc
            )
            if attempt == attempts:
                break
            # Linear backoff: base_delay, 2 * base_delay, ...
            await asyncio.sleep(base_delay * attempt)

    assert last_error is not None
    logger.error(
        "%s failed after %d attempts: %r", operation_name, attempts, last_error
    )
    raise DataAccessError(
        classify_failure(last_error), operation_name, attempts
    ) from last_error


__all__ = [
    "DATA_ACCESS_ERRORS",
    "DataAccessError",
    "FailureCategory",
    "classify_failure",
    "database_error_message",
    "describe_data_error",
    "is_retryable_error",
    "with_retry",
]
