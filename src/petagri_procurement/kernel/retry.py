"""
Retry with exponential backoff for SQLite lock contention

Many client sessions write to the same database file. When SQLite reports
"database is locked" the write is retried; domain conflicts
(StreamVersionConflict) are never retried.
"""

import sqlite3
from collections.abc import Callable
from typing import TypeVar

from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from petagri_procurement.kernel.logging import get_logger
from petagri_procurement.kernel.metrics import sqlite_lock_retries_total

logger = get_logger(__name__)

T = TypeVar("T")


def is_lock_error(exc: BaseException) -> bool:
    """True for SQLite's transient 'database is locked' / 'busy' errors"""
    if not isinstance(exc, sqlite3.OperationalError):
        return False
    message = str(exc).lower()
    return "locked" in message or "busy" in message


def _log_retry(retry_state: RetryCallState) -> None:
    sqlite_lock_retries_total.inc()
    logger.warning(
        "SQLite lock detected, retrying",
        attempt=retry_state.attempt_number,
        exception=str(retry_state.outcome.exception()) if retry_state.outcome else None,
    )


def retry_on_sqlite_lock(
    max_attempts: int = 5,
    min_wait_ms: int = 50,
    max_wait_ms: int = 1000,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Retry decorator for SQLite lock contention

    Args:
        max_attempts: Attempts before the lock error is re-raised
        min_wait_ms: First backoff interval in milliseconds
        max_wait_ms: Backoff ceiling in milliseconds

    Example:
        @retry_on_sqlite_lock()
        def append(...):
            conn.execute("INSERT ...")
    """
    return retry(
        retry=retry_if_exception(is_lock_error),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(
            multiplier=min_wait_ms / 1000.0,
            min=min_wait_ms / 1000.0,
            max=max_wait_ms / 1000.0,
        ),
        before_sleep=_log_retry,
        reraise=True,
    )
