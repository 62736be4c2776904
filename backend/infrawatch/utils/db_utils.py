"""Database utility functions."""
import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import OperationalError, InterfaceError

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Substrings of driver errors worth another attempt
TRANSIENT_ERRORS = (
    "database is locked",
    "connection refused",
    "connection reset",
    "connection closed",
    "server closed",
    "timeout",
    "too many clients",
)


def is_transient_error(exc: Exception) -> bool:
    """Return True if a driver error looks like lock contention or a dropped connection."""
    error_str = str(exc).lower()
    return any(msg in error_str for msg in TRANSIENT_ERRORS)


async def retry_on_lock(
    coro_func: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 0.1,
) -> T:
    """Retry a database operation on transient errors with exponential backoff.

    Concurrent sync tasks commit through separate connections, so SQLite
    may report a locked database and PostgreSQL may drop connections under
    load. Anything else is re-raised immediately.

    Args:
        coro_func: Zero-argument callable returning an awaitable (e.g. ``session.commit``)
        max_retries: Maximum number of attempts
        base_delay: Base delay in seconds (doubles with each retry)
    """
    for attempt in range(max_retries):
        try:
            return await coro_func()
        except (OperationalError, InterfaceError) as e:
            if not is_transient_error(e) or attempt == max_retries - 1:
                raise
            delay = base_delay * (2 ** attempt)
            logger.warning(f"Database transient error, retrying in {delay}s (attempt {attempt + 1}/{max_retries})")
            await asyncio.sleep(delay)
    raise RuntimeError("retry_on_lock called with max_retries < 1")
