"""
Record store connection factory utilities for Expiry Refill.

Provides the DSN and the async PostgreSQL connection pool used by the record
store adapter. Pool startup includes retry logic for transient connection
failures using tenacity; once the pool is open, individual queries are never
retried here (redelivery is the runner's concern).
"""

from __future__ import annotations

from typing import Optional

import psycopg
from psycopg_pool import AsyncConnectionPool, PoolTimeout
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from expiry_refill.config import Settings, get_settings
from expiry_refill.utils.logging import get_logger

log = get_logger(__name__)


def build_dsn(settings: Optional[Settings] = None) -> str:
    """Compose a DSN string from settings."""
    settings = settings or get_settings()
    return (
        f"postgresql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


def create_async_pool(
    dsn: Optional[str] = None,
    min_size: Optional[int] = None,
    max_size: Optional[int] = None,
    statement_timeout_ms: Optional[int] = None,
) -> AsyncConnectionPool:
    """
    Build an unopened asynchronous connection pool.

    Parameters
    ----------
    dsn : str, optional
        Connection string. Defaults to one composed from settings.
    min_size : int, optional
        Minimum number of idle connections to keep.
    max_size : int, optional
        Maximum total connections in the pool.
    statement_timeout_ms : int, optional
        Server-side statement timeout applied to every pooled connection.
        ``0`` disables it.

    Returns
    -------
    AsyncConnectionPool
        A pool that must be opened (see `open_pool`) before use.
    """
    settings = get_settings()
    timeout_ms = (
        settings.db_statement_timeout_ms if statement_timeout_ms is None else statement_timeout_ms
    )
    kwargs = {"options": f"-c statement_timeout={timeout_ms}"} if timeout_ms > 0 else {}
    return AsyncConnectionPool(
        conninfo=dsn or build_dsn(settings),
        kwargs=kwargs,
        min_size=min_size or settings.db_pool_min_size,
        max_size=max_size or settings.db_pool_max_size,
        open=False,
    )


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((psycopg.OperationalError, PoolTimeout)),
    reraise=True,
)
async def open_pool(
    dsn: Optional[str] = None,
    min_size: Optional[int] = None,
    max_size: Optional[int] = None,
    statement_timeout_ms: Optional[int] = None,
    wait_timeout: float = 10.0,
) -> AsyncConnectionPool:
    """
    Create and open an async pool with automatic retry.

    Retries up to 3 times with exponential backoff. Each attempt builds a fresh
    pool because a pool that failed to fill is closed and cannot be reopened.

    Returns
    -------
    AsyncConnectionPool
        An open pool holding at least `min_size` connections.

    Raises
    ------
    PoolTimeout
        If the pool could not be filled after all retry attempts.
    """
    pool = create_async_pool(
        dsn=dsn,
        min_size=min_size,
        max_size=max_size,
        statement_timeout_ms=statement_timeout_ms,
    )
    await pool.open(wait=True, timeout=wait_timeout)
    log.debug("Record store pool opened", extra={"min_size": pool.min_size, "max_size": pool.max_size})
    return pool


__all__ = ["build_dsn", "create_async_pool", "open_pool"]
