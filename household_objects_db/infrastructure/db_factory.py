"""
Database connection factory utilities for the household objects database layer.

Provides centralized management of sync and async PostgreSQL connection pools
with proper lifecycle management. The query builder and the task claim
coordinator never reach for these globals themselves: they receive a pool at
construction, and PoolManager is only the convenience the CLI and scripts use
to build one from settings.

Includes retry logic for transient connection failures using tenacity.
"""

from __future__ import annotations

import atexit
import threading
from typing import List, Optional

import psycopg
from psycopg import Connection, sql
from psycopg_pool import AsyncConnectionPool, ConnectionPool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from household_objects_db.config import Settings, get_settings
from household_objects_db.utils.logging import get_logger

log = get_logger(__name__)


def build_dsn(settings: Optional[Settings] = None) -> str:
    """Compose a DSN string from settings."""
    return (settings or get_settings()).dsn


def timeout_statements(
    statement_timeout_ms: int, lock_timeout_ms: Optional[int] = None
) -> List[sql.Composed]:
    """
    SET LOCAL statements bounding the current transaction.

    Values are transaction-scoped, so they vanish on commit/rollback and never
    leak to the next user of a pooled connection. A value <= 0 disables the
    corresponding timeout.
    """
    statements = [
        sql.SQL("SET LOCAL statement_timeout = {}").format(
            sql.Literal(max(statement_timeout_ms, 0))
        )
    ]
    if lock_timeout_ms is not None:
        statements.append(
            sql.SQL("SET LOCAL lock_timeout = {}").format(sql.Literal(max(lock_timeout_ms, 0)))
        )
    return statements


def apply_statement_timeout(
    cur: psycopg.Cursor, statement_timeout_ms: int, lock_timeout_ms: Optional[int] = None
) -> None:
    """Execute `timeout_statements` on a cursor inside an open transaction."""
    for statement in timeout_statements(statement_timeout_ms, lock_timeout_ms):
        cur.execute(statement)


class PoolManager:
    """
    Thread-safe singleton for managing database connection pools.

    Handles lifecycle management with automatic cleanup via atexit hook.
    """

    _instance: Optional["PoolManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "PoolManager":
        """Create or return the singleton instance."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._sync_pool = None
                cls._instance._async_pool = None
                # Register cleanup on exit
                atexit.register(cls._instance.close_all)
            return cls._instance

    def get_sync_pool(
        self, min_size: Optional[int] = None, max_size: Optional[int] = None
    ) -> ConnectionPool:
        """
        Get or create the synchronous connection pool.

        Parameters
        ----------
        min_size : int, optional
            Minimum number of idle connections to keep (default from settings).
        max_size : int, optional
            Maximum total connections in the pool (default from settings).

        Returns
        -------
        ConnectionPool
            The managed sync pool instance.
        """
        with self._lock:
            if self._sync_pool is None:
                settings = get_settings()
                self._sync_pool = ConnectionPool(
                    conninfo=build_dsn(settings),
                    min_size=settings.pool_min_size if min_size is None else min_size,
                    max_size=settings.pool_max_size if max_size is None else max_size,
                    timeout=settings.pool_timeout_seconds,
                    open=True,
                )
                log.debug(
                    "Opened sync pool",
                    extra={"host": settings.db_host, "db": settings.db_name},
                )
            return self._sync_pool

    def get_async_pool(
        self, min_size: Optional[int] = None, max_size: Optional[int] = None
    ) -> AsyncConnectionPool:
        """
        Get or create the asynchronous connection pool.

        The pool is created closed; open it from a running event loop with
        ``await pool.open()`` (or use it as an async context manager).

        Returns
        -------
        AsyncConnectionPool
            The managed async pool instance.
        """
        with self._lock:
            if self._async_pool is None:
                settings = get_settings()
                self._async_pool = AsyncConnectionPool(
                    conninfo=build_dsn(settings),
                    min_size=settings.pool_min_size if min_size is None else min_size,
                    max_size=settings.pool_max_size if max_size is None else max_size,
                    timeout=settings.pool_timeout_seconds,
                    open=False,
                )
            return self._async_pool

    def close_all(self) -> None:
        """
        Close all managed sync pools and release resources.

        This is called automatically on exit via atexit hook. The async pool
        must be closed by its owner from inside the event loop
        (``await pool.close()``); here it is only forgotten.
        """
        with self._lock:
            if self._sync_pool is not None:
                try:
                    self._sync_pool.close()
                except psycopg.Error:
                    log.warning("Failed to close sync pool cleanly", exc_info=True)
                finally:
                    self._sync_pool = None
            self._async_pool = None


# Convenience functions for simple use cases


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((psycopg.OperationalError, psycopg.InterfaceError)),
    reraise=True,
)
def get_sync_connection(dsn: Optional[str] = None) -> Connection:
    """
    Acquire a dedicated synchronous connection with automatic retry.

    Retries up to 3 times with exponential backoff for transient connection errors.
    Use this for simple, one-off operations (schema setup, seeding). Prefer the
    pool for repeated use.

    Raises
    ------
    psycopg.OperationalError
        If connection fails after all retry attempts.
    """
    return psycopg.connect(dsn or build_dsn())


def get_sync_pool(
    min_size: Optional[int] = None, max_size: Optional[int] = None
) -> ConnectionPool:
    """
    Get or create a synchronous connection pool via PoolManager.
    """
    manager = PoolManager()
    return manager.get_sync_pool(min_size=min_size, max_size=max_size)


def get_async_pool(
    min_size: Optional[int] = None, max_size: Optional[int] = None
) -> AsyncConnectionPool:
    """
    Get or create an asynchronous connection pool via PoolManager.
    """
    manager = PoolManager()
    return manager.get_async_pool(min_size=min_size, max_size=max_size)


__all__ = [
    "PoolManager",
    "apply_statement_timeout",
    "timeout_statements",
    "build_dsn",
    "get_sync_connection",
    "get_sync_pool",
    "get_async_pool",
]
