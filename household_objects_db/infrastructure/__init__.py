"""
Infrastructure package for the household objects database layer.

Centralizes database connectivity concerns (sync/async factories, pooling,
transaction timeouts). Keep this layer focused on I/O and resource
management, decoupled from query building and claim logic.
"""

from household_objects_db.infrastructure.db_factory import (
    PoolManager,
    apply_statement_timeout,
    build_dsn,
    get_async_pool,
    get_sync_connection,
    get_sync_pool,
    timeout_statements,
)

__all__ = [
    "PoolManager",
    "apply_statement_timeout",
    "build_dsn",
    "get_async_pool",
    "get_sync_connection",
    "get_sync_pool",
    "timeout_statements",
]
