"""
Pytest configuration for the household objects database.

Provides fixtures for:
- Database connection management
- Schema setup and per-test table cleanup
- Connection pools and the query/claim objects built on them
- Task seeding for claim tests
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Generator

import psycopg
import pytest
from psycopg_pool import ConnectionPool

from household_objects_db.config import Settings
from household_objects_db.query import QueryBuilder
from household_objects_db.tasks import TaskClaimCoordinator

SCHEMA_PATH = Path(__file__).parent.parent / "db" / "init.sql"

_TABLES = (
    "task",
    "perturbation",
    "grasp",
    "mesh",
    "model_set",
    "scaled_model",
    "original_model",
    "variable",
)


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "household_objects"),
        log_level="DEBUG",
        claim_lock_timeout_ms=2_000,
        db_statement_timeout_ms=10_000,
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return test_settings.dsn


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def db_connection(
    test_dsn: str, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a session-scoped database connection for integration tests.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_dsn)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture(scope="session")
def db_schema_initialized(db_connection: psycopg.Connection) -> bool:
    """
    Ensure the schema exists. init.sql is idempotent, so it is always applied.
    """
    with db_connection.cursor() as cur:
        cur.execute(SCHEMA_PATH.read_text(encoding="utf-8"))
    db_connection.commit()
    return True


def _truncate_all(conn: psycopg.Connection) -> None:
    with conn.cursor() as cur:
        cur.execute(
            "TRUNCATE TABLE "
            + ", ".join(f"public.{table}" for table in _TABLES)
            + " RESTART IDENTITY CASCADE;"
        )
    conn.commit()


@pytest.fixture(scope="function")
def clean_tables(db_connection: psycopg.Connection, db_schema_initialized: bool):
    """
    Empty every table before and after each test function.
    """
    _truncate_all(db_connection)
    yield
    _truncate_all(db_connection)


@pytest.fixture(scope="function")
def pool(test_dsn: str, clean_tables) -> Generator[ConnectionPool, None, None]:
    """
    A small pool private to one test.
    """
    connection_pool = ConnectionPool(conninfo=test_dsn, min_size=1, max_size=8, open=True)
    try:
        yield connection_pool
    finally:
        connection_pool.close()


@pytest.fixture(scope="function")
def queries(pool: ConnectionPool) -> QueryBuilder:
    return QueryBuilder(pool)


@pytest.fixture(scope="function")
def coordinator(pool: ConnectionPool, test_settings: Settings) -> TaskClaimCoordinator:
    return TaskClaimCoordinator(pool, settings=test_settings)


@pytest.fixture(scope="function")
def seeded_tasks(
    db_connection: psycopg.Connection,
    clean_tables,
    test_dsn: str,
) -> int:
    """
    Seed 50 PENDING tasks through the seeding script's COPY path.

    Returns the number of rows seeded.
    """
    rows_to_seed = 50

    with tempfile.TemporaryDirectory() as tmpdir:
        csv_path = Path(tmpdir) / "tasks.csv"

        from scripts.seed_tasks import _copy_into_db, _generate_tasks_csv

        _generate_tasks_csv(csv_path, rows=rows_to_seed, batch_size=20, seed=42)
        _copy_into_db(test_dsn, csv_path)

    with db_connection.cursor() as cur:
        cur.execute("SELECT COUNT(*) FROM public.task WHERE status = 'PENDING';")
        count = cur.fetchone()[0]
    db_connection.commit()

    return count
