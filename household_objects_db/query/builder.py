"""
Example-object query builder.

Turns an entity descriptor "example" plus an optional predicate into a
parameterized statement, runs it on a pooled connection, and materializes
the rows as fresh descriptors of the example's shape.

Usage:
    from household_objects_db.query import QueryBuilder

    queries = QueryBuilder(pool)
    example = ScaledModel.example(read=["scale", "acquisition_method"])
    models = queries.list(example, Predicate.where(eq("acquisition_method_name", "3DModel")))
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Generator, Iterable, List, Optional, TypeVar

import psycopg
from psycopg import sql
from psycopg_pool import ConnectionPool

from household_objects_db.domain.entities import Variable
from household_objects_db.domain.fields import EntityDescriptor, Projection
from household_objects_db.domain.predicates import PredicateLike, compile_where
from household_objects_db.errors import NotFoundError, QueryError
from household_objects_db.infrastructure.db_factory import apply_statement_timeout
from household_objects_db.utils.logging import get_logger

log = get_logger(__name__)

E = TypeVar("E", bound=EntityDescriptor)


def column_list(columns: Iterable[str]) -> sql.Composed:
    """Comma-separated, quoted column identifiers."""
    return sql.SQL(", ").join(sql.Identifier(column) for column in columns)


def select_statement(projection: Projection, where: Optional[sql.Composable]) -> sql.Composed:
    query = sql.SQL("SELECT {} FROM {}").format(
        column_list(projection.readable), sql.Identifier(projection.table)
    )
    if where is not None:
        query = sql.SQL("{} WHERE {}").format(query, where)
    return query


class QueryBuilder:
    """
    Parameterized retrieval and persistence for entity descriptors.

    Parameters
    ----------
    pool : ConnectionPool
        Pool every statement borrows its connection from. Passing it in (rather
        than reaching for a global) lets tests hand each case its own store.
    statement_timeout_ms : int, optional
        When set, every statement runs under ``SET LOCAL statement_timeout``.
    """

    def __init__(self, pool: ConnectionPool, statement_timeout_ms: Optional[int] = None) -> None:
        self._pool = pool
        self._statement_timeout_ms = statement_timeout_ms

    @contextmanager
    def _cursor(self, operation: str, table: str) -> Generator[psycopg.Cursor, None, None]:
        """
        Borrow a connection and open a cursor; wrap store failures as QueryError.

        The pool commits when the block exits cleanly and rolls back otherwise.
        """
        try:
            with self._pool.connection() as conn:
                with conn.cursor() as cur:
                    if self._statement_timeout_ms is not None:
                        apply_statement_timeout(cur, self._statement_timeout_ms)
                    yield cur
        except psycopg.Error as exc:
            log.warning(
                f"{operation} failed on {table}",
                extra={"operation": operation, "table": table, "error": str(exc)},
            )
            raise QueryError(f"{operation} on {table} failed: {exc}") from exc

    def list(self, example: E, predicate: PredicateLike = "") -> List[E]:
        """
        Fetch every row matching `predicate`, shaped like `example`.

        Only readable columns are selected. An empty predicate means no filter.
        Returns an empty list when nothing matches.
        """
        projection = example.projection()
        where, params = compile_where(predicate)
        query = select_statement(projection, where)

        with self._cursor("list", projection.table) as cur:
            cur.execute(query, params or None)
            rows = cur.fetchall()

        results: List[E] = []
        for row in rows:
            item = example.fresh()
            item.populate(projection.readable, row)
            results.append(item)
        log.debug(
            f"Listed {len(results)} row(s) from {projection.table}",
            extra={"table": projection.table, "rows": len(results)},
        )
        return results

    def count(self, example: EntityDescriptor, predicate: PredicateLike = "") -> int:
        """Count rows matching `predicate` without materializing them."""
        projection = example.projection()
        where, params = compile_where(predicate)
        query = sql.SQL("SELECT COUNT(*) FROM {}").format(sql.Identifier(projection.table))
        if where is not None:
            query = sql.SQL("{} WHERE {}").format(query, where)

        with self._cursor("count", projection.table) as cur:
            cur.execute(query, params or None)
            row = cur.fetchone()
        return int(row[0]) if row is not None else 0

    def load_by_key(self, descriptor: E) -> E:
        """
        Fill the readable bindings of `descriptor` from the row matching its key.

        Raises
        ------
        NotFoundError
            If no row has that key.
        QueryError
            On any store-side failure.
        """
        projection = descriptor.projection()
        key_value = descriptor.primary_key_column().value
        if key_value is None:
            raise ValueError(f"{type(descriptor).__name__} key {projection.key!r} is not set")

        columns = projection.readable_non_key
        select_list = column_list(columns) if columns else sql.SQL("1")
        query = sql.SQL("SELECT {} FROM {} WHERE {} = %s").format(
            select_list, sql.Identifier(projection.table), sql.Identifier(projection.key)
        )

        with self._cursor("load_by_key", projection.table) as cur:
            cur.execute(query, (key_value,))
            row = cur.fetchone()

        if row is None:
            raise NotFoundError(f"No {projection.table} row with {projection.key}={key_value!r}")
        if columns:
            descriptor.populate(columns, row)
        return descriptor

    def insert(self, descriptor: E) -> E:
        """
        Insert the writable bindings of `descriptor` as a new row.

        The key assigned by the database is written back into the descriptor.
        """
        projection = descriptor.projection()
        table = sql.Identifier(projection.table)
        key = sql.Identifier(projection.key)
        values: List[Any] = [descriptor.value_of(column) for column in projection.writable]

        if projection.writable:
            query = sql.SQL("INSERT INTO {} ({}) VALUES ({}) RETURNING {}").format(
                table,
                column_list(projection.writable),
                sql.SQL(", ").join([sql.Placeholder()] * len(values)),
                key,
            )
        else:
            query = sql.SQL("INSERT INTO {} DEFAULT VALUES RETURNING {}").format(table, key)

        with self._cursor("insert", projection.table) as cur:
            cur.execute(query, values or None)
            row = cur.fetchone()

        if row is not None:
            descriptor.primary_key_column().value = row[0]
        log.debug(
            f"Inserted {projection.table} row",
            extra={"table": projection.table, "key": descriptor.primary_key_column().value},
        )
        return descriptor

    def update(self, descriptor: E) -> E:
        """
        Write the writable non-key bindings of `descriptor` to its row.

        Raises NotFoundError when no row has the descriptor's key.
        """
        projection = descriptor.projection()
        key_value = descriptor.primary_key_column().value
        columns = [column for column in projection.writable if column != projection.key]
        if key_value is None:
            raise ValueError(f"{type(descriptor).__name__} key {projection.key!r} is not set")
        if not columns:
            raise ValueError(f"{type(descriptor).__name__} has no writable columns to update")

        assignments = sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(column)) for column in columns
        )
        query = sql.SQL("UPDATE {} SET {} WHERE {} = %s").format(
            sql.Identifier(projection.table), assignments, sql.Identifier(projection.key)
        )
        params = [descriptor.value_of(column) for column in columns] + [key_value]

        with self._cursor("update", projection.table) as cur:
            cur.execute(query, params)
            updated = cur.rowcount

        if updated == 0:
            raise NotFoundError(f"No {projection.table} row with {projection.key}={key_value!r}")
        return descriptor

    def get_variable(self, name: str) -> Any:
        """Return the value stored under `name` in the variable table."""
        variable = self.load_by_key(Variable.example(name=name))
        return variable.value


__all__ = ["QueryBuilder", "column_list", "select_statement"]
