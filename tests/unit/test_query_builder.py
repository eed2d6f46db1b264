from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

import psycopg
import pytest

from household_objects_db.accessors import ObjectsDatabase
from household_objects_db.config import Settings
from household_objects_db.domain.entities import OriginalModel, ScaledModel, Variable
from household_objects_db.domain.predicates import Predicate, eq
from household_objects_db.errors import GeometryError, NotFoundError, QueryError
from household_objects_db.query import QueryBuilder


class _FakeCursor:
    def __init__(self, rows: list[tuple[Any, ...]], rowcount: int = -1, error: Exception | None = None):
        self._rows = rows
        self.rowcount = rowcount
        self._error = error
        self.executed: list[tuple[str, Any]] = []

    def execute(self, query: Any, params: Any = None) -> None:
        text = query if isinstance(query, str) else query.as_string()
        self.executed.append((text, params))
        if self._error is not None and not text.startswith("SET"):
            raise self._error

    def fetchall(self) -> list[tuple[Any, ...]]:
        return list(self._rows)

    def fetchone(self) -> tuple[Any, ...] | None:
        return self._rows[0] if self._rows else None

    def __enter__(self) -> "_FakeCursor":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        return False


class _FakeConnection:
    def __init__(self, cursor: _FakeCursor) -> None:
        self._cursor = cursor

    def cursor(self) -> _FakeCursor:
        return self._cursor


class _FakePool:
    def __init__(self, rows=None, rowcount: int = -1, error: Exception | None = None) -> None:
        self.cursor = _FakeCursor(rows or [], rowcount=rowcount, error=error)
        self.borrowed = 0

    @contextmanager
    def connection(self, timeout: float | None = None) -> Iterator[_FakeConnection]:
        del timeout
        self.borrowed += 1
        yield _FakeConnection(self.cursor)


def test_list_hydrates_fresh_descriptors() -> None:
    pool = _FakePool(rows=[(1, 2.0), (2, 0.5)])
    example = ScaledModel.example(read=["scale"])

    models = QueryBuilder(pool).list(example, Predicate.where(eq("acquisition_method_name", "3D")))

    assert [m.id for m in models] == [1, 2]
    assert [m.scale for m in models] == [2.0, 0.5]
    assert all(m is not example for m in models)
    assert models[0].original_model_id is None
    query, params = pool.cursor.executed[0]
    assert query.endswith('WHERE "acquisition_method_name" = %s')
    assert params == ["3D"]


def test_list_with_empty_predicate_passes_no_params() -> None:
    pool = _FakePool(rows=[])

    assert QueryBuilder(pool).list(ScaledModel.example(), "") == []
    query, params = pool.cursor.executed[0]
    assert "WHERE" not in query
    assert params is None


def test_count_reads_single_value() -> None:
    pool = _FakePool(rows=[(3,)])

    assert QueryBuilder(pool).count(OriginalModel.example()) == 3
    assert pool.cursor.executed[0][0] == 'SELECT COUNT(*) FROM "original_model"'


def test_store_errors_become_query_errors() -> None:
    pool = _FakePool(error=psycopg.OperationalError("connection lost"))

    with pytest.raises(QueryError, match="connection lost"):
        QueryBuilder(pool).list(ScaledModel.example())


def test_load_by_key_fills_readable_columns() -> None:
    pool = _FakePool(rows=[(42,)])
    model = ScaledModel.example(read=["original_model_id"], id=7)

    loaded = QueryBuilder(pool).load_by_key(model)

    assert loaded is model
    assert model.original_model_id == 42
    query, params = pool.cursor.executed[0]
    assert query == 'SELECT "original_model_id" FROM "scaled_model" WHERE "scaled_model_id" = %s'
    assert params == (7,)


def test_load_by_key_missing_row_raises_not_found() -> None:
    pool = _FakePool(rows=[])

    with pytest.raises(NotFoundError):
        QueryBuilder(pool).load_by_key(ScaledModel.example(id=999))


def test_load_by_key_requires_a_key() -> None:
    with pytest.raises(ValueError):
        QueryBuilder(_FakePool()).load_by_key(ScaledModel.example())


def test_load_by_key_key_only_shape_checks_existence() -> None:
    pool = _FakePool(rows=[(1,)])

    QueryBuilder(pool).load_by_key(ScaledModel.example(read=[], id=7))

    assert pool.cursor.executed[0][0] == (
        'SELECT 1 FROM "scaled_model" WHERE "scaled_model_id" = %s'
    )


def test_insert_writes_back_assigned_key() -> None:
    pool = _FakePool(rows=[(11,)])
    model = ScaledModel(original_model_id=3, scale=1.5, acquisition_method="3DModel")

    QueryBuilder(pool).insert(model)

    assert model.id == 11
    query, params = pool.cursor.executed[0]
    assert query == (
        'INSERT INTO "scaled_model" ("original_model_id", "scaled_model_scale", '
        '"acquisition_method_name") VALUES (%s, %s, %s) RETURNING "scaled_model_id"'
    )
    assert params == [3, 1.5, "3DModel"]


def test_update_without_matching_row_raises_not_found() -> None:
    pool = _FakePool(rowcount=0)

    with pytest.raises(NotFoundError):
        QueryBuilder(pool).update(ScaledModel(id=5, scale=2.0))


def test_statement_timeout_is_set_locally() -> None:
    pool = _FakePool(rows=[])

    QueryBuilder(pool, statement_timeout_ms=250).list(ScaledModel.example())

    assert pool.cursor.executed[0][0] == "SET LOCAL statement_timeout = 250"


def test_get_variable_returns_value() -> None:
    pool = _FakePool(rows=[("/models",)])

    assert QueryBuilder(pool).get_variable("MODEL_ROOT") == "/models"
    assert pool.cursor.executed[0][1] == ("MODEL_ROOT",)


def test_variable_key_is_the_name() -> None:
    assert Variable.example(name="MODEL_ROOT").primary_key_column().value == "MODEL_ROOT"


def _database(pool: _FakePool) -> ObjectsDatabase:
    return ObjectsDatabase(pool, settings=Settings())  # type: ignore[arg-type]


def test_perturbations_for_no_grasps_skips_the_store() -> None:
    pool = _FakePool()

    assert _database(pool).get_perturbations_for_grasps([]) == []
    assert pool.borrowed == 0


def test_models_by_tags_requires_every_tag() -> None:
    pool = _FakePool(rows=[])

    _database(pool).get_models_list_by_tags(["cup", "red"])

    query, params = pool.cursor.executed[0]
    assert query.endswith(
        'WHERE %s = ANY("original_model_tags") AND %s = ANY("original_model_tags")'
    )
    assert params == ["cup", "red"]


def test_models_by_no_tags_lists_everything() -> None:
    pool = _FakePool(rows=[])

    _database(pool).get_models_list_by_tags([])

    assert "WHERE" not in pool.cursor.executed[0][0]


def test_malformed_mesh_raises_geometry_error() -> None:
    class _MeshPool(_FakePool):
        def __init__(self) -> None:
            super().__init__()
            self._results = iter([[(4,)], [([0, 1, 2], [0.0, 1.0])]])

        @contextmanager
        def connection(self, timeout: float | None = None):
            self.cursor = _FakeCursor(next(self._results))
            with super().connection(timeout) as conn:
                yield conn

    with pytest.raises(GeometryError):
        _database(_MeshPool()).get_scaled_model_shape(7)
