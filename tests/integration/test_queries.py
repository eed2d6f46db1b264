"""
Integration tests for the example-object query builder and typed accessors.

Run with: RUN_INTEGRATION_TESTS=1 pytest tests/integration/
"""

from __future__ import annotations

import os

import pytest
from psycopg_pool import ConnectionPool

from household_objects_db.accessors import ObjectsDatabase
from household_objects_db.config import Settings
from household_objects_db.domain.entities import (
    Grasp,
    Mesh,
    ModelSet,
    OriginalModel,
    Perturbation,
    ScaledModel,
    Variable,
)
from household_objects_db.domain.predicates import Predicate, eq
from household_objects_db.errors import NotFoundError, QueryError
from household_objects_db.query import QueryBuilder

HAND = "WILLOW_GRIPPER_2010"

pytestmark = pytest.mark.skipif(
    os.getenv("RUN_INTEGRATION_TESTS", "0") != "1",
    reason="Integration tests require RUN_INTEGRATION_TESTS=1 and reachable Postgres",
)


@pytest.fixture
def database(pool: ConnectionPool, test_settings: Settings) -> ObjectsDatabase:
    return ObjectsDatabase(pool, settings=test_settings)


@pytest.fixture
def catalog(queries: QueryBuilder) -> dict:
    """Two original models, one scaled model each, grasps and perturbations on the first."""
    mug = queries.insert(OriginalModel(maker="Ikea", model="mug", tags=["cup", "red"]))
    can = queries.insert(OriginalModel(maker="Campbell", model="can", tags=["can"]))
    queries.insert(ModelSet(name="REDUCED_MODEL_SET", original_model_id=mug.id))

    mug_scaled = queries.insert(
        ScaledModel(original_model_id=mug.id, scale=1.0, acquisition_method="3DModel")
    )
    can_scaled = queries.insert(
        ScaledModel(original_model_id=can.id, scale=0.5, acquisition_method="scan")
    )
    queries.insert(
        Mesh(id=mug.id, triangles=[0, 1, 2], vertices=[0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 1.0, 0.0])
    )

    rep = queries.insert(
        Grasp(scaled_model_id=mug_scaled.id, hand_name=HAND, energy=1.5, cluster_rep=True)
    )
    other = queries.insert(
        Grasp(scaled_model_id=mug_scaled.id, hand_name=HAND, energy=3.0, cluster_rep=False)
    )
    queries.insert(Perturbation(grasp_id=rep.id, delta=[0.01, 0.0, 0.0], result=1))
    queries.insert(Perturbation(grasp_id=other.id, delta=[0.0, 0.02, 0.0], result=0))
    queries.insert(Variable(name="MODEL_ROOT", value="/opt/models"))

    return {
        "mug": mug,
        "can": can,
        "mug_scaled": mug_scaled,
        "can_scaled": can_scaled,
        "rep": rep,
        "other": other,
    }


class TestQueryBuilder:
    def test_insert_then_load_by_key_round_trips(self, queries: QueryBuilder, catalog: dict):
        loaded = queries.load_by_key(ScaledModel.example(id=catalog["mug_scaled"].id))

        assert loaded.original_model_id == catalog["mug"].id
        assert loaded.scale == 1.0
        assert loaded.acquisition_method == "3DModel"

    def test_list_selects_only_readable_columns(self, queries: QueryBuilder, catalog: dict):
        rows = queries.list(ScaledModel.example(read=["scale"]), "")

        assert sorted(row.scale for row in rows) == [0.5, 1.0]
        assert all(row.acquisition_method is None for row in rows)

    def test_empty_result_is_not_an_error(self, queries: QueryBuilder, catalog: dict):
        predicate = Predicate.where(eq("acquisition_method_name", "nothing"))

        assert queries.list(ScaledModel.example(), predicate) == []
        assert queries.count(ScaledModel.example(), predicate) == 0

    def test_count_is_stable_across_calls(self, queries: QueryBuilder, catalog: dict):
        assert queries.count(OriginalModel.example()) == 2
        assert queries.count(OriginalModel.example()) == 2

    def test_raw_predicate_is_used_verbatim(self, queries: QueryBuilder, catalog: dict):
        rows = queries.list(ScaledModel.example(), "scaled_model_scale < 0.75")

        assert [row.id for row in rows] == [catalog["can_scaled"].id]

    def test_malformed_raw_predicate_raises_query_error(self, queries: QueryBuilder, catalog: dict):
        with pytest.raises(QueryError):
            queries.list(ScaledModel.example(), "no_such_column = 1")

    def test_update_persists_writable_columns(self, queries: QueryBuilder, catalog: dict):
        model = catalog["can_scaled"]
        model.scale = 2.5
        queries.update(model)

        assert queries.load_by_key(ScaledModel.example(id=model.id)).scale == 2.5

    def test_load_missing_key_raises_not_found(self, queries: QueryBuilder, catalog: dict):
        with pytest.raises(NotFoundError):
            queries.load_by_key(ScaledModel.example(id=999_999))


class TestAccessors:
    def test_model_listing_and_count(self, database: ObjectsDatabase, catalog: dict):
        assert database.get_num_original_models() == 2
        assert len(database.get_original_models_list()) == 2
        assert len(database.get_scaled_models_list()) == 2

    def test_models_by_tags_require_all_tags(self, database: ObjectsDatabase, catalog: dict):
        assert [m.id for m in database.get_models_list_by_tags(["cup", "red"])] == [
            catalog["mug"].id
        ]
        assert database.get_models_list_by_tags(["cup", "can"]) == []
        assert len(database.get_models_list_by_tags([])) == 2

    def test_scaled_models_by_acquisition_and_set(self, database: ObjectsDatabase, catalog: dict):
        by_method = database.get_scaled_models_by_acquisition("scan")
        assert [m.id for m in by_method] == [catalog["can_scaled"].id]

        by_set = database.get_scaled_models_by_set("REDUCED_MODEL_SET")
        assert [m.id for m in by_set] == [catalog["mug_scaled"].id]
        assert len(database.get_scaled_models_by_set("")) == 2

    def test_grasps_and_cluster_reps(self, database: ObjectsDatabase, catalog: dict):
        scaled_id = catalog["mug_scaled"].id

        assert len(database.get_grasps(scaled_id, HAND)) == 2
        assert [g.id for g in database.get_cluster_rep_grasps(scaled_id, HAND)] == [
            catalog["rep"].id
        ]
        assert database.get_grasps(scaled_id, "OTHER_HAND") == []

    def test_perturbations(self, database: ObjectsDatabase, catalog: dict):
        all_for_model = database.get_all_perturbations_for_model(catalog["mug_scaled"].id)
        assert len(all_for_model) == 2

        for_rep = database.get_perturbations_for_grasps([catalog["rep"].id])
        assert [p.result for p in for_rep] == [1]
        assert database.get_perturbations_for_grasps([]) == []

    def test_mesh_and_shape(self, database: ObjectsDatabase, catalog: dict):
        shape = database.get_scaled_model_shape(catalog["mug_scaled"].id)

        assert shape.triangles == [0, 1, 2]
        assert len(shape.vertices) == 3

    def test_missing_mesh_raises_not_found(self, database: ObjectsDatabase, catalog: dict):
        with pytest.raises(NotFoundError):
            database.get_scaled_model_mesh(catalog["can_scaled"].id)

    def test_model_root_variable(self, database: ObjectsDatabase, catalog: dict):
        assert database.get_model_root() == "/opt/models"
