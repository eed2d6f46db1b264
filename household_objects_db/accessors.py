"""
Typed convenience accessors over the household objects database.

Every method builds a predicate and delegates to the query builder or the
claim coordinator; nothing here writes SQL by hand.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from psycopg_pool import ConnectionPool

from household_objects_db.config import Settings
from household_objects_db.domain.entities import (
    Grasp,
    Mesh,
    ModelSet,
    OriginalModel,
    Perturbation,
    ScaledModel,
    Task,
    TaskStatus,
)
from household_objects_db.domain.predicates import (
    Predicate,
    any_of,
    contains,
    eq,
    in_subquery,
)
from household_objects_db.domain.shapes import Shape, shape_from_mesh
from household_objects_db.errors import NotFoundError
from household_objects_db.query.builder import QueryBuilder
from household_objects_db.tasks.coordinator import TaskClaimCoordinator
from household_objects_db.utils.logging import get_logger

log = get_logger(__name__)

MODEL_ROOT_VARIABLE = "MODEL_ROOT"


class ObjectsDatabase:
    """
    Object, grasp, mesh, perturbation and task lookups on one connection pool.

    Example
    -------
        db = ObjectsDatabase(pool)
        grasps = db.get_cluster_rep_grasps(18665, "WILLOW_GRIPPER_2010")
        task = db.acquire_next_task("worker-1")
    """

    def __init__(self, pool: ConnectionPool, settings: Optional[Settings] = None) -> None:
        self.queries = QueryBuilder(pool)
        self.tasks = TaskClaimCoordinator(pool, settings=settings)

    # -- models -------------------------------------------------------------

    def get_original_models_list(self) -> List[OriginalModel]:
        return self.queries.list(OriginalModel.example(), "")

    def get_scaled_models_list(self) -> List[ScaledModel]:
        return self.queries.list(ScaledModel.example(), "")

    def get_scaled_models_by_acquisition(self, acquisition_method: str) -> List[ScaledModel]:
        example = ScaledModel.example()
        example.binding("acquisition_method").mark_readable()
        predicate = Predicate.where(eq(ScaledModel.acquisition_method.name, acquisition_method))
        return self.queries.list(example, predicate)

    def get_scaled_models_by_set(self, model_set_name: str) -> List[ScaledModel]:
        """Scaled models whose original model belongs to `model_set_name`; all if empty."""
        if not model_set_name:
            return self.get_scaled_models_list()
        predicate = Predicate.where(
            in_subquery(
                ScaledModel.original_model_id.name,
                ModelSet.__table__,
                ModelSet.original_model_id.name,
                Predicate.where(eq(ModelSet.name.name, model_set_name)),
            )
        )
        return self.queries.list(ScaledModel.example(), predicate)

    def get_num_original_models(self) -> int:
        return self.queries.count(OriginalModel.example(), "")

    def get_model_root(self) -> str:
        """Directory that stored geometry paths are relative to."""
        return self.queries.get_variable(MODEL_ROOT_VARIABLE)

    def get_models_list_by_tags(self, tags: Sequence[str]) -> List[OriginalModel]:
        """Original models carrying every tag in `tags` (all models if none given)."""
        predicate = Predicate.where(*(contains(OriginalModel.tags.name, tag) for tag in tags))
        return self.queries.list(OriginalModel.example(), predicate)

    # -- grasps -------------------------------------------------------------

    def get_grasps(self, scaled_model_id: int, hand_name: str) -> List[Grasp]:
        predicate = Predicate.where(
            eq(Grasp.scaled_model_id.name, scaled_model_id),
            eq(Grasp.hand_name.name, hand_name),
        )
        return self.queries.list(Grasp.example(), predicate)

    def get_cluster_rep_grasps(self, scaled_model_id: int, hand_name: str) -> List[Grasp]:
        predicate = Predicate.where(
            eq(Grasp.scaled_model_id.name, scaled_model_id),
            eq(Grasp.hand_name.name, hand_name),
            eq(Grasp.cluster_rep.name, True),
        )
        return self.queries.list(Grasp.example(), predicate)

    # -- meshes -------------------------------------------------------------

    def get_scaled_model_mesh(self, scaled_model_id: int) -> Mesh:
        """
        Mesh of the original model behind a scaled model.

        Raises NotFoundError when either the scaled model or its mesh is missing.
        """
        scaled_model = ScaledModel.example(read=["original_model_id"], id=scaled_model_id)
        try:
            self.queries.load_by_key(scaled_model)
        except NotFoundError:
            log.error(
                f"Failed to get original model for scaled model id {scaled_model_id}",
                extra={"scaled_model_id": scaled_model_id},
            )
            raise

        mesh = Mesh.example(id=scaled_model.original_model_id)
        try:
            self.queries.load_by_key(mesh)
        except NotFoundError:
            log.error(
                f"Failed to load mesh for scaled model {scaled_model_id}, "
                f"resolved to original model {scaled_model.original_model_id}",
                extra={
                    "scaled_model_id": scaled_model_id,
                    "original_model_id": scaled_model.original_model_id,
                },
            )
            raise
        return mesh

    def get_scaled_model_shape(self, scaled_model_id: int) -> Shape:
        """Mesh of a scaled model as a Shape; GeometryError on a malformed vertex list."""
        mesh = self.get_scaled_model_mesh(scaled_model_id)
        return shape_from_mesh(mesh.triangles or [], mesh.vertices or [])

    # -- perturbations ------------------------------------------------------

    def get_all_perturbations_for_model(self, scaled_model_id: int) -> List[Perturbation]:
        predicate = Predicate.where(
            in_subquery(
                Perturbation.grasp_id.name,
                Grasp.__table__,
                Grasp.id.name,
                Predicate.where(eq(Grasp.scaled_model_id.name, scaled_model_id)),
            )
        )
        return self.queries.list(Perturbation.example(), predicate)

    def get_perturbations_for_grasps(self, grasp_ids: Sequence[int]) -> List[Perturbation]:
        if not grasp_ids:
            return []
        predicate = Predicate.where(any_of(Perturbation.grasp_id.name, list(grasp_ids)))
        return self.queries.list(Perturbation.example(), predicate)

    # -- tasks --------------------------------------------------------------

    def acquire_next_task(self, worker_id: str, timeout: Optional[float] = None) -> Optional[Task]:
        return self.tasks.acquire_next_task(worker_id, timeout=timeout)

    def list_tasks(self, status: Optional[TaskStatus] = None) -> List[Task]:
        predicate = Predicate()
        if status is not None:
            predicate = predicate.and_(eq(Task.status.name, TaskStatus(status).value))
        return self.queries.list(Task.example(), predicate)


__all__ = ["MODEL_ROOT_VARIABLE", "ObjectsDatabase"]
