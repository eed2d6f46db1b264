"""
Row-shapes of the household objects schema.

Mirrors the tables created by `db/init.sql`. Attribute names are the
Python-facing names; the first argument of each `Column` is the physical
column.
"""
from __future__ import annotations

from enum import Enum

from household_objects_db.domain.fields import Column, EntityDescriptor


class OriginalModel(EntityDescriptor):
    __table__ = "original_model"

    id = Column("original_model_id", primary_key=True)
    maker = Column("original_model_maker")
    model = Column("original_model_model")
    tags = Column("original_model_tags")
    source = Column("original_model_source")
    description = Column("original_model_description")
    geometry_path = Column("original_model_geometry_path")


class ScaledModel(EntityDescriptor):
    __table__ = "scaled_model"

    id = Column("scaled_model_id", primary_key=True)
    original_model_id = Column("original_model_id")
    scale = Column("scaled_model_scale")
    acquisition_method = Column("acquisition_method_name")


class Grasp(EntityDescriptor):
    """A grasp on a scaled model. Poses are [x, y, z, qx, qy, qz, qw]."""

    __table__ = "grasp"

    id = Column("grasp_id", primary_key=True)
    scaled_model_id = Column("scaled_model_id")
    pregrasp_joints = Column("grasp_pregrasp_joints")
    grasp_joints = Column("grasp_grasp_joints")
    energy = Column("grasp_energy")
    pregrasp_pose = Column("grasp_pregrasp_position")
    grasp_pose = Column("grasp_grasp_position")
    source_name = Column("grasp_source_name")
    pregrasp_clearance = Column("grasp_pregrasp_clearance")
    cluster_rep = Column("grasp_cluster_rep")
    table_clearance = Column("grasp_table_clearance")
    hand_name = Column("hand_name")
    compliant_copy = Column("grasp_compliant_copy")
    compliant_original_id = Column("grasp_compliant_original_id")


class Mesh(EntityDescriptor):
    """Mesh geometry, keyed by the original model it belongs to."""

    __table__ = "mesh"

    id = Column("original_model_id", primary_key=True, write=True)
    triangles = Column("mesh_triangle_list")
    vertices = Column("mesh_vertex_list")


class Perturbation(EntityDescriptor):
    __table__ = "perturbation"

    id = Column("perturbation_id", primary_key=True)
    grasp_id = Column("grasp_id")
    delta = Column("perturbation_delta")
    result = Column("perturbation_result")


class ModelSet(EntityDescriptor):
    __table__ = "model_set"

    id = Column("model_set_id", primary_key=True)
    name = Column("model_set_name")
    original_model_id = Column("original_model_id")


class Variable(EntityDescriptor):
    __table__ = "variable"

    name = Column("variable_name", primary_key=True, write=True)
    value = Column("variable_value")


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETE = "COMPLETE"
    ERROR = "ERROR"


class Task(EntityDescriptor):
    """
    One experiment in the shared work queue.

    `status`, `claimed_by` and `claimed_at` belong to the claim protocol; the
    remaining columns are payload the coordinator never interprets.
    """

    __table__ = "task"

    id = Column("task_id", primary_key=True)
    task_type = Column("task_type")
    status = Column("status")
    claimed_by = Column("claimed_by")
    claimed_at = Column("claimed_at")
    scaled_model_id = Column("scaled_model_id")
    hand_name = Column("hand_name")
    result_path = Column("outcome_result_path")
    created_at = Column("created_at", write=False)


__all__ = [
    "Grasp",
    "Mesh",
    "ModelSet",
    "OriginalModel",
    "Perturbation",
    "ScaledModel",
    "Task",
    "TaskStatus",
    "Variable",
]
