"""
Domain package for the household objects database layer.

Exports the row-shape machinery (field bindings, entity descriptors,
projections), the filter predicates, the concrete entities of the schema,
and the geometry shapes built from stored meshes.
"""

from household_objects_db.domain.entities import (
    Grasp,
    Mesh,
    ModelSet,
    OriginalModel,
    Perturbation,
    ScaledModel,
    Task,
    TaskStatus,
    Variable,
)
from household_objects_db.domain.fields import Column, EntityDescriptor, FieldBinding, Projection
from household_objects_db.domain.predicates import (
    Condition,
    Op,
    Predicate,
    Subquery,
    any_of,
    compile_where,
    contains,
    eq,
    in_subquery,
)
from household_objects_db.domain.shapes import Point, Shape, shape_from_mesh

__all__ = [
    # Row-shape machinery
    "Column",
    "EntityDescriptor",
    "FieldBinding",
    "Projection",
    # Predicates
    "Condition",
    "Op",
    "Predicate",
    "Subquery",
    "any_of",
    "compile_where",
    "contains",
    "eq",
    "in_subquery",
    # Entities
    "Grasp",
    "Mesh",
    "ModelSet",
    "OriginalModel",
    "Perturbation",
    "ScaledModel",
    "Task",
    "TaskStatus",
    "Variable",
    # Geometry
    "Point",
    "Shape",
    "shape_from_mesh",
]
