"""
Household objects database - data access for a robotics grasping pipeline.

This package reads and writes descriptions of physical objects stored in
PostgreSQL (original and scaled 3-D models, grasps, meshes, perturbations)
and distributes pending experiments to workers:

- Entity descriptors declare row-shapes as field bindings with read/write/key flags
- The query builder turns an example descriptor plus a predicate into SQL
- The task claim coordinator hands each pending task to exactly one worker
- Typed accessors wrap the common lookups of the pipeline

Connection pools are passed in explicitly; nothing here keeps global store state.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from household_objects_db.accessors import ObjectsDatabase
from household_objects_db.config import Settings, get_settings
from household_objects_db.domain import (
    Column,
    EntityDescriptor,
    FieldBinding,
    Predicate,
    Projection,
    Task,
    TaskStatus,
)
from household_objects_db.errors import (
    ClaimError,
    GeometryError,
    NotFoundError,
    ObjectsDatabaseError,
    QueryError,
    SchemaError,
)
from household_objects_db.query import QueryBuilder
from household_objects_db.tasks import AsyncTaskClaimCoordinator, TaskClaimCoordinator
from household_objects_db.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Row-shapes
    "Column",
    "EntityDescriptor",
    "FieldBinding",
    "Predicate",
    "Projection",
    "Task",
    "TaskStatus",
    # Query and claim core
    "QueryBuilder",
    "TaskClaimCoordinator",
    "AsyncTaskClaimCoordinator",
    "ObjectsDatabase",
    # Errors
    "ObjectsDatabaseError",
    "SchemaError",
    "QueryError",
    "NotFoundError",
    "ClaimError",
    "GeometryError",
    # Logging
    "configure_logging",
    "get_logger",
]
