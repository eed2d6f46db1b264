"""
Tasks package for the household objects database layer.

Exports the claim coordinators that hand pending experiments to workers.
"""

from household_objects_db.tasks.coordinator import AsyncTaskClaimCoordinator, TaskClaimCoordinator

__all__ = ["AsyncTaskClaimCoordinator", "TaskClaimCoordinator"]
