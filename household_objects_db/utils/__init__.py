"""
Utilities package for the household objects database layer.

Exports shared helpers for cross-cutting concerns such as logging.
Keep this package lightweight and free of domain-specific logic.
"""

from household_objects_db.utils.logging import configure_logging, get_logger

__all__ = [
    "configure_logging",
    "get_logger",
]
