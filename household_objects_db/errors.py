"""
Error taxonomy for the household objects database layer.

Store-side failures are wrapped into these kinds at the boundary (query
builder and claim coordinator) and propagated unchanged from there. Nothing
in this package retries or swallows them.
"""

from __future__ import annotations


class ObjectsDatabaseError(Exception):
    """Base class for all errors raised by this package."""


class SchemaError(ObjectsDatabaseError):
    """A malformed entity descriptor: duplicate columns, zero or several keys."""


class QueryError(ObjectsDatabaseError):
    """Connectivity loss, malformed predicate, or store-side failure during a read/write."""


class NotFoundError(ObjectsDatabaseError):
    """A keyed lookup matched no row."""


class ClaimError(ObjectsDatabaseError):
    """The atomic claim (or a task state transition) failed in the store.

    The transaction was rolled back, so retrying is safe.
    """


class GeometryError(ObjectsDatabaseError):
    """Stored mesh data cannot be converted into a shape."""


__all__ = [
    "ObjectsDatabaseError",
    "SchemaError",
    "QueryError",
    "NotFoundError",
    "ClaimError",
    "GeometryError",
]
