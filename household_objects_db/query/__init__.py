"""
Query package for the household objects database layer.

Re-exports the example-object query builder so callers can import from
`household_objects_db.query` directly.
"""

from household_objects_db.query.builder import QueryBuilder, column_list, select_statement

__all__ = ["QueryBuilder", "column_list", "select_statement"]
