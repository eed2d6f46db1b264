"""
Filter predicates for generated queries.

Two forms are accepted wherever a query takes a predicate:

- a plain string, used verbatim as the WHERE-clause body. It is never parsed,
  rewritten, or cached; building it safely is the caller's job. ``""`` means
  no filter.
- a `Predicate`: a conjunction of column/operator/value conditions compiled
  to parameterized SQL with quoted identifiers. Values never end up in the
  query text.

Example
-------
    Predicate.where(eq("scaled_model_id", 18665), eq("hand_name", "WILLOW_GRIPPER"))
    # "scaled_model_id" = %s AND "hand_name" = %s   params: [18665, "WILLOW_GRIPPER"]
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Sequence, Tuple, Union

from psycopg import sql


class Op(str, Enum):
    EQ = "="
    NE = "<>"
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="
    # value is an element of the array column
    CONTAINS = "contains"
    # column equals one element of the list value
    ANY = "any"
    # column is in the result of a Subquery value
    IN_SUBQUERY = "in_subquery"

    @classmethod
    def _missing_(cls, value: object) -> Optional["Op"]:
        if value == "!=":
            return cls.NE
        return None


_COMPARISONS = {Op.EQ, Op.NE, Op.LT, Op.LE, Op.GT, Op.GE}


@dataclass(frozen=True)
class Subquery:
    """`SELECT <column> FROM <table> [WHERE <where>]` used as an IN operand."""

    table: str
    column: str
    where: Optional["Predicate"] = None


@dataclass(frozen=True)
class Condition:
    column: str
    op: Op
    value: Any = None

    def __post_init__(self) -> None:
        # Accept raw operator strings ("=", "any", ...) as well as Op members.
        object.__setattr__(self, "op", Op(self.op))
        if self.op is Op.IN_SUBQUERY and not isinstance(self.value, Subquery):
            raise ValueError(f"{self.op.value} needs a Subquery value, got {type(self.value)!r}")
        if self.op is Op.ANY and isinstance(self.value, (str, bytes)):
            raise ValueError("any needs a sequence of values, not a string")
        if self.value is None and self.op not in (Op.EQ, Op.NE):
            raise ValueError(f"operator {self.op.value} does not accept None")

    def compile(self) -> Tuple[sql.Composable, List[Any]]:
        column = sql.Identifier(self.column)
        if self.op in _COMPARISONS:
            if self.value is None:
                test = "IS NULL" if self.op is Op.EQ else "IS NOT NULL"
                return sql.SQL("{} " + test).format(column), []
            return sql.SQL("{} " + self.op.value + " %s").format(column), [self.value]
        if self.op is Op.CONTAINS:
            return sql.SQL("%s = ANY({})").format(column), [self.value]
        if self.op is Op.ANY:
            return sql.SQL("{} = ANY(%s)").format(column), [list(self.value)]

        sub: Subquery = self.value
        inner = sql.SQL("SELECT {} FROM {}").format(
            sql.Identifier(sub.column), sql.Identifier(sub.table)
        )
        params: List[Any] = []
        if sub.where:
            where_sql, params = sub.where.compile()
            inner = sql.SQL("{} WHERE {}").format(inner, where_sql)
        return sql.SQL("{} IN ({})").format(column, inner), params


@dataclass(frozen=True)
class Predicate:
    """Conjunction of conditions; an empty predicate filters nothing."""

    conditions: Tuple[Condition, ...] = ()

    @classmethod
    def where(cls, *conditions: Condition) -> "Predicate":
        return cls(tuple(conditions))

    def and_(self, *conditions: Condition) -> "Predicate":
        return Predicate(self.conditions + tuple(conditions))

    def __bool__(self) -> bool:
        return bool(self.conditions)

    def compile(self) -> Tuple[sql.Composable, List[Any]]:
        parts: List[sql.Composable] = []
        params: List[Any] = []
        for condition in self.conditions:
            part, part_params = condition.compile()
            parts.append(part)
            params.extend(part_params)
        return sql.SQL(" AND ").join(parts), params


PredicateLike = Union[str, Predicate, None]


def compile_where(predicate: PredicateLike) -> Tuple[Optional[sql.Composable], List[Any]]:
    """
    Turn a predicate into a WHERE body and its parameters.

    Returns (None, []) when there is nothing to filter on.
    """
    if predicate is None:
        return None, []
    if isinstance(predicate, str):
        if not predicate.strip():
            return None, []
        return sql.SQL(predicate), []
    if isinstance(predicate, Predicate):
        if not predicate:
            return None, []
        return predicate.compile()
    raise TypeError(f"Unsupported predicate type: {type(predicate)!r}")


# Shorthands used by the typed accessors.


def eq(column: str, value: Any) -> Condition:
    return Condition(column, Op.EQ, value)


def contains(column: str, value: Any) -> Condition:
    return Condition(column, Op.CONTAINS, value)


def any_of(column: str, values: Sequence[Any]) -> Condition:
    return Condition(column, Op.ANY, values)


def in_subquery(
    column: str, table: str, select_column: str, where: Optional[Predicate] = None
) -> Condition:
    return Condition(column, Op.IN_SUBQUERY, Subquery(table, select_column, where))


__all__ = [
    "Condition",
    "Op",
    "Predicate",
    "PredicateLike",
    "Subquery",
    "any_of",
    "compile_where",
    "contains",
    "eq",
    "in_subquery",
]
