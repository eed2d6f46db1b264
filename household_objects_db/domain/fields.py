"""
Field bindings and entity descriptors.

An entity descriptor is one relational row-shape declared as a class with
`Column` attributes. Each instance carries one `FieldBinding` per column:
the in-memory value plus flags saying whether the column is read by a
SELECT, written by an INSERT/UPDATE, or identifies the row.

An instance used only to declare a query's shape is an "example". Queries
never read flags from a live example while they run; they take an immutable
`Projection` snapshot first, so two threads building different query shapes
from copies of the same class cannot interfere.

Example
-------
    class ScaledModel(EntityDescriptor):
        __table__ = "scaled_model"

        id = Column("scaled_model_id", primary_key=True)
        scale = Column("scaled_model_scale")

    example = ScaledModel.example(read=["scale"])
    example.projection().readable   # ("scaled_model_id", "scaled_model_scale")
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Iterable, List, Optional, Sequence, Tuple, Type, TypeVar

from household_objects_db.errors import SchemaError

E = TypeVar("E", bound="EntityDescriptor")


class FieldBinding:
    """
    One mapped attribute: a value slot bound to a physical column.

    A primary-key binding is always readable; it need not be writable since
    surrogate keys are usually assigned by the database.
    """

    __slots__ = ("_column", "value", "readable", "writable", "primary_key")

    def __init__(
        self,
        column: str,
        value: Any = None,
        readable: bool = True,
        writable: bool = True,
        primary_key: bool = False,
    ) -> None:
        self._column = column
        self.value = value
        self.primary_key = primary_key
        self.readable = readable or primary_key
        self.writable = writable

    @property
    def column(self) -> str:
        return self._column

    def mark_readable(self, flag: bool = True) -> None:
        self.readable = flag or self.primary_key

    def mark_writable(self, flag: bool = True) -> None:
        self.writable = flag

    def mark_primary_key(self, flag: bool = True) -> None:
        self.primary_key = flag
        if flag:
            self.readable = True

    def __repr__(self) -> str:
        flags = "".join(
            letter
            for letter, on in (("r", self.readable), ("w", self.writable), ("k", self.primary_key))
            if on
        )
        return f"FieldBinding({self._column!r}, {self.value!r}, flags={flags!r})"


class Column:
    """
    Class-level declaration of a mapped column.

    Reading the attribute on an instance returns the binding's value, and
    assigning to it sets the value. `read`/`write` are the default flags
    for fresh instances.
    """

    def __init__(
        self,
        name: str,
        *,
        primary_key: bool = False,
        read: bool = True,
        write: Optional[bool] = None,
    ) -> None:
        self.name = name
        self.primary_key = primary_key
        self.read = read
        # Surrogate keys are database-assigned unless stated otherwise.
        self.write = (not primary_key) if write is None else write
        self.attr = name

    def __set_name__(self, owner: type, attr: str) -> None:
        self.attr = attr

    def __get__(self, instance: Optional["EntityDescriptor"], owner: type) -> Any:
        if instance is None:
            return self
        return instance._bindings[self.attr].value

    def __set__(self, instance: "EntityDescriptor", value: Any) -> None:
        instance._bindings[self.attr].value = value

    def binding(self) -> FieldBinding:
        return FieldBinding(
            self.name,
            readable=self.read,
            writable=self.write,
            primary_key=self.primary_key,
        )


@dataclass(frozen=True)
class Projection:
    """Immutable query shape: which columns of which table to read and write."""

    table: str
    readable: Tuple[str, ...]
    writable: Tuple[str, ...]
    key: str

    @property
    def readable_non_key(self) -> Tuple[str, ...]:
        return tuple(column for column in self.readable if column != self.key)


class EntityDescriptor:
    """
    Base class for row-shapes.

    Subclasses set `__table__` and declare `Column` attributes. Column names
    must be unique within a descriptor and exactly one column must be the
    primary key.
    """

    __table__: ClassVar[str] = ""
    __columns__: ClassVar[Tuple[Column, ...]] = ()

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        columns: Dict[str, Column] = {c.attr: c for c in cls.__columns__}
        for value in vars(cls).values():
            if isinstance(value, Column):
                columns[value.attr] = value

        seen: Dict[str, str] = {}
        for column in columns.values():
            if column.name in seen:
                raise SchemaError(
                    f"{cls.__name__}: column {column.name!r} is bound to both "
                    f"{seen[column.name]!r} and {column.attr!r}"
                )
            seen[column.name] = column.attr
        cls.__columns__ = tuple(columns.values())

    def __init__(self, **values: Any) -> None:
        self._bindings: Dict[str, FieldBinding] = {
            column.attr: column.binding() for column in self.__columns__
        }
        for attr, value in values.items():
            if attr not in self._bindings:
                raise TypeError(f"{type(self).__name__} has no column attribute {attr!r}")
            self._bindings[attr].value = value

    # -- construction -------------------------------------------------------

    @classmethod
    def example(
        cls: Type[E],
        read: Optional[Iterable[str]] = None,
        write: Optional[Iterable[str]] = None,
        **values: Any,
    ) -> E:
        """
        Build an example instance.

        `read`/`write` name the attributes to flag; every other attribute is
        unflagged. Leaving them as None keeps the column defaults. The key
        stays readable regardless.
        """
        instance = cls(**values)
        if read is not None:
            wanted = set(read)
            cls._check_attrs(wanted)
            for attr, binding in instance._bindings.items():
                binding.mark_readable(attr in wanted)
        if write is not None:
            wanted = set(write)
            cls._check_attrs(wanted)
            for attr, binding in instance._bindings.items():
                binding.mark_writable(attr in wanted)
        return instance

    @classmethod
    def _check_attrs(cls, attrs: Iterable[str]) -> None:
        known = {column.attr for column in cls.__columns__}
        unknown = sorted(set(attrs) - known)
        if unknown:
            raise TypeError(f"{cls.__name__} has no column attributes {unknown}")

    def fresh(self: E) -> E:
        """Return an empty instance with the same flags (the same shape)."""
        instance = type(self)()
        for attr, binding in self._bindings.items():
            target = instance._bindings[attr]
            target.readable = binding.readable
            target.writable = binding.writable
            target.primary_key = binding.primary_key
        return instance

    # -- bindings -----------------------------------------------------------

    def binding(self, attr: str) -> FieldBinding:
        return self._bindings[attr]

    def readable_attrs(self) -> List[str]:
        return [attr for attr, b in self._bindings.items() if b.readable]

    def readable_columns(self) -> List[str]:
        return [b.column for b in self._bindings.values() if b.readable]

    def writable_columns(self) -> List[str]:
        return [b.column for b in self._bindings.values() if b.writable]

    def primary_key_column(self) -> FieldBinding:
        keys = [b for b in self._bindings.values() if b.primary_key]
        if len(keys) != 1:
            raise SchemaError(
                f"{type(self).__name__} must have exactly one primary key, found {len(keys)}"
            )
        return keys[0]

    def projection(self) -> Projection:
        if not self.__table__:
            raise SchemaError(f"{type(self).__name__} does not declare __table__")
        return Projection(
            table=self.__table__,
            readable=tuple(self.readable_columns()),
            writable=tuple(self.writable_columns()),
            key=self.primary_key_column().column,
        )

    # -- values -------------------------------------------------------------

    def assign(self, column: str, value: Any) -> None:
        """Set a value by physical column name."""
        for binding in self._bindings.values():
            if binding.column == column:
                binding.value = value
                return
        raise SchemaError(f"{type(self).__name__} has no column {column!r}")

    def populate(self, columns: Sequence[str], row: Sequence[Any]) -> None:
        """Assign a result row whose values line up with `columns`."""
        for column, value in zip(columns, row):
            self.assign(column, value)

    def value_of(self, column: str) -> Any:
        for binding in self._bindings.values():
            if binding.column == column:
                return binding.value
        raise SchemaError(f"{type(self).__name__} has no column {column!r}")

    def values(self) -> Dict[str, Any]:
        return {attr: binding.value for attr, binding in self._bindings.items()}

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.values() == other.values()  # type: ignore[union-attr]

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        fields = ", ".join(f"{attr}={value!r}" for attr, value in self.values().items())
        return f"{type(self).__name__}({fields})"


__all__ = ["Column", "EntityDescriptor", "FieldBinding", "Projection"]
