"""Fluent builders declaring columns, indexes and foreign keys on a Table.

Descriptors are frozen; every builder call swaps the descriptor stored in the
table's current state for a modified copy.  Builders hold only the table and
the element's identity key, so they stay valid across calls.

Usage:
    table.column("id").primary()
    table.column("email").string(255)
    table.column("status").enum(["active", "blocked"]).default("active")
    table.index("email").unique()
    table.foreign("user_id").references("users").on_delete("CASCADE")
"""

from typing import TYPE_CHECKING, Any

from db_sync.schema.models import (
    ColumnSchema,
    ForeignKeySchema,
    IndexSchema,
    SqlExpression,
    resolve_type,
)

if TYPE_CHECKING:
    from db_sync.schema.table import Table


class ColumnBuilder:
    """Declares the type, nullability and default of one column.

    Example:
        >>> table.column("price").decimal(10, 2).nullable().schema.scale
        2
    """

    def __init__(self, table: "Table", key: str):
        self._table = table
        self._key = key

    @property
    def key(self) -> str:
        return self._key

    @property
    def schema(self) -> ColumnSchema:
        """Current descriptor of the column."""
        return self._table._current.columns[self._key]

    @property
    def name(self) -> str:
        return self.schema.name

    def _update(self, **changes: Any) -> "ColumnBuilder":
        column = self.schema.model_copy(update=changes)
        self._table._current.columns[self._key] = column
        return self

    def set_type(
        self,
        abstract: str,
        size: int = 0,
        precision: int = 0,
        scale: int = 0,
        enum_values: tuple[str, ...] = (),
    ) -> "ColumnBuilder":
        """Set the abstract type, replacing size, precision, scale and enum values."""
        abstract = resolve_type(abstract)
        changes: dict[str, Any] = {
            "type": abstract,
            "size": size,
            "precision": precision,
            "scale": scale,
            "enum_values": tuple(enum_values),
        }
        if abstract in ("primary", "big_primary"):
            changes["nullable"] = False
            changes["default"] = None
            if not self._table._current.primary_keys:
                self._table.set_primary_keys(self.name)
        return self._update(**changes)

    # ------------------------------------------------------------------
    # Types
    # ------------------------------------------------------------------

    def primary(self) -> "ColumnBuilder":
        """Auto-incrementing integer; becomes the primary key if none is set."""
        return self.set_type("primary")

    def big_primary(self) -> "ColumnBuilder":
        return self.set_type("big_primary")

    def boolean(self) -> "ColumnBuilder":
        return self.set_type("boolean")

    def integer(self) -> "ColumnBuilder":
        return self.set_type("integer")

    def tiny_integer(self) -> "ColumnBuilder":
        return self.set_type("tiny_integer")

    def big_integer(self) -> "ColumnBuilder":
        return self.set_type("big_integer")

    def string(self, size: int = 255) -> "ColumnBuilder":
        return self.set_type("string", size=size)

    def text(self) -> "ColumnBuilder":
        return self.set_type("text")

    def tiny_text(self) -> "ColumnBuilder":
        return self.set_type("tiny_text")

    def long_text(self) -> "ColumnBuilder":
        return self.set_type("long_text")

    def double(self) -> "ColumnBuilder":
        return self.set_type("double")

    def real(self) -> "ColumnBuilder":
        """Single precision float (abstract type ``float``)."""
        return self.set_type("float")

    def decimal(self, precision: int, scale: int = 0) -> "ColumnBuilder":
        return self.set_type("decimal", precision=precision, scale=scale)

    def datetime(self) -> "ColumnBuilder":
        return self.set_type("datetime")

    def date(self) -> "ColumnBuilder":
        return self.set_type("date")

    def time(self) -> "ColumnBuilder":
        return self.set_type("time")

    def timestamp(self) -> "ColumnBuilder":
        return self.set_type("timestamp")

    def binary(self) -> "ColumnBuilder":
        return self.set_type("binary")

    def tiny_binary(self) -> "ColumnBuilder":
        return self.set_type("tiny_binary")

    def long_binary(self) -> "ColumnBuilder":
        return self.set_type("long_binary")

    def json(self) -> "ColumnBuilder":
        return self.set_type("json")

    def enum(self, values: list[str] | tuple[str, ...]) -> "ColumnBuilder":
        """Column restricted to *values*; sized to the longest value."""
        values = tuple(str(v) for v in values)
        size = max((len(v) for v in values), default=0)
        return self.set_type("enum", size=size, enum_values=values)

    # ------------------------------------------------------------------
    # Modifiers
    # ------------------------------------------------------------------

    def nullable(self, nullable: bool = True) -> "ColumnBuilder":
        return self._update(nullable=nullable)

    def default(self, value: Any) -> "ColumnBuilder":
        """Set the default; wrap raw SQL in ``SqlExpression`` or pass ``None`` to drop it."""
        return self._update(default=value)

    def default_now(self) -> "ColumnBuilder":
        """Default to the current timestamp evaluated by the database."""
        return self._update(default=SqlExpression(sql="CURRENT_TIMESTAMP"))

    def size(self, size: int) -> "ColumnBuilder":
        return self._update(size=size)


class IndexBuilder:
    """Declares uniqueness of one index."""

    def __init__(self, table: "Table", key: str):
        self._table = table
        self._key = key

    @property
    def key(self) -> str:
        return self._key

    @property
    def schema(self) -> IndexSchema:
        return self._table._current.indexes[self._key]

    @property
    def name(self) -> str:
        return self.schema.name

    def unique(self, unique: bool = True) -> "IndexBuilder":
        index = self.schema.model_copy(update={"unique": unique})
        self._table._current.indexes[self._key] = index
        return self


class ForeignKeyBuilder:
    """Declares the target and the rules of one foreign key."""

    def __init__(self, table: "Table", key: str):
        self._table = table
        self._key = key

    @property
    def key(self) -> str:
        return self._key

    @property
    def schema(self) -> ForeignKeySchema:
        return self._table._current.foreign_keys[self._key]

    @property
    def name(self) -> str:
        return self.schema.name

    def _update(self, **changes: Any) -> "ForeignKeyBuilder":
        # Validate through the model so rule names are checked and upper-cased
        data = self.schema.model_dump()
        data.update(changes)
        self._table._current.foreign_keys[self._key] = ForeignKeySchema(**data)
        return self

    def references(self, table: str, key: str = "id") -> "ForeignKeyBuilder":
        """Point at ``table.key``; the table name gets this table's prefix."""
        return self._update(foreign_table=self._table.prefix + table, foreign_key=key)

    def on_delete(self, rule: str = "NO ACTION") -> "ForeignKeyBuilder":
        return self._update(on_delete=rule)

    def on_update(self, rule: str = "NO ACTION") -> "ForeignKeyBuilder":
        return self._update(on_update=rule)
