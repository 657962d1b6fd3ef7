"""Pydantic models for table structure and schema differences.

This module contains schema-domain models:
- Descriptor models: ColumnSchema, IndexSchema, ForeignKeySchema
- Table state: TableState
- Diff result: DiffResult

Descriptors are frozen value objects.  Builders in
db_sync.schema.builders replace them with modified copies instead of
mutating them in place, so a cloned TableState never observes changes
made to another one.
"""

import hashlib
import uuid
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from db_sync.schema.exceptions import SchemaError

# ============================================================================
# Abstract Types
# ============================================================================

ABSTRACT_TYPES: tuple[str, ...] = (
    "primary",
    "big_primary",
    "enum",
    "boolean",
    "integer",
    "tiny_integer",
    "big_integer",
    "string",
    "text",
    "tiny_text",
    "long_text",
    "double",
    "float",
    "decimal",
    "datetime",
    "date",
    "time",
    "timestamp",
    "binary",
    "tiny_binary",
    "long_binary",
    "json",
)

TYPE_ALIASES: dict[str, str] = {
    "int": "integer",
    "bigint": "big_integer",
    "incremental": "primary",
    "big_incremental": "big_primary",
    "bool": "boolean",
    "blob": "binary",
}

PRIMARY_TYPES = frozenset({"primary", "big_primary"})
INTEGER_TYPES = frozenset({"primary", "big_primary", "integer", "tiny_integer", "big_integer"})
REAL_TYPES = frozenset({"double", "float", "decimal"})
DATETIME_TYPES = frozenset({"datetime", "date", "time", "timestamp"})
BINARY_TYPES = frozenset({"binary", "tiny_binary", "long_binary"})

FOREIGN_RULES = frozenset({"NO ACTION", "RESTRICT", "CASCADE", "SET NULL", "SET DEFAULT"})

EPOCH = datetime(1970, 1, 1)


def resolve_type(abstract: str) -> str:
    """Resolve a type alias into its abstract type.

    Raises:
        SchemaError: If the type is not a known abstract type or alias.
    """
    abstract = TYPE_ALIASES.get(abstract, abstract)
    if abstract not in ABSTRACT_TYPES:
        raise SchemaError(f"Undefined abstract type '{abstract}'")
    return abstract


def make_identifier(table: str, kind: str, columns: list[str], max_length: int = 64) -> str:
    """Generate a unique element name for a table.

    Names look like ``{table}_{kind}_{columns}_{uniqueid}``.  Names longer
    than *max_length* are replaced by their md5 digest.

    Example:
        >>> make_identifier("users", "index", ["email"]).startswith("users_index_email_")
        True
    """
    name = f"{table}_{kind}_{'_'.join(columns)}_{uuid.uuid4().hex[:13]}"
    if len(name) > max_length:
        name = hashlib.md5(name.encode()).hexdigest()
    return name


# ============================================================================
# Descriptor Models
# ============================================================================


class SqlExpression(BaseModel):
    """Default value evaluated by the database (e.g. ``CURRENT_TIMESTAMP``).

    Rendered verbatim.  Never equal to a literal value, two expressions are
    equal when their SQL text matches case-insensitively.

    Example:
        >>> SqlExpression(sql="now()") == SqlExpression(sql="NOW()")
        True
    """

    model_config = ConfigDict(frozen=True)

    sql: str

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SqlExpression):
            return False
        return self.sql.strip().lower() == other.sql.strip().lower()

    def __hash__(self) -> int:
        return hash(self.sql.strip().lower())

    def __str__(self) -> str:
        return self.sql


class ColumnSchema(BaseModel):
    """Schema for a table column.

    New columns start NOT NULL and untyped until a type is set.

    Example:
        >>> col = ColumnSchema(name="email", type="string", size=255)
        >>> col.nullable
        False
        >>> col.synthetic_default()
        ''
    """

    model_config = ConfigDict(frozen=True)

    name: str
    type: str = ""
    size: int = 0
    precision: int = 0
    scale: int = 0
    nullable: bool = False
    default: Any = None
    enum_values: tuple[str, ...] = ()

    @property
    def python_type(self) -> str:
        """Python type category used to cast default values."""
        if self.type in INTEGER_TYPES:
            return "int"
        if self.type in REAL_TYPES:
            return "float"
        if self.type == "boolean":
            return "bool"
        return "str"

    @property
    def is_primary(self) -> bool:
        """True for auto-incrementing primary key types."""
        return self.type in PRIMARY_TYPES

    @property
    def has_default(self) -> bool:
        return self.default is not None

    def normalized_default(self) -> Any:
        """Return the default value cast according to the abstract type."""
        value = self.default
        if value is None or isinstance(value, SqlExpression):
            return value

        if self.type in DATETIME_TYPES:
            return _normalize_datetime(self.type, value)
        if self.type in BINARY_TYPES and isinstance(value, (bytes, bytearray)):
            return bytes(value).decode("utf-8", errors="surrogateescape")

        kind = self.python_type
        if kind == "int":
            return int(value)
        if kind == "float":
            return float(value)
        if kind == "bool":
            if isinstance(value, str):
                return value.strip().lower() not in ("false", "f", "0", "")
            return bool(value)
        return str(value)

    def synthetic_default(self) -> Any:
        """Default value which keeps existing rows valid for a NOT NULL column.

        Returns ``None`` for primary key types, which never carry a default.
        """
        if self.is_primary:
            return None
        if self.type in ("datetime", "timestamp"):
            return EPOCH
        if self.type == "date":
            return EPOCH.date()
        if self.type == "time":
            return time(0, 0)
        if self.type == "enum":
            return self.enum_values[0] if self.enum_values else ""
        if self.type == "json":
            return "{}"

        kind = self.python_type
        if kind == "int":
            return 0
        if kind == "float":
            return 0.0
        if kind == "bool":
            return False
        return ""

    def compare(self, initial: "ColumnSchema") -> bool:
        """True when both columns describe the same structure.

        Default values are compared after type casting, so ``"0"`` read from
        the catalog matches a declared ``0``.
        """
        if self == initial:
            return True

        for field in ("name", "type", "size", "precision", "scale", "nullable", "enum_values"):
            if getattr(self, field) != getattr(initial, field):
                return False

        try:
            return self.normalized_default() == initial.normalized_default()
        except (TypeError, ValueError):
            return self.default == initial.default


class IndexSchema(BaseModel):
    """Schema for a table index.

    Example:
        >>> IndexSchema(name="a", columns=("email",)).compare(IndexSchema(name="b", columns=("email",)))
        True
    """

    model_config = ConfigDict(frozen=True)

    name: str
    columns: tuple[str, ...] = ()
    unique: bool = False

    def compare(self, initial: "IndexSchema") -> bool:
        """True when both indexes cover the same columns with the same uniqueness."""
        return self.columns == initial.columns and self.unique == initial.unique


class ForeignKeySchema(BaseModel):
    """Schema for a foreign key constraint."""

    model_config = ConfigDict(frozen=True)

    name: str
    column: str
    foreign_table: str = ""
    foreign_key: str = "id"
    on_delete: str = "NO ACTION"
    on_update: str = "NO ACTION"

    @field_validator("on_delete", "on_update")
    @classmethod
    def _check_rule(cls, value: str) -> str:
        rule = value.strip().upper()
        if rule not in FOREIGN_RULES:
            raise ValueError(f"Unsupported foreign key rule '{value}'")
        return rule

    def compare(self, initial: "ForeignKeySchema") -> bool:
        """Structural comparison of everything but the constraint name."""
        return (
            self.column == initial.column
            and self.foreign_table == initial.foreign_table
            and self.foreign_key == initial.foreign_key
            and self.on_delete == initial.on_delete
            and self.on_update == initial.on_update
        )


# ============================================================================
# Table State
# ============================================================================


class TableState(BaseModel):
    """Structure of one table at a point in time.

    Element dicts are keyed by identity key: the name an element had when it
    entered the state.  A renamed column keeps its key until ``remount()``,
    which lets the comparator report it as altered instead of dropped and
    re-added.
    """

    name: str
    primary_keys: list[str] = Field(default_factory=list)
    columns: dict[str, ColumnSchema] = Field(default_factory=dict)
    indexes: dict[str, IndexSchema] = Field(default_factory=dict)
    foreign_keys: dict[str, ForeignKeySchema] = Field(default_factory=dict)

    def clone(self) -> "TableState":
        """Independent copy (descriptors are immutable, containers are not)."""
        return self.model_copy(deep=True)

    def remount(self) -> "TableState":
        """Copy with every element re-keyed by its current name."""
        return TableState(
            name=self.name,
            primary_keys=list(self.primary_keys),
            columns={c.name: c for c in self.columns.values()},
            indexes={i.name: i for i in self.indexes.values()},
            foreign_keys={f.name: f for f in self.foreign_keys.values()},
        )

    def find_column(self, name: str) -> str | None:
        """Identity key of the column currently named *name*."""
        for key, column in self.columns.items():
            if column.name == name:
                return key
        return None

    def find_index(self, columns: list[str] | tuple[str, ...]) -> str | None:
        """Identity key of the index covering exactly *columns*."""
        columns = tuple(columns)
        for key, index in self.indexes.items():
            if index.columns == columns:
                return key
        return None

    def find_foreign(self, column: str) -> str | None:
        """Identity key of the foreign key declared on *column*."""
        for key, foreign in self.foreign_keys.items():
            if foreign.column == column:
                return key
        return None


# ============================================================================
# Diff Result
# ============================================================================


class DiffResult(BaseModel):
    """Difference between an initial and a current TableState.

    Altered entries are ``(current, initial)`` pairs.

    Example:
        >>> DiffResult(table="users").has_changes()
        False
    """

    table: str
    added_columns: list[ColumnSchema] = Field(default_factory=list)
    dropped_columns: list[ColumnSchema] = Field(default_factory=list)
    altered_columns: list[tuple[ColumnSchema, ColumnSchema]] = Field(default_factory=list)
    added_indexes: list[IndexSchema] = Field(default_factory=list)
    dropped_indexes: list[IndexSchema] = Field(default_factory=list)
    altered_indexes: list[tuple[IndexSchema, IndexSchema]] = Field(default_factory=list)
    added_foreign_keys: list[ForeignKeySchema] = Field(default_factory=list)
    dropped_foreign_keys: list[ForeignKeySchema] = Field(default_factory=list)
    altered_foreign_keys: list[tuple[ForeignKeySchema, ForeignKeySchema]] = Field(
        default_factory=list
    )
    primary_changed: bool = False
    renamed: bool = False

    @property
    def change_count(self) -> int:
        """Number of element-level changes."""
        return sum(
            len(group)
            for group in (
                self.added_columns,
                self.dropped_columns,
                self.altered_columns,
                self.added_indexes,
                self.dropped_indexes,
                self.altered_indexes,
                self.added_foreign_keys,
                self.dropped_foreign_keys,
                self.altered_foreign_keys,
            )
        )

    def has_changes(self) -> bool:
        """True if any element changed, the primary key differs or the table was renamed."""
        return self.change_count > 0 or self.primary_changed or self.renamed

    def format_report(self) -> str:
        """Format the difference as a human-readable report."""
        if not self.has_changes():
            return f"Table '{self.table}' is in sync"

        lines = [f"Table '{self.table}' has {self.change_count} change(s):"]

        if self.renamed:
            lines.append("  Table renamed")
        if self.primary_changed:
            lines.append("  Primary key changed (not supported)")

        sections = (
            ("Added columns", [c.name for c in self.added_columns]),
            ("Dropped columns", [c.name for c in self.dropped_columns]),
            ("Altered columns", [_pair_name(p) for p in self.altered_columns]),
            ("Added indexes", [_index_label(i) for i in self.added_indexes]),
            ("Dropped indexes", [_index_label(i) for i in self.dropped_indexes]),
            ("Altered indexes", [_pair_name(p) for p in self.altered_indexes]),
            ("Added foreign keys", [_foreign_label(f) for f in self.added_foreign_keys]),
            ("Dropped foreign keys", [_foreign_label(f) for f in self.dropped_foreign_keys]),
            ("Altered foreign keys", [_pair_name(p) for p in self.altered_foreign_keys]),
        )
        for title, names in sections:
            if names:
                lines.append(f"\n  {title} ({len(names)}):")
                for name in names:
                    lines.append(f"    - {name}")

        return "\n".join(lines)


def _pair_name(pair: tuple[Any, Any]) -> str:
    current, initial = pair
    if current.name != initial.name:
        return f"{initial.name} -> {current.name}"
    return current.name


def _index_label(index: IndexSchema) -> str:
    kind = "unique " if index.unique else ""
    return f"{kind}({', '.join(index.columns)})"


def _foreign_label(foreign: ForeignKeySchema) -> str:
    return f"{foreign.column} -> {foreign.foreign_table}.{foreign.foreign_key}"


def _normalize_datetime(abstract: str, value: Any) -> Any:
    """Cast a date/time default into a comparable python value."""
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        parsed: Any = (
            datetime.fromtimestamp(float(value), tz=timezone.utc).replace(tzinfo=None)
            if value
            else EPOCH
        )
    elif isinstance(value, str):
        text = value.strip()
        if abstract == "time":
            return time.fromisoformat(text)
        parsed = datetime.fromisoformat(text)
    else:
        parsed = value

    if abstract == "date":
        return parsed.date() if isinstance(parsed, datetime) else parsed
    if abstract == "time":
        return parsed.time() if isinstance(parsed, datetime) else parsed
    if isinstance(parsed, date) and not isinstance(parsed, datetime):
        return datetime(parsed.year, parsed.month, parsed.day)
    if isinstance(parsed, datetime) and parsed.tzinfo is not None:
        return parsed.replace(tzinfo=None)
    return parsed
