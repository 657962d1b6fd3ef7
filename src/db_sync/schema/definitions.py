"""Declarative schema files: TOML table definitions rendered onto Tables.

A schema file declares every table with column type definitions written as
short strings::

    [tables.users]
    columns = { id = "primary", email = "string(255), not null", status = "enum(active, blocked)" }
    defaults = { status = "active" }
    indexes = [{ columns = ["email"], unique = true }]

    [tables.posts]
    columns = { id = "primary", user_id = "integer, not null", title = "string(64)" }
    foreign_keys = [{ column = "user_id", table = "users", on_delete = "CASCADE" }]

Columns are NULL unless the definition says ``not null`` (or ``notnull``).
NOT NULL columns without a declared default receive a type based default so
they can be added to tables which already hold rows.

Usage:
    definition = load_schema_definition("schema.toml")
    render_table(table, definition.tables["users"])
"""

import re
import tomllib
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, ValidationError

from db_sync.schema.builders import ColumnBuilder
from db_sync.schema.exceptions import DefinitionError, SchemaError
from db_sync.schema.models import resolve_type

if TYPE_CHECKING:
    from db_sync.schema.table import Table

_DEFINITION = re.compile(
    r"^\s*(?P<type>[a-z_]+)(?: *\((?P<options>[^\)]+)\))?(?: *, *(?P<notnull>not ?null))?",
    re.IGNORECASE,
)


# ============================================================================
# Definition Models
# ============================================================================


class IndexDef(BaseModel):
    """Index declared in a schema file."""

    columns: list[str]
    unique: bool = False


class ForeignKeyDef(BaseModel):
    """Foreign key declared in a schema file; ``table`` is unprefixed."""

    column: str
    table: str
    key: str = "id"
    on_delete: str = "NO ACTION"
    on_update: str = "NO ACTION"


class TableDef(BaseModel):
    """One table of a schema file."""

    columns: dict[str, str] = Field(default_factory=dict)
    defaults: dict[str, Any] = Field(default_factory=dict)
    primary_keys: list[str] = Field(default_factory=list)
    indexes: list[IndexDef] = Field(default_factory=list)
    foreign_keys: list[ForeignKeyDef] = Field(default_factory=list)


class SchemaDefinition(BaseModel):
    """Complete schema file: table definitions by unprefixed name."""

    tables: dict[str, TableDef] = Field(default_factory=dict)


def load_schema_definition(path: str | Path) -> SchemaDefinition:
    """Load a TOML schema file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is not valid TOML or has an invalid layout.
    """
    schema_path = Path(path)
    if not schema_path.exists():
        raise FileNotFoundError(f"Schema file not found: {schema_path}")

    try:
        with open(schema_path, "rb") as f:
            data = tomllib.load(f)
        return SchemaDefinition(**data)
    except (tomllib.TOMLDecodeError, ValidationError) as e:
        raise ValueError(f"Invalid schema file {schema_path.name}: {e}") from e


# ============================================================================
# Rendering
# ============================================================================


def declare_column(
    table: "Table",
    name: str,
    definition: str,
    has_default: bool = False,
    default: Any = None,
) -> ColumnBuilder:
    """Declare a column from its type definition string.

    Definitions look like ``type``, ``type(options)`` or
    ``type(options), not null``, e.g. ``"decimal(10, 2), not null"`` or
    ``"enum(active, pending, disabled)"``.

    Args:
        table: Table receiving the column.
        name: Column name.
        definition: Type definition string.
        has_default: True when the caller declared a default (even ``None``).
        default: Declared default value.

    Returns:
        Builder of the declared column.

    Raises:
        DefinitionError: If the definition cannot be parsed or names an
            unknown type.

    Example:
        >>> declare_column(table, "email", "string(64), not null").schema.default
        ''
    """
    match = _DEFINITION.match(definition)
    if not match:
        raise DefinitionError(f"Invalid column type definition in '{table.name}'.'{name}'")

    options: list[str] = []
    if match.group("options"):
        options = [option.strip() for option in match.group("options").split(",")]
    not_null = bool(match.group("notnull"))

    column = table.column(name).nullable(True)
    if not_null:
        column.nullable(False)

    _apply_type(table, column, match.group("type").lower(), options)

    if column.schema.is_primary:
        return column

    if not has_default and not column.schema.nullable:
        return column.default(column.schema.synthetic_default())

    if default is None and not not_null:
        column.nullable(True)

    return column.default(default)


def _apply_type(table: "Table", column: ColumnBuilder, type_name: str, options: list[str]) -> None:
    try:
        abstract = resolve_type(type_name)
    except SchemaError as e:
        raise DefinitionError(f"{e} in '{table.name}'.'{column.name}'") from e

    try:
        if abstract == "enum":
            if not options:
                raise DefinitionError(f"Enum column '{table.name}'.'{column.name}' has no values")
            column.enum(options)
        elif abstract == "string":
            column.string(int(options[0]) if options else 255)
        elif abstract == "decimal":
            if not options:
                raise DefinitionError(
                    f"Decimal column '{table.name}'.'{column.name}' requires a precision"
                )
            column.decimal(int(options[0]), int(options[1]) if len(options) > 1 else 0)
        else:
            if options:
                raise DefinitionError(
                    f"Type '{abstract}' of '{table.name}'.'{column.name}' takes no options"
                )
            column.set_type(abstract)
    except ValueError as e:
        raise DefinitionError(
            f"Invalid options {options} for '{table.name}'.'{column.name}': {e}"
        ) from e


def render_table(table: "Table", table_def: TableDef) -> "Table":
    """Declare every column, index and foreign key of *table_def* on *table*.

    Raises:
        DefinitionError: On a malformed column definition.
        SchemaError: If an index or foreign key names an undeclared column.
    """
    for name, definition in table_def.columns.items():
        declare_column(
            table,
            name,
            definition,
            has_default=name in table_def.defaults,
            default=table_def.defaults.get(name),
        )

    if table_def.primary_keys:
        table.set_primary_keys(*table_def.primary_keys)

    for index in table_def.indexes:
        table.index(*index.columns).unique(index.unique)

    for foreign in table_def.foreign_keys:
        (
            table.foreign(foreign.column)
            .references(foreign.table, foreign.key)
            .on_delete(foreign.on_delete)
            .on_update(foreign.on_update)
        )

    return table
