"""Dialect protocol and ANSI-flavoured base implementation.

A dialect turns descriptors into DDL statements.  The handler in
``db_sync.schema.handler`` calls a dialect for every statement it runs and
never builds SQL itself, so supporting another DBMS means supplying another
``DialectOps`` implementation.

Usage:
    from db_sync.dialects.base import GenericDialect

    dialect = GenericDialect()
    dialect.create_column("users", ColumnSchema(name="bio", type="text", nullable=True))
    # ['ALTER TABLE "users" ADD COLUMN "bio" TEXT NULL']
"""

from datetime import date, datetime, time
from typing import Any, Protocol

from db_sync.schema.exceptions import AlterNotSupportedError
from db_sync.schema.models import (
    ColumnSchema,
    ForeignKeySchema,
    IndexSchema,
    SqlExpression,
    TableState,
    resolve_type,
)


class DialectOps(Protocol):
    """Statement generation interface injected into the schema handler.

    Every method returning statements returns a list; a list may be empty
    when the database needs nothing for the requested change.
    """

    name: str
    identifier_limit: int

    def quote_identifier(self, name: str) -> str:
        """Quote a table, column, index or constraint name."""
        ...

    def normalize_column(self, column: ColumnSchema) -> ColumnSchema:
        """Map a declared column onto the form this database reflects back."""
        ...

    def create_table(self, state: TableState) -> list[str]:
        """CREATE TABLE with columns, primary key and foreign keys (no indexes)."""
        ...

    def drop_table(self, name: str) -> list[str]:
        ...

    def rename_table(self, name: str, new_name: str) -> list[str]:
        ...

    def create_column(self, table: str, column: ColumnSchema) -> list[str]:
        ...

    def drop_column(self, table: str, column: ColumnSchema) -> list[str]:
        ...

    def alter_column(self, table: str, initial: ColumnSchema, current: ColumnSchema) -> list[str]:
        """Statements turning *initial* into *current*.

        Raises:
            AlterNotSupportedError: If the dialect cannot alter columns.
        """
        ...

    def create_index(self, table: str, index: IndexSchema) -> list[str]:
        ...

    def drop_index(self, table: str, index: IndexSchema) -> list[str]:
        ...

    def alter_index(self, table: str, initial: IndexSchema, current: IndexSchema) -> list[str]:
        ...

    def create_foreign(self, table: str, foreign: ForeignKeySchema) -> list[str]:
        ...

    def drop_foreign(self, table: str, foreign: ForeignKeySchema) -> list[str]:
        ...

    def alter_foreign(
        self, table: str, initial: ForeignKeySchema, current: ForeignKeySchema
    ) -> list[str]:
        ...


class GenericDialect:
    """Portable statements with ANSI double-quote identifiers.

    Columns cannot be altered in place: there is no portable syntax for it, so
    ``alter_column`` raises ``AlterNotSupportedError``.  Index and foreign key
    changes are applied as drop followed by create.
    """

    name = "generic"
    identifier_limit = 64
    quote_char = '"'

    TYPE_MAP: dict[str, str] = {
        "primary": "INTEGER",
        "big_primary": "BIGINT",
        "boolean": "BOOLEAN",
        "integer": "INTEGER",
        "tiny_integer": "SMALLINT",
        "big_integer": "BIGINT",
        "string": "VARCHAR",
        "text": "TEXT",
        "tiny_text": "TEXT",
        "long_text": "TEXT",
        "double": "DOUBLE PRECISION",
        "float": "REAL",
        "decimal": "DECIMAL",
        "datetime": "TIMESTAMP",
        "date": "DATE",
        "time": "TIME",
        "timestamp": "TIMESTAMP",
        "binary": "BLOB",
        "tiny_binary": "BLOB",
        "long_binary": "BLOB",
        "json": "TEXT",
        "enum": "VARCHAR",
    }

    # Abstract types this database stores under another abstract type
    TYPE_EQUIVALENTS: dict[str, str] = {}

    # ------------------------------------------------------------------
    # Rendering helpers
    # ------------------------------------------------------------------

    def quote_identifier(self, name: str) -> str:
        q = self.quote_char
        return f"{q}{name.replace(q, q + q)}{q}"

    def quote_value(self, value: str) -> str:
        return "'" + str(value).replace("'", "''") + "'"

    def normalize_column(self, column: ColumnSchema) -> ColumnSchema:
        """Resolve aliases and collapse types the database stores identically."""
        if not column.type:
            return column
        abstract = resolve_type(column.type)
        abstract = self.TYPE_EQUIVALENTS.get(abstract, abstract)
        if abstract != column.type:
            column = column.model_copy(update={"type": abstract})
        return column

    def type_sql(self, column: ColumnSchema) -> str:
        """Native type of a column, including size or precision."""
        base = self.TYPE_MAP[resolve_type(column.type)]
        if column.type in ("string", "enum"):
            return f"{base}({column.size or 255})"
        if column.type == "decimal":
            return f"{base}({column.precision}, {column.scale})"
        return base

    def default_sql(self, column: ColumnSchema) -> str:
        """Render the column default as a SQL literal or expression."""
        value = column.default
        if isinstance(value, SqlExpression):
            return value.sql
        value = column.normalized_default()
        return self.literal(value)

    def literal(self, value: Any) -> str:
        if isinstance(value, bool):
            return "TRUE" if value else "FALSE"
        if isinstance(value, (int, float)):
            return str(value)
        if isinstance(value, datetime):
            return self.quote_value(value.strftime("%Y-%m-%d %H:%M:%S"))
        if isinstance(value, (date, time)):
            return self.quote_value(value.isoformat())
        return self.quote_value(value)

    def column_definition(self, table: str, column: ColumnSchema) -> str:
        """``name TYPE [NOT] NULL [DEFAULT x]`` fragment used by CREATE and ADD."""
        parts = [self.quote_identifier(column.name), self.type_sql(column)]
        parts.append("NULL" if column.nullable else "NOT NULL")
        if column.default is not None and not column.is_primary:
            parts.append(f"DEFAULT {self.default_sql(column)}")
        statement = " ".join(parts)

        if column.type == "enum":
            check = self.enum_check(table, column)
            if check:
                statement += " " + check
        return statement

    def enum_check(self, table: str, column: ColumnSchema) -> str:
        values = ", ".join(self.quote_value(v) for v in column.enum_values)
        return f"CHECK ({self.quote_identifier(column.name)} IN ({values}))"

    def foreign_definition(self, foreign: ForeignKeySchema) -> str:
        return (
            f"CONSTRAINT {self.quote_identifier(foreign.name)} "
            f"FOREIGN KEY ({self.quote_identifier(foreign.column)}) "
            f"REFERENCES {self.quote_identifier(foreign.foreign_table)} "
            f"({self.quote_identifier(foreign.foreign_key)}) "
            f"ON DELETE {foreign.on_delete} ON UPDATE {foreign.on_update}"
        )

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def create_table(self, state: TableState) -> list[str]:
        inner = [self.column_definition(state.name, c) for c in state.columns.values()]
        if state.primary_keys:
            keys = ", ".join(self.quote_identifier(k) for k in state.primary_keys)
            inner.append(f"PRIMARY KEY ({keys})")
        for foreign in state.foreign_keys.values():
            inner.append(self.foreign_definition(foreign))

        body = ",\n    ".join(inner)
        return [f"CREATE TABLE {self.quote_identifier(state.name)} (\n    {body}\n)"]

    def drop_table(self, name: str) -> list[str]:
        return [f"DROP TABLE {self.quote_identifier(name)}"]

    def rename_table(self, name: str, new_name: str) -> list[str]:
        return [
            f"ALTER TABLE {self.quote_identifier(name)} "
            f"RENAME TO {self.quote_identifier(new_name)}"
        ]

    # ------------------------------------------------------------------
    # Columns
    # ------------------------------------------------------------------

    def create_column(self, table: str, column: ColumnSchema) -> list[str]:
        return [
            f"ALTER TABLE {self.quote_identifier(table)} "
            f"ADD COLUMN {self.column_definition(table, column)}"
        ]

    def drop_column(self, table: str, column: ColumnSchema) -> list[str]:
        return [
            f"ALTER TABLE {self.quote_identifier(table)} "
            f"DROP COLUMN {self.quote_identifier(column.name)}"
        ]

    def alter_column(self, table: str, initial: ColumnSchema, current: ColumnSchema) -> list[str]:
        raise AlterNotSupportedError(
            f"Dialect '{self.name}' cannot alter column '{initial.name}' of '{table}'"
        )

    # ------------------------------------------------------------------
    # Indexes
    # ------------------------------------------------------------------

    def create_index(self, table: str, index: IndexSchema) -> list[str]:
        kind = "UNIQUE INDEX" if index.unique else "INDEX"
        columns = ", ".join(self.quote_identifier(c) for c in index.columns)
        return [
            f"CREATE {kind} {self.quote_identifier(index.name)} "
            f"ON {self.quote_identifier(table)} ({columns})"
        ]

    def drop_index(self, table: str, index: IndexSchema) -> list[str]:
        return [f"DROP INDEX {self.quote_identifier(index.name)}"]

    def alter_index(self, table: str, initial: IndexSchema, current: IndexSchema) -> list[str]:
        return self.drop_index(table, initial) + self.create_index(table, current)

    # ------------------------------------------------------------------
    # Foreign keys
    # ------------------------------------------------------------------

    def create_foreign(self, table: str, foreign: ForeignKeySchema) -> list[str]:
        return [f"ALTER TABLE {self.quote_identifier(table)} ADD {self.foreign_definition(foreign)}"]

    def drop_foreign(self, table: str, foreign: ForeignKeySchema) -> list[str]:
        return [
            f"ALTER TABLE {self.quote_identifier(table)} "
            f"DROP CONSTRAINT {self.quote_identifier(foreign.name)}"
        ]

    def alter_foreign(
        self, table: str, initial: ForeignKeySchema, current: ForeignKeySchema
    ) -> list[str]:
        return self.drop_foreign(table, initial) + self.create_foreign(table, current)
