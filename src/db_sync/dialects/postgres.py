"""PostgreSQL dialect.

Enums are stored as ``character varying(n)`` guarded by a named CHECK
constraint (``{table}_{column}_enum``), so they can be reflected and altered
without creating PostgreSQL enum types.
"""

import hashlib

from db_sync.dialects.base import GenericDialect
from db_sync.schema.models import ColumnSchema, IndexSchema


class PostgresDialect(GenericDialect):
    """PostgreSQL statements with native ``ALTER COLUMN`` support."""

    name = "postgres"
    identifier_limit = 63

    DATETIME_NOW = "now()"

    TYPE_MAP: dict[str, str] = {
        "primary": "serial",
        "big_primary": "bigserial",
        "boolean": "boolean",
        "integer": "integer",
        "tiny_integer": "smallint",
        "big_integer": "bigint",
        "string": "character varying",
        "text": "text",
        "tiny_text": "text",
        "long_text": "text",
        "double": "double precision",
        "float": "real",
        "decimal": "numeric",
        "datetime": "timestamp without time zone",
        "date": "date",
        "time": "time without time zone",
        "timestamp": "timestamp without time zone",
        "binary": "bytea",
        "tiny_binary": "bytea",
        "long_binary": "bytea",
        "json": "text",
        "enum": "character varying",
    }

    TYPE_EQUIVALENTS: dict[str, str] = {
        "tiny_text": "text",
        "long_text": "text",
        "json": "text",
        "tiny_binary": "binary",
        "long_binary": "binary",
        "datetime": "timestamp",
    }

    def normalize_column(self, column: ColumnSchema) -> ColumnSchema:
        column = super().normalize_column(column)
        if column.type == "enum" and column.enum_values:
            size = max(len(v) for v in column.enum_values)
            if size != column.size:
                column = column.model_copy(update={"size": size})
        return column

    def enum_constraint(self, table: str, column: str) -> str:
        name = f"{table}_{column}_enum"
        if len(name) > self.identifier_limit:
            name = hashlib.md5(name.encode()).hexdigest()
        return name

    def enum_check(self, table: str, column: ColumnSchema) -> str:
        constraint = self.quote_identifier(self.enum_constraint(table, column.name))
        return f"CONSTRAINT {constraint} {super().enum_check(table, column)}"

    def drop_column(self, table: str, column: ColumnSchema) -> list[str]:
        statements = []
        if column.type == "enum":
            constraint = self.quote_identifier(self.enum_constraint(table, column.name))
            statements.append(
                f"ALTER TABLE {self.quote_identifier(table)} DROP CONSTRAINT IF EXISTS {constraint}"
            )
        return statements + super().drop_column(table, column)

    def alter_column(self, table: str, initial: ColumnSchema, current: ColumnSchema) -> list[str]:
        """Rename, retype, default and nullability changes for one column.

        Example:
            >>> PostgresDialect().alter_column(
            ...     "users",
            ...     ColumnSchema(name="age", type="string", size=3, nullable=True),
            ...     ColumnSchema(name="age", type="integer", nullable=True),
            ... )
            ['ALTER TABLE "users" ALTER COLUMN "age" TYPE integer USING "age"::integer']
        """
        statements: list[str] = []
        quoted_table = self.quote_identifier(table)

        if initial.name != current.name:
            statements.append(
                f"ALTER TABLE {quoted_table} RENAME COLUMN "
                f"{self.quote_identifier(initial.name)} TO {self.quote_identifier(current.name)}"
            )

        identifier = self.quote_identifier(current.name)
        operations: list[str] = []

        enum_changed = initial.type == "enum" and (
            current.type != "enum"
            or current.enum_values != initial.enum_values
            or current.name != initial.name
        )
        if enum_changed:
            constraint = self.quote_identifier(self.enum_constraint(table, initial.name))
            operations.append(f"DROP CONSTRAINT IF EXISTS {constraint}")

        current_type = (self.type_sql(current), current.size, current.precision, current.scale)
        initial_type = (self.type_sql(initial), initial.size, initial.precision, initial.scale)
        if current_type != initial_type:
            native = self.type_sql(current)
            operations.append(
                f"ALTER COLUMN {identifier} TYPE {native} USING {identifier}::{native}"
            )

        if not _same_default(initial, current):
            if current.default is None:
                operations.append(f"ALTER COLUMN {identifier} DROP DEFAULT")
            else:
                operations.append(f"ALTER COLUMN {identifier} SET DEFAULT {self.default_sql(current)}")

        if initial.nullable != current.nullable:
            action = "DROP" if current.nullable else "SET"
            operations.append(f"ALTER COLUMN {identifier} {action} NOT NULL")

        if current.type == "enum" and (initial.type != "enum" or enum_changed):
            operations.append(f"ADD {self.enum_check(table, current)}")

        if operations:
            statements.append(f"ALTER TABLE {quoted_table} {', '.join(operations)}")
        return statements

    def alter_index(self, table: str, initial: IndexSchema, current: IndexSchema) -> list[str]:
        if current.compare(initial) and current.name != initial.name:
            return [
                f"ALTER INDEX {self.quote_identifier(initial.name)} "
                f"RENAME TO {self.quote_identifier(current.name)}"
            ]
        return super().alter_index(table, initial, current)


def _same_default(initial: ColumnSchema, current: ColumnSchema) -> bool:
    try:
        return initial.normalized_default() == current.normalized_default()
    except (TypeError, ValueError):
        return initial.default == current.default
