"""MySQL dialect."""

from typing import Any

from db_sync.dialects.base import GenericDialect
from db_sync.schema.models import ColumnSchema, ForeignKeySchema, IndexSchema


class MySQLDialect(GenericDialect):
    """MySQL statements: backtick identifiers, ``CHANGE COLUMN`` alters, native enums."""

    name = "mysql"
    identifier_limit = 64
    quote_char = "`"

    DATETIME_NOW = "CURRENT_TIMESTAMP"

    TYPE_MAP: dict[str, str] = {
        "primary": "int(11)",
        "big_primary": "bigint(20)",
        "boolean": "tinyint(1)",
        "integer": "int(11)",
        "tiny_integer": "tinyint(4)",
        "big_integer": "bigint(20)",
        "string": "varchar",
        "text": "text",
        "tiny_text": "tinytext",
        "long_text": "longtext",
        "double": "double",
        "float": "float",
        "decimal": "decimal",
        "datetime": "datetime",
        "date": "date",
        "time": "time",
        "timestamp": "timestamp",
        "binary": "blob",
        "tiny_binary": "tinyblob",
        "long_binary": "longblob",
        "json": "text",
        "enum": "enum",
    }

    TYPE_EQUIVALENTS: dict[str, str] = {"json": "text"}

    # MySQL rejects literal defaults on these types
    FORBIDDEN_DEFAULTS = frozenset(
        {"text", "tiny_text", "long_text", "binary", "tiny_binary", "long_binary", "json"}
    )

    def type_sql(self, column: ColumnSchema) -> str:
        if column.type == "enum":
            values = ", ".join(self.quote_value(v) for v in column.enum_values)
            return f"enum({values})"
        return super().type_sql(column)

    def literal(self, value: Any) -> str:
        if isinstance(value, bool):
            return "1" if value else "0"
        return super().literal(value)

    def column_definition(self, table: str, column: ColumnSchema) -> str:
        if column.type in self.FORBIDDEN_DEFAULTS and column.default is not None:
            column = column.model_copy(update={"default": None})

        statement = super().column_definition(table, column)
        if column.is_primary:
            statement += " AUTO_INCREMENT"
        return statement

    def enum_check(self, table: str, column: ColumnSchema) -> str:
        return ""

    def alter_column(self, table: str, initial: ColumnSchema, current: ColumnSchema) -> list[str]:
        return [
            f"ALTER TABLE {self.quote_identifier(table)} "
            f"CHANGE COLUMN {self.quote_identifier(initial.name)} "
            f"{self.column_definition(table, current)}"
        ]

    def drop_index(self, table: str, index: IndexSchema) -> list[str]:
        return [
            f"DROP INDEX {self.quote_identifier(index.name)} ON {self.quote_identifier(table)}"
        ]

    def alter_index(self, table: str, initial: IndexSchema, current: IndexSchema) -> list[str]:
        if current.compare(initial) and current.name != initial.name:
            return [
                f"ALTER TABLE {self.quote_identifier(table)} "
                f"RENAME INDEX {self.quote_identifier(initial.name)} "
                f"TO {self.quote_identifier(current.name)}"
            ]
        return super().alter_index(table, initial, current)

    def drop_foreign(self, table: str, foreign: ForeignKeySchema) -> list[str]:
        return [
            f"ALTER TABLE {self.quote_identifier(table)} "
            f"DROP FOREIGN KEY {self.quote_identifier(foreign.name)}"
        ]
