"""PostgreSQL schema reflection via information_schema and pg_catalog.

Reads the live structure of tables into ``TableState`` values:
- columns with abstract types, size/precision/scale, nullability, defaults
- enum columns emulated with a CHECK constraint
- primary keys
- indexes (name, columns, uniqueness)
- foreign keys (column, target, rules)

Uses psycopg (v3) async connections.

Usage:
    async with SchemaIntrospector(database_url) as introspector:
        state = await introspector.reflect_table("users")
        states = await introspector.introspect()
"""

import logging
import re
from types import TracebackType
from typing import Any

import psycopg
from psycopg import AsyncConnection

from db_sync.schema.models import (
    ColumnSchema,
    ForeignKeySchema,
    IndexSchema,
    SqlExpression,
    TableState,
)

logger = logging.getLogger(__name__)

# PostgreSQL data_type -> abstract type
TYPE_MAP: dict[str, str] = {
    "smallint": "tiny_integer",
    "integer": "integer",
    "int": "integer",
    "int4": "integer",
    "bigint": "big_integer",
    "int8": "big_integer",
    "boolean": "boolean",
    "character varying": "string",
    "character": "string",
    "text": "text",
    "double precision": "double",
    "real": "float",
    "money": "float",
    "numeric": "decimal",
    "timestamp without time zone": "timestamp",
    "timestamp with time zone": "timestamp",
    "date": "date",
    "time without time zone": "time",
    "time with time zone": "time",
    "bytea": "binary",
    "json": "json",
    "jsonb": "json",
}

_BYTEA_DEFAULT = re.compile(r"^'\\x([0-9a-fA-F]*)'::bytea$")
_QUOTED_DEFAULT = re.compile(r"^'((?:[^']|'')*)'::[\w\s\"\[\]]+$", re.DOTALL)
_NUMERIC_DEFAULT = re.compile(r"^\(?(-?\d+(?:\.\d+)?)\)?(?:::[\w\s]+)?$")
_ENUM_VALUE = re.compile(r"'((?:[^']|'')*)'::")
# "col = ANY (ARRAY[...])" / "col IN (...)", or "col = 'x'" for a single value
_ENUM_LIST = re.compile(r"=\s*ANY\s*\(+ARRAY\[|\bIN\s*\(", re.IGNORECASE)
_ENUM_SINGLE = re.compile(
    r"^CHECK \(+\"?\w+\"?\)?(?:::[\w\s]+?)?\s*=\s*'(?:[^']|'')*'(?:::[\w\s]+)?\)+$"
)
_NOW_DEFAULTS = {"now()", "current_timestamp", "current_timestamp()"}


def parse_default(raw: str | None) -> Any:
    """Turn a catalog ``column_default`` into a python value.

    Example:
        >>> parse_default("'active'::character varying")
        'active'
        >>> parse_default("now()")
        SqlExpression(sql='now()')
        >>> parse_default("'\\\\x6f6b'::bytea")
        'ok'
    """
    if raw is None:
        return None

    text = raw.strip()
    if text.upper().startswith("NULL::") or text.upper() == "NULL":
        return None
    if text.lower() in _NOW_DEFAULTS:
        return SqlExpression(sql=text)

    # bytea defaults come back hex encoded, declared ones are text
    match = _BYTEA_DEFAULT.match(text)
    if match:
        return bytes.fromhex(match.group(1)).decode("utf-8", errors="surrogateescape")

    match = _QUOTED_DEFAULT.match(text)
    if match:
        return match.group(1).replace("''", "'")

    match = _NUMERIC_DEFAULT.match(text)
    if match:
        return match.group(1)

    if text.lower() in ("true", "false"):
        return text.lower() == "true"

    return SqlExpression(sql=text)


def parse_enum_values(definition: str) -> tuple[str, ...]:
    """Extract allowed values from a CHECK constraint definition.

    Example:
        >>> parse_enum_values(
        ...     "CHECK (((status)::text = ANY ((ARRAY['a'::character varying, "
        ...     "'b'::character varying])::text[])))"
        ... )
        ('a', 'b')

    Other checks comparing against literals are not enums:
        >>> parse_enum_values("CHECK (((code)::text <> ''::text))")
        ()
    """
    if not (_ENUM_LIST.search(definition) or _ENUM_SINGLE.match(definition)):
        return ()
    return tuple(v.replace("''", "'") for v in _ENUM_VALUE.findall(definition))


class SchemaIntrospector:
    """Reflects PostgreSQL tables into ``TableState`` values.

    Implements the ``SchemaReflector`` protocol.

    Args:
        database_url: PostgreSQL connection URL.
        excluded_tables: Table names skipped by ``get_table_names()`` and
            ``introspect()``; defaults to common system tables.
        schema_name: PostgreSQL schema to reflect (default: public).
        connect_timeout: Connection timeout in seconds.
    """

    DEFAULT_EXCLUDED_TABLES = frozenset(
        {
            "schema_migrations",
            "pg_stat_statements",
            "spatial_ref_sys",
        }
    )

    def __init__(
        self,
        database_url: str,
        excluded_tables: set[str] | None = None,
        schema_name: str = "public",
        connect_timeout: int = 10,
    ) -> None:
        self._database_url = database_url
        self._excluded_tables = (
            set(excluded_tables)
            if excluded_tables is not None
            else set(self.DEFAULT_EXCLUDED_TABLES)
        )
        self._schema_name = schema_name
        self._connect_timeout = connect_timeout
        self._conn: AsyncConnection | None = None

    async def __aenter__(self) -> "SchemaIntrospector":
        """Open the connection."""
        self._conn = await psycopg.AsyncConnection.connect(
            self._database_url,
            connect_timeout=self._connect_timeout,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Close the connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def test_connection(self) -> bool:
        """Run ``SELECT 1``.

        Raises:
            ConnectionError: If the query fails.
        """
        try:
            async with self._connection().cursor() as cur:
                await cur.execute("SELECT 1")
                row = await cur.fetchone()
                return row is not None and row[0] == 1
        except psycopg.Error as e:
            raise ConnectionError(f"Connection test failed: {e}") from e

    async def get_table_names(self) -> list[str]:
        """Names of all base tables, excluded tables omitted."""
        query = """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = %s
              AND table_type = 'BASE TABLE'
            ORDER BY table_name
        """
        rows = await self._fetch(query, (self._schema_name,))
        return [row[0] for row in rows if row[0] not in self._excluded_tables]

    async def introspect(self) -> dict[str, TableState]:
        """Reflect every table in the schema."""
        result: dict[str, TableState] = {}
        for name in await self.get_table_names():
            state = await self.reflect_table(name)
            if state is not None:
                result[name] = state
        return result

    async def reflect_table(self, name: str) -> TableState | None:
        """Reflect one table; ``None`` when it does not exist."""
        if not await self._table_exists(name):
            return None

        state = TableState(name=name)
        state.columns = await self._get_columns(name)
        state.primary_keys = await self._get_primary_keys(name)
        state.indexes = await self._get_indexes(name)
        state.foreign_keys = await self._get_foreign_keys(name)

        logger.debug(
            f"Reflected table '{name}': {len(state.columns)} columns, "
            f"{len(state.indexes)} indexes, {len(state.foreign_keys)} foreign keys"
        )
        return state

    # ------------------------------------------------------------------
    # Catalog queries
    # ------------------------------------------------------------------

    def _connection(self) -> AsyncConnection:
        if not self._conn:
            raise RuntimeError("Introspector not connected. Use async with statement.")
        return self._conn

    async def _fetch(self, query: str, params: tuple) -> list[tuple]:
        async with self._connection().cursor() as cur:
            await cur.execute(query, params)
            return await cur.fetchall()

    async def _table_exists(self, name: str) -> bool:
        query = """
            SELECT 1
            FROM information_schema.tables
            WHERE table_schema = %s
              AND table_name = %s
              AND table_type = 'BASE TABLE'
        """
        rows = await self._fetch(query, (self._schema_name, name))
        return bool(rows)

    async def _get_columns(self, table_name: str) -> dict[str, ColumnSchema]:
        query = """
            SELECT
                column_name,
                data_type,
                is_nullable,
                column_default,
                character_maximum_length,
                numeric_precision,
                numeric_scale
            FROM information_schema.columns
            WHERE table_schema = %s
              AND table_name = %s
            ORDER BY ordinal_position
        """
        rows = await self._fetch(query, (self._schema_name, table_name))
        enums = await self._get_enum_checks(table_name)

        columns: dict[str, ColumnSchema] = {}
        for row in rows:
            name, data_type, is_nullable, raw_default, max_length, precision, scale = row
            column = self._build_column(
                name,
                data_type,
                is_nullable == "YES",
                raw_default,
                max_length,
                precision,
                scale,
                enums.get(name, ()),
            )
            columns[name] = column
        return columns

    def _build_column(
        self,
        name: str,
        data_type: str,
        nullable: bool,
        raw_default: str | None,
        max_length: int | None,
        precision: int | None,
        scale: int | None,
        enum_values: tuple[str, ...],
    ) -> ColumnSchema:
        data_type = data_type.lower()

        # Serial columns are integers defaulting to a sequence
        if raw_default and raw_default.startswith("nextval(") and data_type in (
            "integer",
            "bigint",
        ):
            abstract = "big_primary" if data_type == "bigint" else "primary"
            return ColumnSchema(name=name, type=abstract, nullable=nullable)

        abstract = TYPE_MAP.get(data_type)
        if abstract is None:
            logger.debug(f"Unknown column type '{data_type}' for '{name}', reflected as text")
            abstract = "text"

        fields: dict[str, Any] = {"name": name, "type": abstract, "nullable": nullable}
        if abstract == "string" and max_length:
            fields["size"] = max_length
            if enum_values:
                fields["type"] = "enum"
                fields["enum_values"] = enum_values
        if abstract == "decimal":
            fields["precision"] = precision or 0
            fields["scale"] = scale or 0

        column = ColumnSchema(default=parse_default(raw_default), **fields)
        try:
            return column.model_copy(update={"default": column.normalized_default()})
        except (TypeError, ValueError):
            return column

    async def _get_enum_checks(self, table_name: str) -> dict[str, tuple[str, ...]]:
        """Single-column CHECK constraints listing allowed values, by column."""
        query = """
            SELECT
                att.attname,
                pg_get_constraintdef(con.oid)
            FROM pg_constraint con
            JOIN pg_class rel ON rel.oid = con.conrelid
            JOIN pg_namespace nsp ON nsp.oid = rel.relnamespace
            JOIN pg_attribute att ON att.attrelid = rel.oid AND att.attnum = con.conkey[1]
            WHERE con.contype = 'c'
              AND nsp.nspname = %s
              AND rel.relname = %s
              AND array_length(con.conkey, 1) = 1
        """
        rows = await self._fetch(query, (self._schema_name, table_name))

        checks: dict[str, tuple[str, ...]] = {}
        for column, definition in rows:
            values = parse_enum_values(definition)
            if values:
                checks[column] = values
        return checks

    async def _get_primary_keys(self, table_name: str) -> list[str]:
        query = """
            SELECT kcu.column_name
            FROM information_schema.table_constraints tc
            JOIN information_schema.key_column_usage kcu
                ON tc.constraint_name = kcu.constraint_name
                AND tc.table_schema = kcu.table_schema
            WHERE tc.constraint_type = 'PRIMARY KEY'
              AND tc.table_schema = %s
              AND tc.table_name = %s
            ORDER BY kcu.ordinal_position
        """
        rows = await self._fetch(query, (self._schema_name, table_name))
        return [row[0] for row in rows]

    async def _get_indexes(self, table_name: str) -> dict[str, IndexSchema]:
        """Indexes of a table, excluding the primary key."""
        query = """
            SELECT
                i.relname AS index_name,
                array_agg(a.attname ORDER BY x.ordinality) AS columns,
                ix.indisunique AS is_unique
            FROM pg_index ix
            JOIN pg_class t ON t.oid = ix.indrelid
            JOIN pg_class i ON i.oid = ix.indexrelid
            JOIN pg_namespace n ON n.oid = t.relnamespace
            JOIN LATERAL unnest(ix.indkey) WITH ORDINALITY AS x(attnum, ordinality) ON TRUE
            JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = x.attnum
            WHERE n.nspname = %s
              AND t.relname = %s
              AND NOT ix.indisprimary
            GROUP BY i.relname, ix.indisunique
            ORDER BY i.relname
        """
        rows = await self._fetch(query, (self._schema_name, table_name))

        indexes: dict[str, IndexSchema] = {}
        for name, columns, is_unique in rows:
            indexes[name] = IndexSchema(name=name, columns=tuple(columns), unique=is_unique)
        return indexes

    async def _get_foreign_keys(self, table_name: str) -> dict[str, ForeignKeySchema]:
        query = """
            SELECT
                tc.constraint_name,
                kcu.column_name,
                ccu.table_name AS references_table,
                ccu.column_name AS references_column,
                rc.delete_rule,
                rc.update_rule
            FROM information_schema.table_constraints tc
            JOIN information_schema.key_column_usage kcu
                ON tc.constraint_name = kcu.constraint_name
                AND tc.table_schema = kcu.table_schema
            JOIN information_schema.constraint_column_usage ccu
                ON tc.constraint_name = ccu.constraint_name
                AND tc.table_schema = ccu.constraint_schema
            JOIN information_schema.referential_constraints rc
                ON tc.constraint_name = rc.constraint_name
                AND tc.table_schema = rc.constraint_schema
            WHERE tc.constraint_type = 'FOREIGN KEY'
              AND tc.table_schema = %s
              AND tc.table_name = %s
            ORDER BY tc.constraint_name
        """
        rows = await self._fetch(query, (self._schema_name, table_name))

        foreign_keys: dict[str, ForeignKeySchema] = {}
        for name, column, ref_table, ref_column, delete_rule, update_rule in rows:
            if name in foreign_keys:
                # Composite keys are not supported; keep the first column
                continue
            foreign_keys[name] = ForeignKeySchema(
                name=name,
                column=column,
                foreign_table=ref_table,
                foreign_key=ref_column,
                on_delete=delete_rule,
                on_update=update_rule,
            )
        return foreign_keys
