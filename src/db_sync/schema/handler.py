"""Schema handler: walk a table diff and execute DDL in a safe order.

The handler never builds SQL itself.  Statements come from a ``DialectOps``
implementation and are executed through the ``DatabaseDriver.execute()``
protocol method.  A rejected statement is wrapped in ``SchemaHandlerError``
carrying the statement and the original driver error.

Execution order inside one table is fixed:

1. rename table
2. drop foreign keys, drop indexes, drop columns
3. create columns, alter columns
4. create indexes, alter indexes, create foreign keys, alter foreign keys

Usage:
    from db_sync.schema.handler import Behaviour, SchemaHandler

    handler = SchemaHandler(driver)
    await handler.sync_table(initial, current, Behaviour.ALL)
"""

import enum
import logging
from typing import TYPE_CHECKING

from db_sync.schema.comparator import compare
from db_sync.schema.exceptions import PrimaryKeyChangeError, SchemaHandlerError
from db_sync.schema.models import (
    ColumnSchema,
    DiffResult,
    ForeignKeySchema,
    IndexSchema,
    TableState,
)

if TYPE_CHECKING:
    from db_sync.adapters.base import DatabaseDriver
    from db_sync.dialects.base import DialectOps


class Behaviour(enum.IntFlag):
    """Categories of DDL operations a synchronization pass may perform."""

    DROP_FOREIGNS = 0b00000000001
    CREATE_FOREIGNS = 0b00000000010
    ALTER_FOREIGNS = 0b00000000100
    DROP_COLUMNS = 0b00000001000
    CREATE_COLUMNS = 0b00000010000
    ALTER_COLUMNS = 0b00000100000
    DROP_INDEXES = 0b00001000000
    CREATE_INDEXES = 0b00010000000
    ALTER_INDEXES = 0b00100000000
    DROP = 0b01000000000
    RENAME = 0b10000000000

    DO_FOREIGNS = DROP_FOREIGNS | CREATE_FOREIGNS | ALTER_FOREIGNS
    DO_COLUMNS = DROP_COLUMNS | CREATE_COLUMNS | ALTER_COLUMNS
    DO_INDEXES = DROP_INDEXES | CREATE_INDEXES | ALTER_INDEXES
    ALL = DO_FOREIGNS | DO_COLUMNS | DO_INDEXES | DROP | RENAME


class SchemaHandler:
    """Executes table level DDL through a driver.

    Args:
        driver: Statement execution primitive.
        dialect: Statement generator; defaults to ``driver.dialect``.
        logger: Receives a DEBUG message for every planned operation;
            defaults to this module's logger.
    """

    def __init__(
        self,
        driver: "DatabaseDriver",
        dialect: "DialectOps | None" = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.driver = driver
        self.dialect = dialect if dialect is not None else driver.dialect
        self._logger = logger or logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    async def create_table(self, state: TableState) -> None:
        """Create a table, then its indexes (not every DBMS accepts them inline)."""
        self._log(f"Creating new table '{state.name}'")
        await self._run_all(self.dialect.create_table(state))

        for index in state.indexes.values():
            await self.create_index(state.name, index)

    async def drop_table(self, name: str) -> None:
        self._log(f"Dropping table '{name}'")
        await self._run_all(self.dialect.drop_table(name))

    async def rename_table(self, name: str, new_name: str) -> None:
        self._log(f"Renaming table '{name}' to '{new_name}'")
        await self._run_all(self.dialect.rename_table(name, new_name))

    async def sync_table(
        self,
        initial: TableState,
        current: TableState,
        behaviour: Behaviour = Behaviour.ALL,
        diff: DiffResult | None = None,
    ) -> None:
        """Apply the difference between two states of an existing table.

        Args:
            initial: State currently in the database.
            current: Desired state.
            behaviour: Operation categories allowed in this call.
            diff: Precomputed ``compare(initial, current)``.

        Raises:
            PrimaryKeyChangeError: If the primary key differs.
            SchemaHandlerError: If any statement fails.
        """
        if diff is None:
            diff = compare(initial, current)

        if diff.primary_changed:
            raise PrimaryKeyChangeError(
                f"Unable to change primary keys for existing table '{initial.name}'"
            )

        if diff.renamed and behaviour & Behaviour.RENAME:
            await self.rename_table(initial.name, current.name)

        table = current.name

        if behaviour & Behaviour.DROP_FOREIGNS:
            for foreign in diff.dropped_foreign_keys:
                await self.drop_foreign(table, foreign)

        if behaviour & Behaviour.DROP_INDEXES:
            for index in diff.dropped_indexes:
                await self.drop_index(table, index)

        if behaviour & Behaviour.DROP_COLUMNS:
            for column in diff.dropped_columns:
                await self.drop_column(table, column)

        if behaviour & Behaviour.CREATE_COLUMNS:
            for column in diff.added_columns:
                await self.create_column(table, column)

        if behaviour & Behaviour.ALTER_COLUMNS:
            for current_column, initial_column in diff.altered_columns:
                await self.alter_column(table, initial_column, current_column)

        if behaviour & Behaviour.CREATE_INDEXES:
            for index in diff.added_indexes:
                await self.create_index(table, index)

        if behaviour & Behaviour.ALTER_INDEXES:
            for current_index, initial_index in diff.altered_indexes:
                await self.alter_index(table, initial_index, current_index)

        if behaviour & Behaviour.CREATE_FOREIGNS:
            for foreign in diff.added_foreign_keys:
                await self.create_foreign(table, foreign)

        if behaviour & Behaviour.ALTER_FOREIGNS:
            for current_foreign, initial_foreign in diff.altered_foreign_keys:
                await self.alter_foreign(table, initial_foreign, current_foreign)

    # ------------------------------------------------------------------
    # Columns
    # ------------------------------------------------------------------

    async def create_column(self, table: str, column: ColumnSchema) -> None:
        self._log(f"Adding column [{column.name}] into table '{table}'")
        await self._run_all(self.dialect.create_column(table, column))

    async def drop_column(self, table: str, column: ColumnSchema) -> None:
        self._log(f"Dropping column [{column.name}] from table '{table}'")
        await self._run_all(self.dialect.drop_column(table, column))

    async def alter_column(
        self, table: str, initial: ColumnSchema, current: ColumnSchema
    ) -> None:
        self._log(f"Altering column [{initial.name}] to [{current.name}] in table '{table}'")
        await self._run_all(self.dialect.alter_column(table, initial, current))

    # ------------------------------------------------------------------
    # Indexes
    # ------------------------------------------------------------------

    async def create_index(self, table: str, index: IndexSchema) -> None:
        self._log(f"Adding index [{index.name}] into table '{table}'")
        await self._run_all(self.dialect.create_index(table, index))

    async def drop_index(self, table: str, index: IndexSchema) -> None:
        self._log(f"Dropping index [{index.name}] from table '{table}'")
        await self._run_all(self.dialect.drop_index(table, index))

    async def alter_index(self, table: str, initial: IndexSchema, current: IndexSchema) -> None:
        self._log(f"Altering index [{initial.name}] to [{current.name}] in table '{table}'")
        await self._run_all(self.dialect.alter_index(table, initial, current))

    # ------------------------------------------------------------------
    # Foreign keys
    # ------------------------------------------------------------------

    async def create_foreign(self, table: str, foreign: ForeignKeySchema) -> None:
        self._log(
            f"Adding foreign key [{foreign.name}] into table '{table}' "
            f"({foreign.column} -> {foreign.foreign_table}.{foreign.foreign_key})"
        )
        await self._run_all(self.dialect.create_foreign(table, foreign))

    async def drop_foreign(self, table: str, foreign: ForeignKeySchema) -> None:
        self._log(f"Dropping foreign key [{foreign.name}] from table '{table}'")
        await self._run_all(self.dialect.drop_foreign(table, foreign))

    async def alter_foreign(
        self, table: str, initial: ForeignKeySchema, current: ForeignKeySchema
    ) -> None:
        self._log(f"Altering foreign key [{initial.name}] to [{current.name}] in table '{table}'")
        await self._run_all(self.dialect.alter_foreign(table, initial, current))

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _run_all(self, statements: list[str]) -> None:
        for statement in statements:
            await self._run(statement)

    async def _run(self, statement: str) -> None:
        try:
            await self.driver.execute(statement)
        except Exception as e:
            raise SchemaHandlerError(statement, e) from e

    def _log(self, message: str) -> None:
        self._logger.debug(message)
