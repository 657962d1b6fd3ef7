"""Table aggregate: declared state, shadow snapshot and save().

A ``Table`` owns two independent ``TableState`` values:

- the shadow snapshot (``initial_state``): last state known to match the
  database, used as the diff baseline
- the current state (``state``): what the caller declared through
  ``column()``, ``index()`` and ``foreign()``

Declarations only change the current state.  Nothing touches the database
until ``save()``, except ``rename()`` and ``drop()`` which run immediately.

Usage:
    table = await Table.from_database(driver, introspector, "users")
    table.column("id").primary()
    table.column("email").string(255)
    table.index("email").unique()
    await table.save(drop_undeclared_columns=True)
"""

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from db_sync.schema.builders import ColumnBuilder, ForeignKeyBuilder, IndexBuilder
from db_sync.schema.comparator import compare
from db_sync.schema.exceptions import PrimaryKeyChangeError, SchemaError
from db_sync.schema.handler import Behaviour, SchemaHandler
from db_sync.schema.models import (
    ColumnSchema,
    DiffResult,
    ForeignKeySchema,
    IndexSchema,
    TableState,
    make_identifier,
)

if TYPE_CHECKING:
    from db_sync.adapters.base import DatabaseDriver, SchemaReflector

logger = logging.getLogger(__name__)


class Table:
    """Declarative schema of one table bound to a driver.

    Args:
        driver: Driver executing this table's DDL.
        name: Table name without prefix.
        prefix: Prefix prepended to this table and to referenced tables.
        initial: Reflected state of the table, ``None`` if it does not exist.
    """

    def __init__(
        self,
        driver: "DatabaseDriver",
        name: str,
        prefix: str = "",
        initial: TableState | None = None,
    ) -> None:
        self.driver = driver
        self.prefix = prefix
        self._exists = initial is not None
        self._dropped = False

        if initial is None:
            initial = TableState(name=prefix + name)
        self._initial = initial.clone()
        self._current = initial.clone()
        # State applied by the last save(), adopted by reset_state()
        self._saved: TableState | None = None

        self._touched_columns: set[str] = set()
        self._touched_indexes: set[str] = set()
        self._touched_foreigns: set[str] = set()

    @classmethod
    async def from_database(
        cls,
        driver: "DatabaseDriver",
        reflector: "SchemaReflector",
        name: str,
        prefix: str = "",
    ) -> "Table":
        """Build a table whose shadow snapshot is reflected from the database."""
        state = await reflector.reflect_table(prefix + name)
        return cls(driver, name, prefix=prefix, initial=state)

    def __repr__(self) -> str:
        return f"Table({self.name!r}, exists={self._exists})"

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        """Current (prefixed) table name."""
        return self._current.name

    @property
    def initial_name(self) -> str:
        """Table name in the database."""
        return self._initial.name

    @property
    def exists(self) -> bool:
        return self._exists

    @property
    def state(self) -> TableState:
        """Detached copy of the current state, keyed by current names."""
        return self._current.remount()

    @property
    def initial_state(self) -> TableState:
        """Detached copy of the shadow snapshot."""
        return self._initial.clone()

    @property
    def primary_keys(self) -> list[str]:
        return list(self._current.primary_keys)

    @property
    def touched_columns(self) -> frozenset[str]:
        """Identity keys of columns declared in the current pass."""
        return frozenset(self._touched_columns)

    @property
    def touched_indexes(self) -> frozenset[str]:
        return frozenset(self._touched_indexes)

    @property
    def touched_foreigns(self) -> frozenset[str]:
        return frozenset(self._touched_foreigns)

    def forget_declarations(self) -> None:
        """Start a new declaration pass: every element counts as undeclared again."""
        self._touched_columns.clear()
        self._touched_indexes.clear()
        self._touched_foreigns.clear()

    def dependencies(self) -> list[str]:
        """Names of tables referenced by foreign keys, excluding this table."""
        tables: list[str] = []
        for foreign in self._current.foreign_keys.values():
            target = foreign.foreign_table
            if target and target != self.name and target not in tables:
                tables.append(target)
        return tables

    def has_column(self, name: str) -> bool:
        return self._current.find_column(name) is not None

    # ------------------------------------------------------------------
    # Declarations
    # ------------------------------------------------------------------

    def column(self, name: str) -> ColumnBuilder:
        """Get or create a column; new columns are NOT NULL and untyped."""
        key = self._current.find_column(name)
        if key is None:
            key = _free_key(self._current.columns, name)
            self._current.columns[key] = ColumnSchema(name=name)

        self._touched_columns.add(key)
        return ColumnBuilder(self, key)

    def index(self, *columns: str) -> IndexBuilder:
        """Get or create the index covering exactly *columns*.

        Raises:
            SchemaError: If a column is not defined.
        """
        self._assert_columns(columns)

        key = self._current.find_index(columns)
        if key is None:
            name = make_identifier(self.name, "index", list(columns), self._identifier_limit)
            key = _free_key(self._current.indexes, name)
            self._current.indexes[key] = IndexSchema(name=name, columns=tuple(columns))

        self._touched_indexes.add(key)
        return IndexBuilder(self, key)

    def foreign(self, column: str) -> ForeignKeyBuilder:
        """Get or create the foreign key on *column*, plus its supporting index.

        Raises:
            SchemaError: If the column is not defined.
        """
        self._assert_columns([column])

        key = self._current.find_foreign(column)
        if key is None:
            name = make_identifier(self.name, "foreign", [column], self._identifier_limit)
            key = _free_key(self._current.foreign_keys, name)
            self._current.foreign_keys[key] = ForeignKeySchema(name=name, column=column)

        self._touched_foreigns.add(key)
        self.index(column)
        return ForeignKeyBuilder(self, key)

    def set_primary_keys(self, *columns: str) -> "Table":
        """Set the primary key; changing it on an existing table fails on save."""
        self._current.primary_keys = list(columns)
        return self

    # ------------------------------------------------------------------
    # Intents (applied on save)
    # ------------------------------------------------------------------

    def drop_column(self, name: str) -> "Table":
        key = self._current.find_column(name)
        if key is None:
            raise SchemaError(f"Undefined column '{name}' in '{self.name}'")
        del self._current.columns[key]
        self._touched_columns.discard(key)
        return self

    def drop_index(self, *columns: str) -> "Table":
        key = self._current.find_index(columns)
        if key is None:
            raise SchemaError(f"Undefined index ({', '.join(columns)}) in '{self.name}'")
        del self._current.indexes[key]
        self._touched_indexes.discard(key)
        return self

    def drop_foreign(self, column: str) -> "Table":
        key = self._current.find_foreign(column)
        if key is None:
            raise SchemaError(f"Undefined foreign key on '{column}' in '{self.name}'")
        del self._current.foreign_keys[key]
        self._touched_foreigns.discard(key)
        return self

    def rename_column(self, name: str, new_name: str) -> "Table":
        """Rename a column; indexes and foreign keys follow the new name."""
        key = self._current.find_column(name)
        if key is None:
            raise SchemaError(f"Undefined column '{name}' in '{self.name}'")
        if name != new_name and self._current.find_column(new_name) is not None:
            raise SchemaError(f"Column '{new_name}' already exists in '{self.name}'")

        state = self._current
        state.columns[key] = state.columns[key].model_copy(update={"name": new_name})
        self._touched_columns.add(key)

        for index_key, index in state.indexes.items():
            if name in index.columns:
                columns = tuple(new_name if c == name else c for c in index.columns)
                state.indexes[index_key] = index.model_copy(update={"columns": columns})
        for foreign_key, foreign in state.foreign_keys.items():
            if foreign.column == name:
                state.foreign_keys[foreign_key] = foreign.model_copy(update={"column": new_name})
        state.primary_keys = [new_name if c == name else c for c in state.primary_keys]

        return self

    def rename_index(self, columns: list[str] | tuple[str, ...], new_name: str) -> "Table":
        key = self._current.find_index(columns)
        if key is None:
            raise SchemaError(f"Undefined index ({', '.join(columns)}) in '{self.name}'")

        index = self._current.indexes[key]
        self._current.indexes[key] = index.model_copy(update={"name": new_name})
        self._touched_indexes.add(key)
        return self

    # ------------------------------------------------------------------
    # Immediate operations
    # ------------------------------------------------------------------

    async def rename(self, name: str, logger: logging.Logger | None = None) -> None:
        """Rename the table now; *name* is given without prefix."""
        new_name = self.prefix + name
        if self._exists and new_name != self._initial.name:
            handler = SchemaHandler(self.driver, logger=logger)
            await handler.rename_table(self._initial.name, new_name)
            self._initial.name = new_name
        self._current.name = new_name

    async def drop(self, logger: logging.Logger | None = None) -> None:
        """Drop the table now.

        Raises:
            SchemaError: If the table does not exist.
        """
        if not self._exists:
            raise SchemaError(f"Unable to drop non existing table '{self.name}'")

        handler = SchemaHandler(self.driver, logger=logger)
        await handler.drop_table(self._initial.name)
        self._exists = False
        self._dropped = True

    # ------------------------------------------------------------------
    # Synchronization
    # ------------------------------------------------------------------

    def diff(
        self,
        drop_undeclared_columns: bool = False,
        drop_undeclared_indexes: bool = False,
        drop_undeclared_foreigns: bool = False,
    ) -> DiffResult:
        """Changes ``save()`` with the same flags would apply to an existing table."""
        target = self._prepare(
            drop_undeclared_columns, drop_undeclared_indexes, drop_undeclared_foreigns
        )
        return compare(self._initial, target)

    async def save(
        self,
        drop_undeclared_columns: bool = False,
        drop_undeclared_indexes: bool = False,
        drop_undeclared_foreigns: bool = False,
        *,
        behaviour: Behaviour = Behaviour.ALL,
        reset: bool = True,
        transaction: bool = True,
        logger: logging.Logger | None = None,
    ) -> DiffResult | None:
        """Synchronize the declared state with the database.

        Creates the table when it does not exist, otherwise applies the diff
        against the shadow snapshot.  Undeclared elements are dropped only when
        the matching flag is set.

        Args:
            drop_undeclared_columns: Drop columns not declared in this pass.
            drop_undeclared_indexes: Drop indexes not declared in this pass.
            drop_undeclared_foreigns: Drop foreign keys not declared in this pass.
            behaviour: Operation categories allowed for an existing table.
            reset: Make the applied state the new shadow snapshot.  Callers
                owning the transaction pass ``False`` and call
                ``reset_state()`` once it has committed.
            transaction: Run inside a driver transaction (the bus passes
                ``False`` because it owns the transaction).
            logger: Receives DEBUG messages for every planned operation.

        Returns:
            The applied diff, or ``None`` when the table was created or had
            been dropped.

        Raises:
            PrimaryKeyChangeError: If the primary key of an existing table changed.
            SchemaHandlerError: If the database rejects a statement.
        """
        if self._dropped:
            return None

        target = self._prepare(
            drop_undeclared_columns, drop_undeclared_indexes, drop_undeclared_foreigns
        )
        handler = SchemaHandler(self.driver, logger=logger)

        if not self._exists:
            await self._execute(lambda: handler.create_table(target), transaction)
            self._saved = target
            if transaction:
                self._exists = True
                self._initial = target.remount()
            if reset:
                self.reset_state()
            return None

        diff = compare(self._initial, target)
        if diff.primary_changed:
            raise PrimaryKeyChangeError(
                f"Unable to change primary keys for existing table '{self._initial.name}'"
            )

        if diff.has_changes():
            initial = self._initial
            await self._execute(
                lambda: handler.sync_table(initial, target, behaviour, diff), transaction
            )

        self._saved = target
        if reset:
            self.reset_state()
        return diff

    def reset_state(self) -> None:
        """Adopt the state applied by the last ``save()`` as the shadow snapshot.

        Starts a new declaration pass.  Does nothing when no save is pending.
        """
        if self._saved is None:
            return

        self._exists = True
        self._initial = self._saved.remount()
        self._current = self._saved.remount()
        self._saved = None
        self.forget_declarations()

    async def _execute(self, operation: Callable[[], Awaitable[None]], transaction: bool) -> None:
        if not transaction:
            await operation()
            return

        await self.driver.begin_transaction()
        try:
            await operation()
        except Exception:
            logger.warning(f"Rolling back changes of table '{self.name}'")
            await self.driver.rollback()
            raise
        await self.driver.commit()

    def _prepare(
        self,
        drop_undeclared_columns: bool,
        drop_undeclared_indexes: bool,
        drop_undeclared_foreigns: bool,
    ) -> TableState:
        """Target state for save: drops, cascades, type normalization and defaults."""
        target = self._current.clone()

        if drop_undeclared_columns:
            for key in list(target.columns):
                if key not in self._touched_columns:
                    del target.columns[key]
        if drop_undeclared_indexes:
            for key in list(target.indexes):
                if key not in self._touched_indexes:
                    del target.indexes[key]
        if drop_undeclared_foreigns:
            for key in list(target.foreign_keys):
                if key not in self._touched_foreigns:
                    del target.foreign_keys[key]

        # Indexes and foreign keys cannot outlive their columns
        names = {column.name for column in target.columns.values()}
        for key, index in list(target.indexes.items()):
            if not names.issuperset(index.columns):
                del target.indexes[key]
        for key, foreign in list(target.foreign_keys.items()):
            if foreign.column not in names:
                del target.foreign_keys[key]

        dialect = self.driver.dialect
        for key, column in list(target.columns.items()):
            # Synthetic defaults follow the declared type, before the dialect
            # collapses it (json is stored as text on PostgreSQL)
            if (
                key in self._touched_columns
                and not column.nullable
                and column.default is None
                and not column.is_primary
                and column.name not in target.primary_keys
            ):
                column = column.model_copy(update={"default": column.synthetic_default()})
            target.columns[key] = dialect.normalize_column(column)

        return target

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @property
    def _identifier_limit(self) -> int:
        return self.driver.dialect.identifier_limit

    def _assert_columns(self, columns) -> None:
        for column in columns:
            if self._current.find_column(column) is None:
                raise SchemaError(f"Undefined column '{column}' in '{self.name}'")


def _free_key(mapping: dict, name: str) -> str:
    """*name*, or a suffixed variant when another element already holds that key."""
    key = name
    counter = 1
    while key in mapping:
        counter += 1
        key = f"{name}#{counter}"
    return key
