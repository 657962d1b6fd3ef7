"""Synchronization bus: save many tables across drivers in one transaction each.

A single ``Table.save()`` cannot drop a column that a foreign key on another
table still references.  The bus runs three passes over the
dependency-sorted tables so that every undeclared foreign key is gone before
any index is dropped, and every index before any column:

1. existing tables: drop undeclared foreign keys
2. existing tables: drop undeclared indexes
3. every table: everything else (create, alter, drop columns)

One transaction is opened per distinct driver.  Any error rolls back every
opened transaction in reverse order and is re-raised, leaving every table's
shadow snapshot and declarations as they were; otherwise all commit and
each table adopts its saved state.

Usage:
    from db_sync.schema.bus import SynchronizationBus

    await SynchronizationBus([users, posts, comments]).run()
"""

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from db_sync.schema.handler import Behaviour
from db_sync.schema.sorter import sort_tables

if TYPE_CHECKING:
    from db_sync.adapters.base import DatabaseDriver
    from db_sync.schema.table import Table


class SynchronizationBus:
    """Coordinates saving a set of tables.

    Args:
        tables: Tables to synchronize; read-only schemas must be filtered
            out by the caller.
        logger: Passed to every table save; defaults to this module's logger.
        drop_undeclared: Drop columns, indexes and foreign keys which were
            not declared.  When False only explicit drop intents
            (``drop_column()`` and friends) remove elements.
    """

    def __init__(
        self,
        tables: Iterable["Table"],
        logger: logging.Logger | None = None,
        drop_undeclared: bool = True,
    ) -> None:
        self.tables = list(tables)
        self.drop_undeclared = drop_undeclared
        self._logger = logger or logging.getLogger(__name__)

    def drivers(self) -> list["DatabaseDriver"]:
        """Distinct drivers by identity, in first-seen order."""
        drivers: list["DatabaseDriver"] = []
        for table in self.tables:
            if not any(table.driver is driver for driver in drivers):
                drivers.append(table.driver)
        return drivers

    def sorted_tables(self) -> list["Table"]:
        """Tables ordered so referenced tables come first."""
        return sort_tables(self.tables)

    async def run(self) -> None:
        """Synchronize all tables.

        Raises:
            CircularDependencyError: If the tables reference each other in a cycle.
            PrimaryKeyChangeError: If an existing table's primary key changed.
            SchemaHandlerError: If the database rejects a statement.
        """
        tables = self.sorted_tables()
        drop = self.drop_undeclared
        opened: list["DatabaseDriver"] = []

        try:
            for driver in self.drivers():
                await driver.begin_transaction()
                opened.append(driver)

            self._logger.debug("Dropping foreign keys")
            for table in tables:
                if table.exists:
                    await table.save(
                        drop_undeclared_foreigns=drop,
                        behaviour=Behaviour.DROP_FOREIGNS,
                        reset=False,
                        transaction=False,
                        logger=self._logger,
                    )

            self._logger.debug("Dropping indexes")
            for table in tables:
                if table.exists:
                    await table.save(
                        drop_undeclared_indexes=drop,
                        drop_undeclared_foreigns=drop,
                        behaviour=Behaviour.DROP_INDEXES,
                        reset=False,
                        transaction=False,
                        logger=self._logger,
                    )

            self._logger.debug("Applying remaining changes")
            for table in tables:
                await table.save(
                    drop_undeclared_columns=drop,
                    drop_undeclared_indexes=drop,
                    drop_undeclared_foreigns=drop,
                    behaviour=Behaviour.ALL ^ Behaviour.DROP_FOREIGNS ^ Behaviour.DROP_INDEXES,
                    reset=False,
                    transaction=False,
                    logger=self._logger,
                )
        except Exception:
            self._logger.warning(f"Rolling back {len(opened)} transaction(s)")
            for driver in reversed(opened):
                await driver.rollback()
            raise

        # Snapshots follow the database only once their driver has committed
        for driver in opened:
            await driver.commit()
            for table in tables:
                if table.driver is driver:
                    table.reset_state()


async def synchronize(
    tables: Iterable["Table"],
    logger: logging.Logger | None = None,
    drop_undeclared: bool = True,
) -> None:
    """Run a ``SynchronizationBus`` over *tables*."""
    await SynchronizationBus(tables, logger=logger, drop_undeclared=drop_undeclared).run()
