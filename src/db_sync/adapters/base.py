"""Driver and reflector protocol definitions.

``DatabaseDriver`` is the statement execution primitive the schema engine
runs DDL through.  ``SchemaReflector`` reads a table's current structure
from the database.  All I/O methods are ``async def``.

Usage:
    from db_sync.adapters.base import DatabaseDriver

    async def add_column(driver: DatabaseDriver) -> None:
        await driver.begin_transaction()
        try:
            await driver.execute('ALTER TABLE "users" ADD COLUMN "bio" text NULL')
        except Exception:
            await driver.rollback()
            raise
        await driver.commit()
"""

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from db_sync.dialects.base import DialectOps
    from db_sync.schema.models import TableState


class DatabaseDriver(Protocol):
    """Statement execution primitive handed to every ``Table``.

    Transactions nest: a ``begin_transaction()`` issued while one is open
    starts a savepoint, released or rolled back by the matching
    ``commit()`` / ``rollback()``.
    """

    @property
    def dialect(self) -> "DialectOps":
        """Statement generator matching this database."""
        ...

    async def execute(self, sql: str, params: dict | None = None) -> Any:
        """Execute a raw SQL statement.

        Args:
            sql: Statement to execute.
            params: Optional dict of named parameters.

        Raises:
            Exception: Whatever the database raises; never swallowed.
        """
        ...

    async def begin_transaction(self) -> None:
        ...

    async def commit(self) -> None:
        ...

    async def rollback(self) -> None:
        ...

    def quote_identifier(self, name: str) -> str:
        ...

    async def close(self) -> None:
        """Release connections held by the driver."""
        ...


class SchemaReflector(Protocol):
    """Reads the database-observed state of a table."""

    async def reflect_table(self, name: str) -> "TableState | None":
        """Return the table's state, or ``None`` if the table does not exist."""
        ...
