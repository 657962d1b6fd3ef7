"""Shared fixtures: an in-memory driver recording every statement.

``RecordingDriver`` implements the ``DatabaseDriver`` protocol without a
database.  Statements are recorded in order; ``fail_on`` makes ``execute()``
raise for any statement containing the given text.  ``FakeReflector``
serves ``TableState`` snapshots from a dict.
"""

import pytest

from db_sync.dialects.base import GenericDialect
from db_sync.dialects.mysql import MySQLDialect
from db_sync.dialects.postgres import PostgresDialect
from db_sync.schema.models import ColumnSchema, IndexSchema, TableState


class RecordingDriver:
    """``DatabaseDriver`` double recording statements and transaction calls."""

    def __init__(self, dialect=None, fail_on: str | None = None, name: str = "db") -> None:
        self._dialect = dialect or PostgresDialect()
        self.fail_on = fail_on
        self.name = name
        self.statements: list[str] = []
        self.events: list[str] = []
        self.depth = 0
        self.closed = False

    @property
    def dialect(self):
        return self._dialect

    async def execute(self, sql: str, params: dict | None = None) -> int:
        if self.fail_on and self.fail_on in sql:
            self.events.append(f"fail: {sql}")
            raise RuntimeError(f"rejected by database: {sql}")
        self.statements.append(sql)
        self.events.append(f"execute: {sql}")
        return 0

    async def begin_transaction(self) -> None:
        self.depth += 1
        self.events.append("begin")

    async def commit(self) -> None:
        self.depth -= 1
        self.events.append("commit")

    async def rollback(self) -> None:
        self.depth -= 1
        self.events.append("rollback")

    def quote_identifier(self, name: str) -> str:
        return self._dialect.quote_identifier(name)

    async def close(self) -> None:
        self.closed = True


class FakeReflector:
    """``SchemaReflector`` double returning clones of stored states."""

    def __init__(self, states: dict[str, TableState] | None = None) -> None:
        self.states = states or {}
        self.requested: list[str] = []

    async def reflect_table(self, name: str) -> TableState | None:
        self.requested.append(name)
        state = self.states.get(name)
        return state.clone() if state is not None else None


def users_state() -> TableState:
    """Existing ``users`` table: id, nullable email with an index, name."""
    return TableState(
        name="users",
        primary_keys=["id"],
        columns={
            "id": ColumnSchema(name="id", type="primary"),
            "email": ColumnSchema(name="email", type="string", size=255, nullable=True),
            "name": ColumnSchema(name="name", type="string", size=64, default=""),
        },
        indexes={
            "users_email_idx": IndexSchema(name="users_email_idx", columns=("email",)),
        },
    )


@pytest.fixture
def driver() -> RecordingDriver:
    return RecordingDriver(PostgresDialect())


@pytest.fixture
def generic_driver() -> RecordingDriver:
    return RecordingDriver(GenericDialect())


@pytest.fixture
def mysql_driver() -> RecordingDriver:
    return RecordingDriver(MySQLDialect())
