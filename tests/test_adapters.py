"""Tests for AsyncPostgresDriver with a mocked SQLAlchemy engine."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from db_sync.adapters.postgres import (
    AsyncPostgresDriver,
    create_async_engine_pooled,
    normalize_async_url,
)
from db_sync.dialects.postgres import PostgresDialect


def _driver() -> tuple[AsyncPostgresDriver, MagicMock, MagicMock]:
    """Driver whose engine hands out one mocked connection."""
    with patch("db_sync.adapters.postgres.create_async_engine_pooled") as mock_create:
        driver = AsyncPostgresDriver("postgresql://u:p@localhost:5432/app")
    engine = mock_create.return_value

    conn = MagicMock()
    conn.begin = AsyncMock(side_effect=lambda: AsyncMock(name="transaction"))
    conn.begin_nested = AsyncMock(side_effect=lambda: AsyncMock(name="savepoint"))
    conn.close = AsyncMock()
    conn.exec_driver_sql = AsyncMock(return_value=MagicMock(rowcount=0))
    conn.execute = AsyncMock(return_value=MagicMock(rowcount=3))

    engine.connect = AsyncMock(return_value=conn)
    begin_ctx = MagicMock()
    begin_ctx.__aenter__ = AsyncMock(return_value=conn)
    begin_ctx.__aexit__ = AsyncMock(return_value=None)
    engine.begin.return_value = begin_ctx
    engine.dispose = AsyncMock()

    return driver, engine, conn


# ============================================================
# Test: URL normalization and engine creation
# ============================================================


class TestUrlNormalization:
    def test_postgresql_to_asyncpg(self) -> None:
        assert (
            normalize_async_url("postgresql://u:p@localhost/db")
            == "postgresql+asyncpg://u:p@localhost/db"
        )

    def test_postgres_alias_to_asyncpg(self) -> None:
        assert (
            normalize_async_url("postgres://u:p@localhost/db")
            == "postgresql+asyncpg://u:p@localhost/db"
        )

    def test_asyncpg_url_unchanged(self) -> None:
        url = "postgresql+asyncpg://u:p@localhost/db"
        assert normalize_async_url(url) == url

    def test_driver_passes_normalized_url(self) -> None:
        with patch("db_sync.adapters.postgres.create_async_engine_pooled") as mock_create:
            AsyncPostgresDriver("postgres://u:p@localhost/db", pool_size=2)

        mock_create.assert_called_once_with("postgresql+asyncpg://u:p@localhost/db", pool_size=2)


class TestEnginePool:
    def test_pool_defaults(self) -> None:
        with patch("db_sync.adapters.postgres.create_async_engine") as mock_engine:
            create_async_engine_pooled("postgresql+asyncpg://localhost/db")

        kwargs = mock_engine.call_args.kwargs
        assert kwargs["pool_size"] == 5
        assert kwargs["max_overflow"] == 10
        assert kwargs["pool_pre_ping"] is True
        assert kwargs["pool_recycle"] == 300

    def test_overrides(self) -> None:
        with patch("db_sync.adapters.postgres.create_async_engine") as mock_engine:
            create_async_engine_pooled("postgresql+asyncpg://localhost/db", pool_size=1, echo=True)

        kwargs = mock_engine.call_args.kwargs
        assert kwargs["pool_size"] == 1
        assert kwargs["echo"] is True


# ============================================================
# Test: Statement execution and transactions
# ============================================================


class TestExecute:
    def test_dialect(self) -> None:
        driver, _, _ = _driver()
        assert isinstance(driver.dialect, PostgresDialect)
        assert driver.quote_identifier("users") == '"users"'

    def test_autocommit_outside_transaction(self) -> None:
        driver, engine, conn = _driver()

        asyncio.run(driver.execute("ALTER TABLE \"t\" ALTER COLUMN \"a\" SET DEFAULT ''::text"))

        engine.begin.assert_called_once()
        conn.exec_driver_sql.assert_awaited_once_with(
            "ALTER TABLE \"t\" ALTER COLUMN \"a\" SET DEFAULT ''::text"
        )

    def test_params_use_text(self) -> None:
        driver, _, conn = _driver()

        result = asyncio.run(driver.execute("SELECT :flag", {"flag": True}))

        assert result == 3
        statement, params = conn.execute.await_args.args
        assert str(statement) == "SELECT :flag"
        assert params == {"flag": True}


class TestTransactions:
    """begin_transaction() pins a connection; nested calls use savepoints."""

    @pytest.mark.asyncio
    async def test_pinned_connection(self) -> None:
        driver, engine, conn = _driver()

        await driver.begin_transaction()
        await driver.execute('DROP TABLE "a"')
        await driver.execute('DROP TABLE "b"')
        await driver.commit()

        engine.connect.assert_awaited_once()
        engine.begin.assert_not_called()
        assert conn.exec_driver_sql.await_count == 2
        conn.close.assert_awaited_once()
        assert driver.in_transaction is False

    @pytest.mark.asyncio
    async def test_nested_uses_savepoint(self) -> None:
        driver, _, conn = _driver()

        await driver.begin_transaction()
        await driver.begin_transaction()
        assert conn.begin_nested.await_count == 1

        await driver.rollback()
        assert driver.in_transaction is True
        conn.close.assert_not_awaited()

        await driver.commit()
        assert driver.in_transaction is False
        conn.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rollback_releases_connection(self) -> None:
        driver, _, conn = _driver()

        await driver.begin_transaction()
        await driver.rollback()

        conn.close.assert_awaited_once()
        assert driver._conn is None

    @pytest.mark.asyncio
    async def test_commit_without_transaction(self) -> None:
        driver, _, _ = _driver()
        with pytest.raises(RuntimeError, match="Cannot commit: no transaction is open"):
            await driver.commit()

    @pytest.mark.asyncio
    async def test_rollback_without_transaction(self) -> None:
        driver, _, _ = _driver()
        with pytest.raises(RuntimeError, match="Cannot rollback"):
            await driver.rollback()

    @pytest.mark.asyncio
    async def test_execute_error_propagates(self) -> None:
        driver, _, conn = _driver()
        conn.exec_driver_sql.side_effect = RuntimeError("syntax error")

        await driver.begin_transaction()
        with pytest.raises(RuntimeError, match="syntax error"):
            await driver.execute("BROKEN")
        await driver.rollback()

        assert driver.in_transaction is False


class TestClose:
    @pytest.mark.asyncio
    async def test_close_disposes_engine(self) -> None:
        driver, engine, conn = _driver()
        await driver.begin_transaction()

        await driver.close()

        conn.close.assert_awaited_once()
        engine.dispose.assert_awaited_once()
        assert driver.in_transaction is False
