"""Tests for the Table aggregate: declarations, intents and save()."""

import logging

import pytest

from conftest import FakeReflector, RecordingDriver, users_state

from db_sync.schema.exceptions import PrimaryKeyChangeError, SchemaError, SchemaHandlerError
from db_sync.schema.models import DiffResult, SqlExpression
from db_sync.schema.table import Table


def _declare_users(table: Table) -> None:
    table.column("id").primary()
    table.column("email").string(255).nullable()
    table.column("name").string(64).default("")
    table.index("email")


# ============================================================================
# Declarations
# ============================================================================


class TestDeclarations:
    """Declarations only change the current state."""

    def test_new_column_not_null_and_untyped(self, driver: RecordingDriver) -> None:
        table = Table(driver, "users")
        column = table.column("email")
        assert column.schema.nullable is False
        assert column.schema.type == ""

    def test_column_is_reused(self, driver: RecordingDriver) -> None:
        table = Table(driver, "users")
        first = table.column("email").string(64)
        second = table.column("email")
        assert first.key == second.key
        assert second.schema.size == 64

    def test_primary_sets_primary_key(self, driver: RecordingDriver) -> None:
        table = Table(driver, "users")
        table.column("id").primary()
        assert table.primary_keys == ["id"]

    def test_enum_sized_to_longest_value(self, driver: RecordingDriver) -> None:
        table = Table(driver, "users")
        column = table.column("status").enum(["on", "blocked"]).default("on")
        assert column.schema.size == 7
        assert column.schema.enum_values == ("on", "blocked")

    def test_default_now(self, driver: RecordingDriver) -> None:
        table = Table(driver, "users")
        column = table.column("created_at").timestamp().default_now()
        assert column.schema.default == SqlExpression(sql="CURRENT_TIMESTAMP")

    def test_index_requires_columns(self, driver: RecordingDriver) -> None:
        table = Table(driver, "users")
        with pytest.raises(SchemaError, match="Undefined column 'email'"):
            table.index("email")

    def test_index_name_generated(self, driver: RecordingDriver) -> None:
        table = Table(driver, "users")
        table.column("email").string()
        index = table.index("email").unique()
        assert index.name.startswith("users_index_email_")
        assert index.schema.unique is True

    def test_foreign_creates_index(self, driver: RecordingDriver) -> None:
        table = Table(driver, "posts")
        table.column("user_id").integer()
        foreign = table.foreign("user_id").references("users").on_delete("cascade")

        assert foreign.schema.foreign_table == "users"
        assert foreign.schema.on_delete == "CASCADE"
        assert table.state.find_index(["user_id"]) is not None

    def test_invalid_rule_rejected(self, driver: RecordingDriver) -> None:
        table = Table(driver, "posts")
        table.column("user_id").integer()
        with pytest.raises(ValueError):
            table.foreign("user_id").on_update("EXPLODE")

    def test_prefix(self, driver: RecordingDriver) -> None:
        table = Table(driver, "posts", prefix="app_")
        table.column("user_id").integer()
        foreign = table.foreign("user_id").references("users")

        assert table.name == "app_posts"
        assert foreign.schema.foreign_table == "app_users"
        assert table.dependencies() == ["app_users"]

    def test_self_reference_not_a_dependency(self, driver: RecordingDriver) -> None:
        table = Table(driver, "categories")
        table.column("parent_id").integer().nullable()
        table.foreign("parent_id").references("categories")
        assert table.dependencies() == []

    def test_declarations_do_not_touch_snapshot(self, driver: RecordingDriver) -> None:
        table = Table(driver, "users", initial=users_state())
        table.column("bio").text()
        assert "bio" not in table.initial_state.columns
        assert table.has_column("bio")
        assert driver.statements == []


class TestIntents:
    def test_drop_column(self, driver: RecordingDriver) -> None:
        table = Table(driver, "users", initial=users_state())
        table.drop_column("name")
        assert not table.has_column("name")

    def test_drop_undefined_column(self, driver: RecordingDriver) -> None:
        table = Table(driver, "users", initial=users_state())
        with pytest.raises(SchemaError, match="Undefined column 'missing'"):
            table.drop_column("missing")

    def test_rename_column_updates_index(self, driver: RecordingDriver) -> None:
        table = Table(driver, "users", initial=users_state())
        table.rename_column("email", "mail")

        state = table.state
        assert "mail" in state.columns
        assert state.indexes["users_email_idx"].columns == ("mail",)

    def test_rename_column_to_existing_name(self, driver: RecordingDriver) -> None:
        table = Table(driver, "users", initial=users_state())
        with pytest.raises(SchemaError, match="already exists"):
            table.rename_column("email", "name")

    def test_rename_index(self, driver: RecordingDriver) -> None:
        table = Table(driver, "users", initial=users_state())
        table.rename_index(["email"], "by_email")
        assert "by_email" in table.state.indexes

    def test_drop_index_and_foreign_undefined(self, driver: RecordingDriver) -> None:
        table = Table(driver, "users", initial=users_state())
        with pytest.raises(SchemaError):
            table.drop_index("name")
        with pytest.raises(SchemaError):
            table.drop_foreign("name")


# ============================================================================
# Immediate operations
# ============================================================================


class TestRenameAndDrop:
    @pytest.mark.asyncio
    async def test_rename_existing(self, driver: RecordingDriver) -> None:
        table = Table(driver, "users", initial=users_state())

        await table.rename("members")

        assert driver.statements == ['ALTER TABLE "users" RENAME TO "members"']
        assert table.initial_name == "members"
        assert table.name == "members"

    @pytest.mark.asyncio
    async def test_rename_new_table_is_deferred(self, driver: RecordingDriver) -> None:
        table = Table(driver, "users")
        await table.rename("members")
        assert driver.statements == []
        assert table.name == "members"

    @pytest.mark.asyncio
    async def test_drop_existing(self, driver: RecordingDriver) -> None:
        table = Table(driver, "users", initial=users_state())

        await table.drop()

        assert driver.statements == ['DROP TABLE "users"']
        assert table.exists is False
        assert await table.save() is None
        assert driver.statements == ['DROP TABLE "users"']

    @pytest.mark.asyncio
    async def test_drop_non_existing(self, driver: RecordingDriver) -> None:
        table = Table(driver, "users")
        with pytest.raises(SchemaError, match="Unable to drop non existing table 'users'"):
            await table.drop()


# ============================================================================
# Save
# ============================================================================


class TestSaveNewTable:
    @pytest.mark.asyncio
    async def test_create(self, driver: RecordingDriver) -> None:
        table = Table(driver, "posts")
        table.column("id").primary()
        table.column("title").string()

        result = await table.save()

        assert result is None
        assert table.exists is True
        assert driver.statements == [
            'CREATE TABLE "posts" (\n'
            '    "id" serial NOT NULL,\n'
            "    \"title\" character varying(255) NOT NULL DEFAULT '',\n"
            '    PRIMARY KEY ("id")\n'
            ")"
        ]
        assert driver.events[0] == "begin"
        assert driver.events[-1] == "commit"

    @pytest.mark.asyncio
    async def test_deferred_reset(self, driver: RecordingDriver) -> None:
        """Without its own transaction the table waits for reset_state()."""
        table = Table(driver, "posts")
        table.column("id").primary()

        await table.save(reset=False, transaction=False)

        assert table.exists is False
        assert table.initial_state.columns == {}
        assert table.touched_columns == frozenset({"id"})

        table.reset_state()

        assert table.exists is True
        assert set(table.initial_state.columns) == {"id"}
        assert table.touched_columns == frozenset()

    @pytest.mark.asyncio
    async def test_json_default_before_type_collapse(self, driver: RecordingDriver) -> None:
        table = Table(driver, "events")
        table.column("payload").json()

        await table.save()

        assert driver.statements == [
            'CREATE TABLE "events" (\n'
            "    \"payload\" text NOT NULL DEFAULT '{}'\n"
            ")"
        ]
        assert table.initial_state.columns["payload"].type == "text"

    def test_reset_state_without_save(self, driver: RecordingDriver) -> None:
        table = Table(driver, "posts")
        table.column("id").primary()

        table.reset_state()

        assert table.exists is False
        assert table.touched_columns == frozenset({"id"})

    @pytest.mark.asyncio
    async def test_second_save_is_noop(self, driver: RecordingDriver) -> None:
        table = Table(driver, "posts")
        table.column("id").primary()
        table.column("title").string()
        await table.save()
        driver.statements.clear()

        diff = await table.save()

        assert isinstance(diff, DiffResult)
        assert diff.has_changes() is False
        assert driver.statements == []

    @pytest.mark.asyncio
    async def test_round_trip_is_stable(self, driver: RecordingDriver) -> None:
        table = Table(driver, "users")
        _declare_users(table)
        table.column("age").integer()
        table.column("status").enum(["active", "blocked"])
        await table.save()

        reloaded = Table(driver, "users", initial=table.initial_state)
        _declare_users(reloaded)
        reloaded.column("age").integer()
        reloaded.column("status").enum(["active", "blocked"])

        assert reloaded.diff(drop_undeclared_columns=True).has_changes() is False


class TestSaveExistingTable:
    """Diff against the shadow snapshot."""

    @pytest.mark.asyncio
    async def test_nullable_to_not_null_injects_default(self, driver: RecordingDriver) -> None:
        table = Table(driver, "users", initial=users_state())
        table.column("email").string(255).nullable(False)

        await table.save()

        assert driver.statements == [
            'ALTER TABLE "users" ALTER COLUMN "email" SET DEFAULT \'\', '
            'ALTER COLUMN "email" SET NOT NULL'
        ]

    @pytest.mark.asyncio
    async def test_additive_save_keeps_undeclared(self, driver: RecordingDriver) -> None:
        table = Table(driver, "users", initial=users_state())
        table.column("bio").text().nullable()

        diff = await table.save()

        assert driver.statements == ['ALTER TABLE "users" ADD COLUMN "bio" text NULL']
        assert [c.name for c in diff.added_columns] == ["bio"]
        assert diff.dropped_columns == []

    @pytest.mark.asyncio
    async def test_drop_undeclared_columns(self, driver: RecordingDriver) -> None:
        table = Table(driver, "users", initial=users_state())
        table.column("id").primary()
        table.column("email").string(255).nullable()

        await table.save(drop_undeclared_columns=True)

        assert driver.statements == ['ALTER TABLE "users" DROP COLUMN "name"']

    @pytest.mark.asyncio
    async def test_dropping_column_drops_its_index(self, driver: RecordingDriver) -> None:
        table = Table(driver, "users", initial=users_state())
        table.drop_column("email")

        await table.save()

        assert driver.statements == [
            'DROP INDEX "users_email_idx"',
            'ALTER TABLE "users" DROP COLUMN "email"',
        ]

    @pytest.mark.asyncio
    async def test_rename_column(self, driver: RecordingDriver) -> None:
        table = Table(driver, "users", initial=users_state())
        table.rename_column("email", "mail")

        await table.save()

        assert driver.statements[0] == 'ALTER TABLE "users" RENAME COLUMN "email" TO "mail"'
        assert not any("DROP COLUMN" in s for s in driver.statements)

    @pytest.mark.asyncio
    async def test_untouched_not_null_column_keeps_no_default(self, driver: RecordingDriver) -> None:
        initial = users_state()
        initial.columns["age"] = initial.columns["name"].model_copy(
            update={"name": "age", "type": "integer", "size": 0, "default": None}
        )
        table = Table(driver, "users", initial=initial)

        assert table.diff().has_changes() is False

    @pytest.mark.asyncio
    async def test_snapshot_reset_after_save(self, driver: RecordingDriver) -> None:
        table = Table(driver, "users", initial=users_state())
        table.column("bio").text().nullable()
        await table.save()

        assert "bio" in table.initial_state.columns
        assert table.touched_columns == frozenset()

    @pytest.mark.asyncio
    async def test_primary_key_change_rejected(self, driver: RecordingDriver) -> None:
        table = Table(driver, "users", initial=users_state())
        table.set_primary_keys("id", "email")

        with pytest.raises(PrimaryKeyChangeError):
            await table.save()

        assert driver.events == []

    @pytest.mark.asyncio
    async def test_rollback_on_failure(self, caplog: pytest.LogCaptureFixture) -> None:
        driver = RecordingDriver(fail_on="ADD COLUMN")
        table = Table(driver, "users", initial=users_state())
        table.column("bio").text().nullable()

        with caplog.at_level(logging.WARNING, logger="db_sync.schema.table"):
            with pytest.raises(SchemaHandlerError):
                await table.save()

        assert driver.events == [
            "begin",
            'fail: ALTER TABLE "users" ADD COLUMN "bio" text NULL',
            "rollback",
        ]
        assert "Rolling back changes of table 'users'" in caplog.text
        assert "bio" not in table.initial_state.columns

    @pytest.mark.asyncio
    async def test_without_transaction(self, driver: RecordingDriver) -> None:
        table = Table(driver, "users", initial=users_state())
        table.column("bio").text().nullable()

        await table.save(transaction=False)

        assert "begin" not in driver.events


class TestFromDatabase:
    @pytest.mark.asyncio
    async def test_existing(self, driver: RecordingDriver) -> None:
        reflector = FakeReflector({"users": users_state()})

        table = await Table.from_database(driver, reflector, "users")

        assert table.exists is True
        assert set(table.initial_state.columns) == {"id", "email", "name"}

    @pytest.mark.asyncio
    async def test_missing(self, driver: RecordingDriver) -> None:
        reflector = FakeReflector()

        table = await Table.from_database(driver, reflector, "users", prefix="app_")

        assert table.exists is False
        assert table.name == "app_users"
        assert reflector.requested == ["app_users"]
