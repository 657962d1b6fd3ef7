"""Tests for the state comparator (compare())."""

from conftest import users_state

from db_sync.schema.comparator import compare
from db_sync.schema.models import ColumnSchema, ForeignKeySchema, IndexSchema, TableState


class TestDiffSymmetry:
    """compare(A, A) never reports changes."""

    def test_empty_table_against_itself(self) -> None:
        state = TableState(name="users")
        diff = compare(state, state)
        assert diff.has_changes() is False

    def test_populated_table_against_itself(self) -> None:
        state = users_state()
        assert compare(state, state).has_changes() is False

    def test_against_clone(self) -> None:
        state = users_state()
        assert compare(state, state.clone()).has_changes() is False


class TestColumns:
    """Column level differences."""

    def test_added_nullable_column(self) -> None:
        initial = users_state()
        current = initial.clone()
        bio = ColumnSchema(name="bio", type="text", nullable=True)
        current.columns["bio"] = bio

        diff = compare(initial, current)

        assert diff.added_columns == [bio]
        assert diff.dropped_columns == []
        assert diff.altered_columns == []

    def test_dropped_column(self) -> None:
        initial = users_state()
        current = initial.clone()
        del current.columns["name"]

        diff = compare(initial, current)

        assert [c.name for c in diff.dropped_columns] == ["name"]
        assert diff.added_columns == []

    def test_altered_column_pair_order(self) -> None:
        initial = users_state()
        current = initial.clone()
        current.columns["email"] = current.columns["email"].model_copy(update={"nullable": False})

        diff = compare(initial, current)

        assert len(diff.altered_columns) == 1
        new, old = diff.altered_columns[0]
        assert new.nullable is False
        assert old.nullable is True

    def test_renamed_column_is_altered_not_dropped(self) -> None:
        initial = users_state()
        current = initial.clone()
        current.columns["email"] = current.columns["email"].model_copy(update={"name": "mail"})

        diff = compare(initial, current)

        assert diff.added_columns == []
        assert diff.dropped_columns == []
        assert [(c.name, i.name) for c, i in diff.altered_columns] == [("mail", "email")]

    def test_default_equal_after_cast_is_unchanged(self) -> None:
        initial = TableState(
            name="t", columns={"n": ColumnSchema(name="n", type="integer", default="0")}
        )
        current = TableState(name="t", columns={"n": ColumnSchema(name="n", type="integer", default=0)})
        assert compare(initial, current).has_changes() is False


class TestIndexesAndForeignKeys:
    def test_index_uniqueness_change(self) -> None:
        initial = users_state()
        current = initial.clone()
        index = current.indexes["users_email_idx"]
        current.indexes["users_email_idx"] = index.model_copy(update={"unique": True})

        diff = compare(initial, current)

        assert len(diff.altered_indexes) == 1
        assert diff.altered_indexes[0][0].unique is True

    def test_index_rename_is_altered(self) -> None:
        initial = users_state()
        current = initial.clone()
        index = current.indexes["users_email_idx"]
        current.indexes["users_email_idx"] = index.model_copy(update={"name": "by_email"})

        assert len(compare(initial, current).altered_indexes) == 1

    def test_added_and_dropped_index(self) -> None:
        initial = users_state()
        current = initial.clone()
        del current.indexes["users_email_idx"]
        current.indexes["users_name_idx"] = IndexSchema(name="users_name_idx", columns=("name",))

        diff = compare(initial, current)

        assert [i.name for i in diff.added_indexes] == ["users_name_idx"]
        assert [i.name for i in diff.dropped_indexes] == ["users_email_idx"]

    def test_foreign_key_rule_change(self) -> None:
        foreign = ForeignKeySchema(name="fk", column="team_id", foreign_table="teams")
        initial = TableState(name="users", foreign_keys={"fk": foreign})
        current = TableState(
            name="users", foreign_keys={"fk": foreign.model_copy(update={"on_delete": "CASCADE"})}
        )

        diff = compare(initial, current)

        assert len(diff.altered_foreign_keys) == 1
        assert diff.added_foreign_keys == []


class TestTableLevel:
    def test_primary_key_change(self) -> None:
        initial = users_state()
        current = initial.clone()
        current.primary_keys = ["id", "email"]
        assert compare(initial, current).primary_changed is True

    def test_rename(self) -> None:
        initial = users_state()
        current = initial.clone()
        current.name = "members"

        diff = compare(initial, current)

        assert diff.renamed is True
        assert diff.table == "members"
        assert diff.has_changes()
