"""State comparison: diff an initial (reflected) TableState against a desired one.

Pure logic, no I/O.  Elements are matched by identity key, so a column renamed
through ``Table.rename_column()`` shows up as an altered pair while a column
that simply vanished and another that appeared are reported as a drop plus
an add.

Usage:
    from db_sync.schema.comparator import compare

    diff = compare(initial, current)
    if diff.has_changes():
        print(diff.format_report())
"""

from typing import TypeVar

from db_sync.schema.models import DiffResult, TableState

T = TypeVar("T")


def _diff_elements(
    initial: dict[str, T], current: dict[str, T]
) -> tuple[list[T], list[T], list[tuple[T, T]]]:
    """Split two keyed element maps into added, dropped and altered."""
    added = [element for key, element in current.items() if key not in initial]
    dropped = [element for key, element in initial.items() if key not in current]

    altered: list[tuple[T, T]] = []
    for key, element in current.items():
        if key not in initial:
            continue
        before = initial[key]
        if element.name != before.name or not element.compare(before):
            altered.append((element, before))

    return added, dropped, altered


def compare(initial: TableState, current: TableState) -> DiffResult:
    """Compare two table states.

    Args:
        initial: Baseline state (usually the shadow snapshot from the database).
        current: Desired state.

    Returns:
        DiffResult with added/dropped/altered elements; altered entries are
        ``(current, initial)`` pairs.

    Example:
        >>> state = TableState(name="users")
        >>> compare(state, state).has_changes()
        False
    """
    added_columns, dropped_columns, altered_columns = _diff_elements(
        initial.columns, current.columns
    )
    added_indexes, dropped_indexes, altered_indexes = _diff_elements(
        initial.indexes, current.indexes
    )
    added_foreigns, dropped_foreigns, altered_foreigns = _diff_elements(
        initial.foreign_keys, current.foreign_keys
    )

    return DiffResult(
        table=current.name,
        added_columns=added_columns,
        dropped_columns=dropped_columns,
        altered_columns=altered_columns,
        added_indexes=added_indexes,
        dropped_indexes=dropped_indexes,
        altered_indexes=altered_indexes,
        added_foreign_keys=added_foreigns,
        dropped_foreign_keys=dropped_foreigns,
        altered_foreign_keys=altered_foreigns,
        primary_changed=list(initial.primary_keys) != list(current.primary_keys),
        renamed=initial.name != current.name,
    )
