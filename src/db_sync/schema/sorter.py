"""Dependency sorting for tables linked by foreign keys.

Depth-first topological sort: every item is placed after the items it
depends on.  Dependencies outside the sorted set and self-dependencies are
ignored; a genuine cycle raises ``CircularDependencyError``.

Usage:
    from db_sync.schema.sorter import DependencySorter

    sorter = DependencySorter()
    sorter.add("comments", comments, ["posts"])
    sorter.add("posts", posts, [])
    sorter.sort()
    # [posts, comments]
"""

from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from db_sync.schema.exceptions import CircularDependencyError

if TYPE_CHECKING:
    from db_sync.schema.table import Table


class DependencySorter:
    """Collects keyed items with their dependencies and orders them."""

    def __init__(self) -> None:
        self._items: dict[str, Any] = {}
        self._dependencies: dict[str, list[str]] = {}

    def add(self, key: str, item: Any, dependencies: Iterable[str] = ()) -> "DependencySorter":
        """Register an item; re-adding a key replaces it."""
        self._items[key] = item
        self._dependencies[key] = list(dependencies)
        return self

    def sort(self) -> list[Any]:
        """Items ordered so each comes after all of its dependencies.

        Raises:
            CircularDependencyError: If the dependency graph has a cycle.
        """
        result: list[Any] = []
        visited: set[str] = set()
        visiting: list[str] = []  # Current DFS path, for cycle reporting

        def visit(key: str) -> None:
            if key in visited:
                return
            if key in visiting:
                cycle = visiting[visiting.index(key):] + [key]
                raise CircularDependencyError(cycle)

            visiting.append(key)
            for dependency in self._dependencies[key]:
                if dependency == key or dependency not in self._items:
                    continue
                visit(dependency)
            visiting.pop()

            visited.add(key)
            result.append(self._items[key])

        for key in self._items:
            visit(key)

        return result


def sort_tables(tables: Iterable["Table"]) -> list["Table"]:
    """Order tables so referenced tables come before the tables referencing them."""
    sorter = DependencySorter()
    for table in tables:
        sorter.add(table.name, table, table.dependencies())
    return sorter.sort()
