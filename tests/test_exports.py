"""Tests for package exports and public API.

Verifies that every __init__.py exports the expected names and that the
__all__ lists are accurate.
"""

import importlib

import pytest


# ============================================================================
# Top-level package exports
# ============================================================================


class TestTopLevelExports:
    """Tests for src/db_sync/__init__.py exports."""

    def test_version_defined(self) -> None:
        """Package __version__ is defined and is a string."""
        import db_sync

        assert db_sync.__version__ == "0.1.0"

    def test_all_names_are_importable(self) -> None:
        """Every name in __all__ is actually accessible on the module."""
        import db_sync

        for name in db_sync.__all__:
            assert hasattr(db_sync, name), f"'{name}' is in __all__ but not accessible on db_sync"

    def test_core_exports(self) -> None:
        """Table, synchronize and the driver importable from top level."""
        from db_sync import AsyncPostgresDriver, SchemaIntrospector, Table, synchronize

        assert isinstance(Table, type)
        assert isinstance(AsyncPostgresDriver, type)
        assert isinstance(SchemaIntrospector, type)
        assert callable(synchronize)

    def test_config_exports(self) -> None:
        from db_sync import DatabaseConfig, DatabaseProfile, load_db_config

        assert isinstance(DatabaseProfile, type)
        assert isinstance(DatabaseConfig, type)
        assert callable(load_db_config)


# ============================================================================
# Subpackage exports
# ============================================================================


@pytest.mark.parametrize(
    "module_name",
    ["db_sync.adapters", "db_sync.config", "db_sync.dialects", "db_sync.schema"],
)
def test_subpackage_all_is_accurate(module_name: str) -> None:
    """Every subpackage defines __all__ and exposes each listed name."""
    module = importlib.import_module(module_name)

    assert isinstance(module.__all__, list)
    for name in module.__all__:
        assert hasattr(module, name), f"'{name}' is in __all__ but not accessible on {module_name}"


class TestSchemaExports:
    def test_exceptions_share_base(self) -> None:
        from db_sync.schema import (
            AlterNotSupportedError,
            CircularDependencyError,
            DefinitionError,
            PrimaryKeyChangeError,
            SchemaError,
            SchemaHandlerError,
        )

        for error in (
            AlterNotSupportedError,
            CircularDependencyError,
            DefinitionError,
            PrimaryKeyChangeError,
            SchemaHandlerError,
        ):
            assert issubclass(error, SchemaError)

    def test_cli_entry_point(self) -> None:
        from db_sync.cli import main

        assert callable(main)
