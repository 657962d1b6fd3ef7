"""db-sync: Declarative schema state diffing and synchronization.

Declare tables in Python or in a TOML schema file, diff them against the
live database and apply the difference as DDL, across many tables and
drivers in one transaction each.

Usage:
    from db_sync import Table, synchronize, AsyncPostgresDriver, SchemaIntrospector
    from db_sync import load_db_config, DatabaseProfile, DatabaseConfig
    from db_sync import get_dialect
"""

__version__ = "0.1.0"

# Adapters
from db_sync.adapters.base import DatabaseDriver, SchemaReflector
from db_sync.adapters.postgres import AsyncPostgresDriver

# Config
from db_sync.config.loader import load_db_config
from db_sync.config.models import DatabaseConfig, DatabaseProfile

# Dialects
from db_sync.dialects import get_dialect

# Factory
from db_sync.factory import (
    ProfileNotFoundError,
    get_active_profile,
    get_driver,
    load_tables,
    resolve_url,
)

# Schema
from db_sync.schema.bus import SynchronizationBus, synchronize
from db_sync.schema.comparator import compare
from db_sync.schema.exceptions import (
    CircularDependencyError,
    PrimaryKeyChangeError,
    SchemaError,
    SchemaHandlerError,
)
from db_sync.schema.handler import Behaviour
from db_sync.schema.introspector import SchemaIntrospector
from db_sync.schema.models import DiffResult, TableState
from db_sync.schema.table import Table

__all__ = [
    # Adapters
    "DatabaseDriver",
    "SchemaReflector",
    "AsyncPostgresDriver",
    # Config
    "load_db_config",
    "DatabaseProfile",
    "DatabaseConfig",
    # Dialects
    "get_dialect",
    # Factory
    "get_active_profile",
    "get_driver",
    "load_tables",
    "ProfileNotFoundError",
    "resolve_url",
    # Schema
    "Table",
    "TableState",
    "DiffResult",
    "Behaviour",
    "compare",
    "SynchronizationBus",
    "synchronize",
    "SchemaIntrospector",
    "SchemaError",
    "PrimaryKeyChangeError",
    "SchemaHandlerError",
    "CircularDependencyError",
]
