"""Schema state diffing and synchronization.

Provides the descriptor models, the ``Table`` aggregate with its builders,
the state comparator (``compare``), the DDL executor (``SchemaHandler``),
the dependency sorter, the synchronization bus and PostgreSQL reflection
(``SchemaIntrospector``).

Usage:
    from db_sync.schema import Table, SynchronizationBus, SchemaIntrospector
    from db_sync.schema import compare, DiffResult, Behaviour
"""

from db_sync.schema.builders import ColumnBuilder, ForeignKeyBuilder, IndexBuilder
from db_sync.schema.bus import SynchronizationBus, synchronize
from db_sync.schema.comparator import compare
from db_sync.schema.definitions import (
    ForeignKeyDef,
    IndexDef,
    SchemaDefinition,
    TableDef,
    declare_column,
    load_schema_definition,
    render_table,
)
from db_sync.schema.exceptions import (
    AlterNotSupportedError,
    CircularDependencyError,
    DefinitionError,
    PrimaryKeyChangeError,
    SchemaError,
    SchemaHandlerError,
)
from db_sync.schema.handler import Behaviour, SchemaHandler
from db_sync.schema.introspector import SchemaIntrospector
from db_sync.schema.models import (
    ColumnSchema,
    DiffResult,
    ForeignKeySchema,
    IndexSchema,
    SqlExpression,
    TableState,
)
from db_sync.schema.sorter import DependencySorter, sort_tables
from db_sync.schema.table import Table

__all__ = [
    "Table",
    "TableState",
    "ColumnSchema",
    "IndexSchema",
    "ForeignKeySchema",
    "SqlExpression",
    "DiffResult",
    "ColumnBuilder",
    "IndexBuilder",
    "ForeignKeyBuilder",
    "compare",
    "Behaviour",
    "SchemaHandler",
    "DependencySorter",
    "sort_tables",
    "SynchronizationBus",
    "synchronize",
    "SchemaIntrospector",
    "SchemaDefinition",
    "TableDef",
    "IndexDef",
    "ForeignKeyDef",
    "declare_column",
    "load_schema_definition",
    "render_table",
    "SchemaError",
    "PrimaryKeyChangeError",
    "AlterNotSupportedError",
    "DefinitionError",
    "SchemaHandlerError",
    "CircularDependencyError",
]
