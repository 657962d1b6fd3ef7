"""Database drivers package.

Provides the ``DatabaseDriver`` and ``SchemaReflector`` Protocols and the
async PostgreSQL driver.

Usage:
    from db_sync.adapters import DatabaseDriver, AsyncPostgresDriver
"""

from db_sync.adapters.base import DatabaseDriver, SchemaReflector
from db_sync.adapters.postgres import AsyncPostgresDriver

__all__ = [
    "DatabaseDriver",
    "SchemaReflector",
    "AsyncPostgresDriver",
]
