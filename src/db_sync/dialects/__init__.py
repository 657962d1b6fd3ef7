"""SQL dialects for DDL generation.

Usage:
    from db_sync.dialects import get_dialect

    dialect = get_dialect("postgres")
"""

from db_sync.dialects.base import DialectOps, GenericDialect
from db_sync.dialects.mysql import MySQLDialect
from db_sync.dialects.postgres import PostgresDialect

_DIALECTS: dict[str, type[GenericDialect]] = {
    "generic": GenericDialect,
    "postgres": PostgresDialect,
    "postgresql": PostgresDialect,
    "mysql": MySQLDialect,
}


def get_dialect(name: str) -> DialectOps:
    """Return a dialect instance by name.

    Raises:
        ValueError: If the dialect is unknown.
    """
    try:
        return _DIALECTS[name.lower()]()
    except KeyError:
        raise ValueError(
            f"Unknown dialect '{name}'. Available: {', '.join(sorted(_DIALECTS))}"
        ) from None


__all__ = [
    "DialectOps",
    "GenericDialect",
    "MySQLDialect",
    "PostgresDialect",
    "get_dialect",
]
