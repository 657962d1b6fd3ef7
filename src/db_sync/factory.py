"""Profile resolution and driver factory.

Configuration comes from ``db.toml`` profiles.  The active profile is taken
from the ``{PREFIX}DB_PROFILE`` environment variable or from the
``.db-profile`` lock file written by a previous successful run.

Usage:
    profile_name, profile = get_active_profile()
    driver = get_driver(profile)
    async with SchemaIntrospector(resolve_url(profile)) as introspector:
        tables = await load_tables(driver, introspector, definition, profile.prefix)
"""

import os
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import quote

from db_sync.adapters.postgres import AsyncPostgresDriver
from db_sync.config.loader import load_db_config
from db_sync.config.models import DatabaseProfile
from db_sync.schema.definitions import SchemaDefinition, render_table
from db_sync.schema.table import Table

if TYPE_CHECKING:
    from db_sync.adapters.base import DatabaseDriver, SchemaReflector

# Profile lock file path
_PROFILE_LOCK_FILE = Path.cwd() / ".db-profile"


# ============================================================================
# Profile Lock File Operations
# ============================================================================


class ProfileNotFoundError(Exception):
    """Raised when no database profile is configured."""

    pass


def read_profile_lock() -> str | None:
    """Read profile name from lock file.

    Returns:
        Profile name if lock file exists, None otherwise
    """
    if _PROFILE_LOCK_FILE.exists():
        return _PROFILE_LOCK_FILE.read_text().strip()
    return None


def write_profile_lock(profile_name: str) -> None:
    """Write profile name to lock file.

    Args:
        profile_name: Name of a profile that connected successfully
    """
    _PROFILE_LOCK_FILE.write_text(profile_name)


def clear_profile_lock() -> None:
    """Remove profile lock file."""
    if _PROFILE_LOCK_FILE.exists():
        _PROFILE_LOCK_FILE.unlink()


def get_active_profile_name(env_prefix: str = "") -> str:
    """Get active profile name from env var or lock file.

    Priority:
    1. {env_prefix}DB_PROFILE env var
    2. .db-profile file (profile from previous run)
    3. Raise ProfileNotFoundError

    Args:
        env_prefix: Prefix of the environment variable, e.g. ``"MYAPP_"``
            reads ``MYAPP_DB_PROFILE``.

    Returns:
        Profile name

    Raises:
        ProfileNotFoundError: If no profile is configured
    """
    env_var = f"{env_prefix}DB_PROFILE"
    env_profile = os.environ.get(env_var)
    if env_profile:
        return env_profile

    lock_profile = read_profile_lock()
    if lock_profile:
        return lock_profile

    raise ProfileNotFoundError(
        "No database profile configured.\n"
        f"Run: {env_var}=<name> db-sync diff\n"
        "List profiles with: db-sync profiles"
    )


def get_active_profile(
    profile_name: str | None = None,
    env_prefix: str = "",
    config_path: Path | None = None,
) -> tuple[str, DatabaseProfile]:
    """Get active profile name and configuration.

    Args:
        profile_name: Explicit profile; resolved from env/lock file when None.
        env_prefix: Environment variable prefix for profile resolution.
        config_path: Path to db.toml (default: ./db.toml).

    Returns:
        Tuple of (profile_name, DatabaseProfile)

    Raises:
        ProfileNotFoundError: If no profile configured or the profile is not
            defined in db.toml
        FileNotFoundError: If db.toml does not exist
    """
    if profile_name is None:
        profile_name = get_active_profile_name(env_prefix)
    config = load_db_config(config_path)

    if profile_name not in config.profiles:
        raise ProfileNotFoundError(
            f"Profile '{profile_name}' not found in db.toml.\n"
            f"Available profiles: {', '.join(config.profiles.keys())}"
        )

    return profile_name, config.profiles[profile_name]


# ============================================================================
# Drivers and Tables
# ============================================================================


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve profile URL with password substitution.

    Args:
        profile: Database profile from config

    Returns:
        Connection URL with password substituted
    """
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))
    return url


def get_driver(profile: DatabaseProfile) -> "DatabaseDriver":
    """Create the driver matching the profile dialect.

    Raises:
        ValueError: If no driver exists for the profile dialect.
    """
    if profile.dialect.lower() in ("postgres", "postgresql"):
        return AsyncPostgresDriver(resolve_url(profile))

    raise ValueError(
        f"No driver available for dialect '{profile.dialect}'. Supported: postgres"
    )


async def load_tables(
    driver: "DatabaseDriver",
    reflector: "SchemaReflector",
    definition: SchemaDefinition,
    prefix: str = "",
) -> list[Table]:
    """Reflect every defined table and declare its definition on it.

    Tables which do not exist yet are returned with an empty shadow
    snapshot, so saving them creates them.

    Raises:
        DefinitionError: On a malformed column definition.
    """
    tables = []
    for name, table_def in definition.tables.items():
        table = await Table.from_database(driver, reflector, name, prefix=prefix)
        render_table(table, table_def)
        tables.append(table)
    return tables
