"""CLI module for declarative schema synchronization.

Provides commands for database profile management and for diffing and
synchronizing a live database against a TOML schema file.

Usage:
    db-sync profiles
    db-sync status
    DB_PROFILE=local db-sync diff
    db-sync sync --dry-run
    db-sync sync --confirm --drop-undeclared

Commands:
    profiles  - List available profiles
    status    - Show current profile
    diff      - Show differences between the schema file and the database
    sync      - Apply the schema file to the database
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from db_sync.config.loader import load_db_config
from db_sync.config.models import DatabaseConfig, DatabaseProfile
from db_sync.factory import (
    ProfileNotFoundError,
    get_active_profile,
    get_driver,
    load_tables,
    read_profile_lock,
    resolve_url,
    write_profile_lock,
)
from db_sync.schema.bus import synchronize
from db_sync.schema.definitions import load_schema_definition
from db_sync.schema.exceptions import SchemaError
from db_sync.schema.introspector import SchemaIntrospector
from db_sync.schema.models import DiffResult
from db_sync.schema.table import Table as SchemaTable

console = Console()

logger = logging.getLogger(__name__)


# ============================================================================
# Shared helpers
# ============================================================================


def _resolve(args: argparse.Namespace) -> tuple[str, DatabaseProfile, DatabaseConfig] | None:
    """Resolve the active profile and config, printing errors.

    Returns:
        Tuple of (profile_name, profile, config), or None on failure.
    """
    env_prefix = getattr(args, "env_prefix", "")
    profile_name = getattr(args, "profile", None)

    try:
        config = load_db_config()
        profile_name, profile = get_active_profile(
            profile_name=profile_name, env_prefix=env_prefix
        )
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return None
    except ProfileNotFoundError as e:
        console.print(f"[yellow]{e}[/yellow]")
        return None

    return profile_name, profile, config


async def _load_tables(
    args: argparse.Namespace,
    profile: DatabaseProfile,
    config: DatabaseConfig,
    driver,
) -> list[SchemaTable]:
    """Reflect the database and declare the schema file on every table."""
    schema_file = getattr(args, "schema_file", None) or config.schema_file
    definition = load_schema_definition(Path(schema_file))

    async with SchemaIntrospector(resolve_url(profile)) as introspector:
        return await load_tables(driver, introspector, definition, profile.prefix)


def _collect_diffs(tables: list[SchemaTable], drop_undeclared: bool) -> list[DiffResult]:
    return [
        table.diff(
            drop_undeclared_columns=drop_undeclared,
            drop_undeclared_indexes=drop_undeclared,
            drop_undeclared_foreigns=drop_undeclared,
        )
        for table in tables
    ]


def _print_diffs(tables: list[SchemaTable], diffs: list[DiffResult]) -> int:
    """Print a summary table and a report per changed table.

    Returns:
        Number of tables with pending changes.
    """
    summary = Table(title="Schema Differences", show_header=True, header_style="bold")
    summary.add_column("Table")
    summary.add_column("Status")
    summary.add_column("Changes", justify="right")

    pending = 0
    for table, diff in zip(tables, diffs):
        if not table.exists:
            status = "[bold green]NEW TABLE[/bold green]"
            pending += 1
        elif diff.primary_changed:
            status = "[bold red]PRIMARY KEY CHANGED[/bold red]"
            pending += 1
        elif diff.has_changes():
            status = "[bold yellow]CHANGED[/bold yellow]"
            pending += 1
        else:
            status = "[green]in sync[/green]"
        summary.add_row(table.name, status, str(diff.change_count))

    console.print(summary)

    for table, diff in zip(tables, diffs):
        if table.exists and diff.has_changes():
            console.print()
            console.print(diff.format_report())

    return pending


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_diff(args: argparse.Namespace) -> int:
    """Async implementation for diff command.

    Args:
        args: Parsed arguments with env_prefix, profile, schema_file and
            drop_undeclared.

    Returns:
        0 when the database is in sync, 1 on pending changes or failure.
    """
    resolved = _resolve(args)
    if resolved is None:
        return 1
    profile_name, profile, config = resolved
    drop_undeclared = args.drop_undeclared or config.drop_undeclared

    console.print(f"Comparing schema for profile: [bold cyan]{profile_name}[/bold cyan]")

    try:
        driver = get_driver(profile)
    except ValueError as e:
        console.print(f"\n[red]Error: {e}[/red]")
        return 1

    try:
        tables = await _load_tables(args, profile, config, driver)
        diffs = _collect_diffs(tables, drop_undeclared)
    except (FileNotFoundError, ValueError, SchemaError) as e:
        console.print(f"\n[red]Error: {e}[/red]")
        return 1
    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] Connection failed: {e}")
        return 1
    finally:
        await driver.close()

    console.print()
    pending = _print_diffs(tables, diffs)

    if not pending:
        console.print("\n[bold green]v[/bold green] Database matches the schema file")
        return 0
    return 1


async def _async_sync(args: argparse.Namespace) -> int:
    """Async implementation for sync command.

    Shows the pending changes; applies them only with ``--confirm``.

    Args:
        args: Parsed arguments with env_prefix, profile, schema_file,
            drop_undeclared, dry_run and confirm.

    Returns:
        0 on success, 1 on failure.
    """
    resolved = _resolve(args)
    if resolved is None:
        return 1
    profile_name, profile, config = resolved
    drop_undeclared = args.drop_undeclared or config.drop_undeclared

    if profile.read_only:
        console.print(
            f"[bold red]x[/bold red] Profile [bold]{profile_name}[/bold] is read-only; "
            "refusing to synchronize."
        )
        return 1

    console.print(f"Synchronizing profile: [bold cyan]{profile_name}[/bold cyan]")

    try:
        driver = get_driver(profile)
    except ValueError as e:
        console.print(f"\n[red]Error: {e}[/red]")
        return 1

    try:
        try:
            tables = await _load_tables(args, profile, config, driver)
            diffs = _collect_diffs(tables, drop_undeclared)
        except (FileNotFoundError, ValueError, SchemaError) as e:
            console.print(f"\n[red]Error: {e}[/red]")
            return 1
        except Exception as e:
            console.print(f"\n[bold red]Error:[/bold red] Connection failed: {e}")
            return 1

        console.print()
        pending = _print_diffs(tables, diffs)

        if not pending:
            console.print("\n[bold green]v[/bold green] Nothing to synchronize")
            return 0

        if args.dry_run or not args.confirm:
            console.print()
            console.print(
                "[dim]To apply changes, add[/dim] [cyan]--confirm[/cyan] [dim]flag.[/dim]"
            )
            return 0

        console.print()
        console.print("[bold]Applying changes...[/bold]")
        try:
            await synchronize(tables, logger=logger, drop_undeclared=drop_undeclared)
        except Exception as e:
            console.print(f"\n[bold red]x[/bold red] Synchronization failed: {e}")
            console.print("[dim]All changes were rolled back.[/dim]")
            return 1
    finally:
        await driver.close()

    write_profile_lock(profile_name)
    console.print()
    console.print(f"[bold green]v Synchronized {pending} table(s)[/bold green]")
    return 0


# ============================================================================
# Sync command wrappers (cmd_status, cmd_profiles read local files only)
# ============================================================================


def cmd_status(args: argparse.Namespace) -> int:
    """Show current profile.

    Reads only local files (lock file and TOML config) -- no database calls.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 always (informational command).
    """
    profile = read_profile_lock()

    if profile:
        table = Table(title="Connection Status", show_header=False)
        table.add_column("Key", style="dim")
        table.add_column("Value")

        table.add_row("Current profile", f"[bold cyan]{profile}[/bold cyan]")
        table.add_row("Profile source", ".db-profile (last synchronized)")

        try:
            config = load_db_config()
            if profile in config.profiles:
                p = config.profiles[profile]
                table.add_row("Dialect", p.dialect)
                if p.prefix:
                    table.add_row("Table prefix", p.prefix)
                if p.read_only:
                    table.add_row("Mode", "[yellow]read-only[/yellow]")
                if p.description:
                    table.add_row("Description", p.description)
            table.add_row("Schema file", config.schema_file)
        except FileNotFoundError:
            table.add_row("Warning", "[yellow]db.toml not found[/yellow]")

        console.print(table)
    else:
        console.print("[yellow]No active profile.[/yellow]")
        console.print("[dim]Run:[/dim] [cyan]DB_PROFILE=<name> db-sync sync --confirm[/cyan]")

    return 0


def cmd_profiles(args: argparse.Namespace) -> int:
    """List available profiles from db.toml.

    Reads only local TOML config -- no database calls.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 on success, 1 if db.toml not found.
    """
    try:
        config = load_db_config()
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    current = read_profile_lock()

    table = Table(title="Database Profiles", show_header=True, header_style="bold")
    table.add_column("", width=2)
    table.add_column("Profile")
    table.add_column("Dialect")
    table.add_column("Prefix")
    table.add_column("Description")

    for name, profile in config.profiles.items():
        marker = "[bold green]*[/bold green]" if name == current else " "
        name_style = "bold cyan" if name == current else ""
        description = profile.description or ""
        if profile.read_only:
            description = f"{description} [yellow](read-only)[/yellow]".strip()
        table.add_row(
            marker,
            f"[{name_style}]{name}[/{name_style}]" if name_style else name,
            profile.dialect,
            profile.prefix,
            description,
        )

    console.print(table)

    if current:
        console.print("\n[bold green]*[/bold green] = current profile")

    return 0


def cmd_diff(args: argparse.Namespace) -> int:
    """Show differences between the schema file and the database.

    Wraps the async implementation with ``asyncio.run()``.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 when in sync, 1 otherwise.
    """
    return asyncio.run(_async_diff(args))


def cmd_sync(args: argparse.Namespace) -> int:
    """Apply the schema file to the database.

    Wraps the async implementation with ``asyncio.run()``.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 on success, 1 on failure.
    """
    return asyncio.run(_async_sync(args))


# ============================================================================
# Main entry point
# ============================================================================


def _add_schema_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--profile",
        "-p",
        default=None,
        help="Profile to use (default: DB_PROFILE env var or .db-profile)",
    )
    parser.add_argument(
        "--schema-file",
        default=None,
        help="Path to TOML schema file (default: [schema] file in db.toml)",
    )
    parser.add_argument(
        "--drop-undeclared",
        action="store_true",
        help="Drop columns, indexes and foreign keys missing from the schema file",
    )


def main() -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = argparse.ArgumentParser(
        prog="db-sync",
        description="Declarative database schema synchronization",
    )

    # Global option: --env-prefix
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_DB_PROFILE)"
        ),
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # profiles command
    p_profiles = subparsers.add_parser(
        "profiles",
        help="List available profiles",
    )
    p_profiles.set_defaults(func=cmd_profiles)

    # status command
    p_status = subparsers.add_parser(
        "status",
        help="Show current profile",
    )
    p_status.set_defaults(func=cmd_status)

    # diff command
    p_diff = subparsers.add_parser(
        "diff",
        help="Show differences between the schema file and the database",
    )
    _add_schema_arguments(p_diff)
    p_diff.set_defaults(func=cmd_diff)

    # sync command
    p_sync = subparsers.add_parser(
        "sync",
        help="Apply the schema file to the database",
    )
    _add_schema_arguments(p_sync)
    p_sync.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would change without making changes",
    )
    p_sync.add_argument(
        "--confirm",
        action="store_true",
        help="Actually apply the changes (required for non-dry-run)",
    )
    p_sync.set_defaults(func=cmd_sync)

    args = parser.parse_args()
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
