"""Pydantic models for database configuration."""

from pydantic import BaseModel


# ============================================================================
# Configuration Models
# ============================================================================


class DatabaseProfile(BaseModel):
    """Database connection profile from db.toml."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    dialect: str = "postgres"
    prefix: str = ""  # Prepended to every table name of the schema file
    read_only: bool = False  # Never synchronized


class DatabaseConfig(BaseModel):
    """Complete database configuration from db.toml."""

    profiles: dict[str, DatabaseProfile]
    schema_file: str = "schema.toml"
    drop_undeclared: bool = False
