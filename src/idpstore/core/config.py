"""
Application configuration management using Pydantic Settings.

Loads configuration from environment variables and .env files.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Version of the table layout produced by a fresh ``ensure_schema()``.
CURRENT_SCHEMA_VERSION = "1.5"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Application Settings
    # ==========================================================================
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Logging level")
    json_logs: bool = Field(default=False, description="Emit JSON formatted logs")

    app_name: str = Field(default="idpstore", description="Application name")

    # ==========================================================================
    # Database Configuration
    # ==========================================================================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./idpstore.db",
        description="SQLAlchemy async connection string",
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size")
    db_max_overflow: int = Field(default=10, description="Max overflow connections")
    db_pool_timeout: int = Field(default=30, description="Pool timeout in seconds")

    # Charset/collation applied to created tables (MySQL/MariaDB only)
    db_charset: str | None = Field(default="utf8mb4", description="Default table charset")
    db_collate: str | None = Field(default=None, description="Default table collation")

    @field_validator("database_url", mode="before")
    @classmethod
    def validate_database_url(cls, v: str, info) -> str:
        """Use async drivers and refuse throwaway SQLite files in production."""
        if v.startswith("postgresql://"):
            v = v.replace("postgresql://", "postgresql+asyncpg://", 1)
        elif v.startswith("mysql://"):
            v = v.replace("mysql://", "mysql+aiomysql://", 1)
        elif v.startswith("sqlite://"):
            v = v.replace("sqlite://", "sqlite+aiosqlite://", 1)

        environment = info.data.get("environment", "development")
        if environment == "production" and v.startswith("sqlite"):
            raise ValueError(
                "DATABASE_URL must point to a server database in production. "
                "SQLite detected. Set DATABASE_URL environment variable."
            )
        return v

    # ==========================================================================
    # Table Naming
    # ==========================================================================
    table_prefix: str = Field(default="wp_", description="Prefix for host and store tables")
    multisite: bool = Field(
        default=False,
        description="Share unprefixed store tables across all sites of a network",
    )

    @field_validator("table_prefix")
    @classmethod
    def validate_table_prefix(cls, v: str) -> str:
        """Table prefixes end up in DDL, so only identifier characters are allowed."""
        if v and not v.replace("_", "").isalnum():
            raise ValueError(f"Invalid table prefix: {v!r}")
        return v

    # ==========================================================================
    # Schema Versioning
    # ==========================================================================
    schema_version_option: str = Field(
        default="idp_store_db_version",
        description="Site option holding the installed schema version",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


# Global settings instance
settings = get_settings()
