"""
Centralized configuration management using Pydantic Settings.

This module provides type-safe configuration with validation, loading
settings from environment variables (``REPOKIT_`` prefix) and .env files,
plus the per-backend connection config models consumed by the adapters.
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Async drivers only; create_async_engine rejects sync dialects
VALID_DATABASE_SCHEMES = [
    "sqlite+aiosqlite",
    "postgresql+asyncpg",
    "postgresql+psycopg",
]


def check_database_url(v: str) -> str:
    """Validate that a database URL uses a supported scheme."""
    if not v or v.strip() == "":
        raise ValueError("REPOKIT_DATABASE_URL is required and cannot be empty")

    if not any(v.startswith(scheme + "://") for scheme in VALID_DATABASE_SCHEMES):
        raise ValueError(
            f"REPOKIT_DATABASE_URL must start with one of: "
            f"{', '.join(VALID_DATABASE_SCHEMES)}. Got: {v[:20]}..."
        )
    return v


class Settings(BaseSettings):
    """
    Library settings loaded from environment variables.

    All settings can be overridden via environment variables, e.g.
    ``REPOKIT_DEFAULT_PAGE_LIMIT=50``.
    """

    # Document store
    mongo_url: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection string"
    )
    mongo_database: str = Field(
        default="repokit",
        description="Database used when the connection string names none"
    )

    # Relational store
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/repokit",
        description="SQLAlchemy async database URL"
    )

    # Connection pool
    max_pool_size: int = Field(
        default=10,
        ge=1,
        description="Maximum number of pooled connections per adapter"
    )
    server_selection_timeout_ms: int = Field(
        default=5000,
        ge=0,
        description="How long the Mongo driver waits to find a server"
    )

    # Repository defaults
    default_page_limit: int = Field(
        default=20,
        ge=1,
        description="Page size used by find_page when no valid limit is given"
    )

    # Transactions
    transaction_timeout_ms: Optional[int] = Field(
        default=None,
        ge=1,
        description="Default statement / commit timeout for transactions"
    )
    transaction_retries: int = Field(
        default=0,
        ge=0,
        description="Retries for transactions failing with transient errors"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Root log level used by setup_logging()"
    )
    log_json: bool = Field(
        default=True,
        description="Emit JSON log lines (False for plain text)"
    )

    # Pydantic Settings Configuration
    model_config = SettingsConfigDict(
        env_prefix="REPOKIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """
        Validate database URL format.

        Supports PostgreSQL (production) and SQLite (local and tests).
        """
        return check_database_url(v)

    @field_validator("mongo_url")
    @classmethod
    def validate_mongo_url(cls, v: str) -> str:
        """Mongo URLs must use the mongodb:// or mongodb+srv:// scheme."""
        if not v.startswith(("mongodb://", "mongodb+srv://")):
            raise ValueError(
                f"REPOKIT_MONGO_URL must start with mongodb:// or mongodb+srv://. "
                f"Got: {v[:20]}..."
            )
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


# Global settings instance
settings = Settings()


class MongoDatabaseConfig(BaseModel):
    """Connection config for MongoAdapter."""

    connection_string: str = Field(default_factory=lambda: settings.mongo_url)
    database: Optional[str] = Field(
        default=None,
        description="Database name; falls back to the URL path, then settings"
    )
    max_pool_size: int = Field(default_factory=lambda: settings.max_pool_size)
    server_selection_timeout_ms: int = Field(
        default_factory=lambda: settings.server_selection_timeout_ms
    )


class PostgresDatabaseConfig(BaseModel):
    """Connection config for PostgresAdapter."""

    connection_string: str = Field(default_factory=lambda: settings.database_url)
    pool_size: int = Field(default_factory=lambda: settings.max_pool_size)
    echo: bool = False

    @field_validator("connection_string")
    @classmethod
    def validate_connection_string(cls, v: str) -> str:
        return check_database_url(v)
