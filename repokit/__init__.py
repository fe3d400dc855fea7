"""
repokit - one async repository contract over MongoDB and SQL databases.

Typical use:

    from repokit import PostgresAdapter, SqlRepositoryOptions

    adapter = PostgresAdapter()
    adapter.connect()
    users = adapter.create_repository(SqlRepositoryOptions(table=users_table, timestamps=True))
    await users.create({"email": "ada@example.com"})
"""

from repokit.adapters import DatabaseAdapter, HealthCheckResult, MongoAdapter, PostgresAdapter
from repokit.core.config import MongoDatabaseConfig, PostgresDatabaseConfig, Settings, settings
from repokit.core.exceptions import (
    BackendFailure,
    NotConnected,
    RepositoryError,
    TransactionAborted,
    UnsupportedOperator,
    ValidationFailure,
)
from repokit.core.logging_config import setup_logging
from repokit.filters import FilterTranslator, MongoFilterTranslator, Operator, SqlFilterTranslator
from repokit.repositories import (
    UNSET,
    HookContext,
    Hooks,
    MongoRepository,
    MongoRepositoryOptions,
    PageRequest,
    PageResult,
    Repository,
    RepositoryOptions,
    SqlRepository,
    SqlRepositoryOptions,
    supports_soft_delete,
)
from repokit.transactions import TransactionContext, TransactionOptions, TransactionState

__version__ = "0.1.0"

__all__ = [
    "UNSET",
    "BackendFailure",
    "DatabaseAdapter",
    "FilterTranslator",
    "HealthCheckResult",
    "HookContext",
    "Hooks",
    "MongoAdapter",
    "MongoDatabaseConfig",
    "MongoFilterTranslator",
    "MongoRepository",
    "MongoRepositoryOptions",
    "NotConnected",
    "Operator",
    "PageRequest",
    "PageResult",
    "PostgresAdapter",
    "PostgresDatabaseConfig",
    "Repository",
    "RepositoryError",
    "RepositoryOptions",
    "Settings",
    "SqlFilterTranslator",
    "SqlRepository",
    "SqlRepositoryOptions",
    "TransactionAborted",
    "TransactionContext",
    "TransactionOptions",
    "TransactionState",
    "UnsupportedOperator",
    "ValidationFailure",
    "settings",
    "setup_logging",
    "supports_soft_delete",
]
