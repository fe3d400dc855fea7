"""
Backend adapters: connection ownership, repository construction and
transactions.
"""

from repokit.adapters.base import DatabaseAdapter, HealthCheckResult
from repokit.adapters.mongo import MongoAdapter
from repokit.adapters.postgres import PostgresAdapter, create_engine_from_config

__all__ = [
    "DatabaseAdapter",
    "HealthCheckResult",
    "MongoAdapter",
    "PostgresAdapter",
    "create_engine_from_config",
]
