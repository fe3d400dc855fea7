"""
Repository layer for data access.

Provides one repository contract over MongoDB and SQL backends, isolating
application code from either store's native client.
"""

from repokit.repositories.base import (
    SOFT_DELETE_OPERATIONS,
    Repository,
    SoftDeleteMixin,
    repository_class,
    supports_soft_delete,
)
from repokit.repositories.hooks import HookContext, Hooks
from repokit.repositories.mongo import MongoRepository, create_mongo_repository
from repokit.repositories.options import (
    MongoRepositoryOptions,
    PageRequest,
    PageResult,
    RepositoryOptions,
    SqlRepositoryOptions,
)
from repokit.repositories.policies import UNSET
from repokit.repositories.sql import SqlRepository, create_sql_repository

__all__ = [
    "SOFT_DELETE_OPERATIONS",
    "UNSET",
    "HookContext",
    "Hooks",
    "MongoRepository",
    "MongoRepositoryOptions",
    "PageRequest",
    "PageResult",
    "Repository",
    "RepositoryOptions",
    "SoftDeleteMixin",
    "SqlRepository",
    "SqlRepositoryOptions",
    "create_mongo_repository",
    "create_sql_repository",
    "repository_class",
    "supports_soft_delete",
]
