"""
Pytest configuration and shared fixtures.

This module provides:
- Environment variable setup for tests
- A SQLite-backed PostgresAdapter with a ``users`` table
- A MongoAdapter over an in-memory mongomock-motor client
- A shared seed dataset for cross-backend tests
"""

import os

import pytest


# Set test environment variables BEFORE any imports
# This must happen first to ensure settings load with test values
os.environ["REPOKIT_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["REPOKIT_MONGO_URL"] = "mongodb://localhost:27017/repokit_test"
os.environ["REPOKIT_DEFAULT_PAGE_LIMIT"] = "20"
os.environ["REPOKIT_LOG_JSON"] = "false"

from mongomock_motor import AsyncMongoMockClient  # noqa: E402
from sqlalchemy import Column, DateTime, Integer, MetaData, String, Table  # noqa: E402

from repokit.adapters import MongoAdapter, PostgresAdapter  # noqa: E402
from repokit.core.config import MongoDatabaseConfig, PostgresDatabaseConfig  # noqa: E402


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_MONGO_URL = "mongodb://localhost:27017/repokit_test"

# Five people; one without a status so null handling is exercised
PEOPLE = [
    {"name": "Ada", "email": "ada@example.com", "age": 36, "status": "active"},
    {"name": "Grace", "email": "grace@example.com", "age": 45, "status": "active"},
    {"name": "Alan", "email": "alan@example.org", "age": 41, "status": "inactive"},
    {"name": "Edsger", "email": "edsger@example.org", "age": 29, "status": "pending"},
    {"name": "Barbara", "email": "barbara@example.com", "age": 52, "status": None},
]


def build_users_table(metadata: MetaData) -> Table:
    return Table(
        "users",
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("name", String(100), nullable=False),
        Column("email", String(255), unique=True),
        Column("age", Integer),
        Column("status", String(20)),
        Column("created_at", DateTime(timezone=True)),
        Column("updated_at", DateTime(timezone=True)),
        Column("deleted_at", DateTime(timezone=True)),
    )


@pytest.fixture
def anyio_backend():
    """
    Configure anyio backend for async tests.

    Returns:
        str: Backend name ("asyncio")
    """
    return "asyncio"


@pytest.fixture
def people():
    """Fresh copies of the shared seed dataset."""
    return [dict(person) for person in PEOPLE]


@pytest.fixture
def metadata():
    return MetaData()


@pytest.fixture
def users_table(metadata):
    return build_users_table(metadata)


@pytest.fixture
async def sql_adapter(metadata, users_table):
    """
    Provide a connected PostgresAdapter over in-memory SQLite.

    Creates tables before the test and disposes the engine after.
    """
    adapter = PostgresAdapter(PostgresDatabaseConfig(connection_string=TEST_DATABASE_URL))
    engine = adapter.connect()

    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    yield adapter

    await adapter.disconnect()


@pytest.fixture
async def mongo_adapter():
    """Provide a connected MongoAdapter over an in-memory mock client."""
    adapter = MongoAdapter(
        MongoDatabaseConfig(connection_string=TEST_MONGO_URL),
        client=AsyncMongoMockClient(),
    )
    await adapter.connect()

    yield adapter

    await adapter.disconnect()
