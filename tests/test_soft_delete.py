"""
Soft-delete behavior on both backends.

The same scenarios run against SQLite and mongomock-motor through the
``soft_repo`` fixture, parametrized by backend.
"""

import pytest
from mongomock_motor import AsyncMongoMockClient

from repokit.adapters import MongoAdapter, PostgresAdapter
from repokit.core.config import MongoDatabaseConfig, PostgresDatabaseConfig
from repokit.repositories import (
    SOFT_DELETE_OPERATIONS,
    MongoRepositoryOptions,
    SqlRepositoryOptions,
    supports_soft_delete,
)

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_MONGO_URL = "mongodb://localhost:27017/repokit_test"


@pytest.fixture(params=["postgres", "mongo"])
def backend(request):
    return request.param


@pytest.fixture
async def soft_repo(backend, metadata, users_table):
    """Soft-delete, timestamped repository over the ``users`` table/collection."""
    if backend == "postgres":
        adapter = PostgresAdapter(PostgresDatabaseConfig(connection_string=TEST_DATABASE_URL))
        engine = adapter.connect()
        async with engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
        options = SqlRepositoryOptions(table=users_table, soft_delete=True, timestamps=True)
    else:
        adapter = MongoAdapter(
            MongoDatabaseConfig(connection_string=TEST_MONGO_URL),
            client=AsyncMongoMockClient(),
        )
        await adapter.connect()
        options = MongoRepositoryOptions(collection="users", soft_delete=True, timestamps=True)

    yield adapter.create_repository(options)

    await adapter.disconnect()


def pk(repo, entity):
    return entity[repo.primary_key]


class TestSoftDeleteCapability:
    """Test that the soft-delete surface exists only when enabled."""

    @pytest.mark.anyio
    async def test_operations_present(self, soft_repo):
        assert supports_soft_delete(soft_repo)
        for name in SOFT_DELETE_OPERATIONS:
            assert callable(getattr(soft_repo, name))

    @pytest.mark.anyio
    async def test_default_field_names_follow_backend(self, soft_repo, backend):
        expected = "deleted_at" if backend == "postgres" else "deletedAt"

        assert soft_repo.soft_delete_field == expected


class TestSoftDeleteVisibility:
    """Test that deleted records disappear from live reads only."""

    @pytest.mark.anyio
    async def test_delete_hides_record(self, soft_repo, people):
        rows = await soft_repo.insert_many(people)
        ada = rows[0]

        assert await soft_repo.delete_by_id(pk(soft_repo, ada)) is True

        assert await soft_repo.find_by_id(pk(soft_repo, ada)) is None
        assert await soft_repo.count() == 4
        assert await soft_repo.exists({"name": "Ada"}) is False
        assert "Ada" not in [row["name"] for row in await soft_repo.find_all()]
        assert (await soft_repo.find_page(page=1, limit=10)).total == 4
        assert [row["name"] for row in await soft_repo.find_deleted()] == ["Ada"]
        assert len(await soft_repo.find_all_with_deleted()) == 5

    @pytest.mark.anyio
    async def test_soft_delete_is_idempotent(self, soft_repo):
        user = await soft_repo.create({"name": "Ada"})

        assert await soft_repo.soft_delete(pk(soft_repo, user)) is True
        assert await soft_repo.soft_delete(pk(soft_repo, user)) is False
        assert len(await soft_repo.find_deleted()) == 1

    @pytest.mark.anyio
    async def test_deleted_record_cannot_be_updated(self, soft_repo):
        user = await soft_repo.create({"name": "Ada", "age": 36})
        await soft_repo.delete_by_id(pk(soft_repo, user))

        assert await soft_repo.update_by_id(pk(soft_repo, user), {"age": 37}) is None
        assert await soft_repo.update_many({"name": "Ada"}, {"age": 37}) == 0

    @pytest.mark.anyio
    async def test_caller_cannot_reach_deleted_through_filter(self, soft_repo):
        user = await soft_repo.create({"name": "Ada"})
        await soft_repo.delete_by_id(pk(soft_repo, user))

        found = await soft_repo.find_all({soft_repo.soft_delete_field: {"notNull": True}})

        assert found == []

    @pytest.mark.anyio
    async def test_delete_many_counts_only_live(self, soft_repo, people):
        await soft_repo.insert_many(people)

        assert await soft_repo.delete_many({"status": "active"}) == 2
        assert await soft_repo.delete_many({"status": "active"}) == 0
        assert await soft_repo.count() == 3


class TestRestore:
    """Test restoring soft-deleted records."""

    @pytest.mark.anyio
    async def test_restore_returns_live_record(self, soft_repo):
        user = await soft_repo.create({"name": "Ada"})
        await soft_repo.delete_by_id(pk(soft_repo, user))

        restored = await soft_repo.restore(pk(soft_repo, user))

        assert restored["name"] == "Ada"
        assert restored.get(soft_repo.soft_delete_field) is None
        assert await soft_repo.find_by_id(pk(soft_repo, user)) is not None

    @pytest.mark.anyio
    async def test_restore_is_idempotent(self, soft_repo):
        user = await soft_repo.create({"name": "Ada"})
        await soft_repo.delete_by_id(pk(soft_repo, user))

        assert await soft_repo.restore(pk(soft_repo, user)) is not None
        assert await soft_repo.restore(pk(soft_repo, user)) is None

    @pytest.mark.anyio
    async def test_restore_live_record_is_noop(self, soft_repo):
        user = await soft_repo.create({"name": "Ada"})

        assert await soft_repo.restore(pk(soft_repo, user)) is None

    @pytest.mark.anyio
    async def test_restore_many(self, soft_repo, people):
        await soft_repo.insert_many(people)
        await soft_repo.delete_many({"status": "active"})

        assert await soft_repo.restore_many({"status": "active"}) == 2
        assert await soft_repo.count() == 5
        assert await soft_repo.find_deleted() == []
