"""
Tests for the hook pipeline, standalone and wired into repositories.
"""

import pytest

from repokit.core.exceptions import ValidationFailure
from repokit.repositories import Hooks, SqlRepositoryOptions
from repokit.repositories.hooks import HookContext, HookPipeline


class TestHookPipeline:
    """Test before/after hook semantics."""

    @pytest.mark.anyio
    async def test_missing_hook_returns_data_unchanged(self):
        pipeline = HookPipeline(Hooks(), repository=None)

        assert await pipeline.before("create", {"a": 1}) == {"a": 1}

    @pytest.mark.anyio
    async def test_sync_hook_result_is_merged(self):
        """Test that a returned mapping is shallow-merged over the data."""
        hooks = Hooks(before_create=lambda ctx: {"status": "pending"})
        pipeline = HookPipeline(hooks, repository=None)

        data = await pipeline.before("create", {"name": "Ada", "status": "active"})

        assert data == {"name": "Ada", "status": "pending"}

    @pytest.mark.anyio
    async def test_async_hook_result_is_awaited(self):
        async def lowercase_email(ctx: HookContext):
            return {"email": ctx.data["email"].lower()}

        pipeline = HookPipeline(Hooks(before_update=lowercase_email), repository=None)

        data = await pipeline.before("update", {"email": "ADA@EXAMPLE.COM"})

        assert data == {"email": "ada@example.com"}

    @pytest.mark.anyio
    async def test_hook_returning_none_keeps_data(self):
        seen = []
        pipeline = HookPipeline(Hooks(before_delete=seen.append), repository="repo")

        data = await pipeline.before("delete", {"id": 1})

        assert data == {"id": 1}
        assert seen[0].data == {"id": 1}
        assert seen[0].repository == "repo"

    @pytest.mark.anyio
    async def test_hook_returning_non_mapping_raises(self):
        pipeline = HookPipeline(Hooks(before_create=lambda ctx: ["nope"]), repository=None)

        with pytest.raises(ValidationFailure):
            await pipeline.before("create", {"a": 1})

    @pytest.mark.anyio
    async def test_after_hook_return_value_is_ignored(self):
        received = []

        def after(result):
            received.append(result)
            return {"ignored": True}

        pipeline = HookPipeline(Hooks(after_create=after), repository=None)

        assert await pipeline.after("create", {"id": 1}) is None
        assert received == [{"id": 1}]


class TestRepositoryHooks:
    """Test hook ordering and failure propagation around SQL primitives."""

    @pytest.mark.anyio
    async def test_before_create_sees_stamped_timestamps(self, sql_adapter, users_table):
        """Test that timestamps are stamped before the hook runs."""
        seen = {}

        def before_create(ctx):
            seen.update(ctx.data)
            return {"status": "pending"}

        repo = sql_adapter.create_repository(
            SqlRepositoryOptions(table=users_table, timestamps=True, hooks=Hooks(before_create=before_create))
        )

        user = await repo.create({"name": "Ada", "status": "active"})

        assert "created_at" in seen and "updated_at" in seen
        assert user["status"] == "pending"

    @pytest.mark.anyio
    async def test_before_hook_failure_skips_primitive(self, sql_adapter, users_table):
        def reject(ctx):
            raise PermissionError("read-only")

        repo = sql_adapter.create_repository(
            SqlRepositoryOptions(table=users_table, hooks=Hooks(before_create=reject))
        )

        with pytest.raises(PermissionError):
            await repo.create({"name": "Ada"})

        assert await repo.count() == 0

    @pytest.mark.anyio
    async def test_after_hook_failure_propagates_after_write(self, sql_adapter, users_table):
        """Test that the write stays applied when an after hook fails."""
        def explode(result):
            raise RuntimeError("audit log down")

        repo = sql_adapter.create_repository(
            SqlRepositoryOptions(table=users_table, hooks=Hooks(after_create=explode))
        )

        with pytest.raises(RuntimeError, match="audit log down"):
            await repo.create({"name": "Ada"})

        assert await repo.count() == 1

    @pytest.mark.anyio
    async def test_insert_many_runs_create_hooks_per_row(self, sql_adapter, users_table):
        before_calls = []
        after_calls = []

        repo = sql_adapter.create_repository(
            SqlRepositoryOptions(
                table=users_table,
                hooks=Hooks(
                    before_create=lambda ctx: before_calls.append(ctx.data["name"]),
                    after_create=lambda entity: after_calls.append(entity["id"]),
                ),
            )
        )

        await repo.insert_many([{"name": "Ada"}, {"name": "Grace"}])

        assert before_calls == ["Ada", "Grace"]
        assert len(after_calls) == 2

    @pytest.mark.anyio
    async def test_delete_hooks_receive_filter_and_count(self, sql_adapter, users_table, people):
        before_data = []
        after_results = []

        repo = sql_adapter.create_repository(
            SqlRepositoryOptions(
                table=users_table,
                hooks=Hooks(
                    before_delete=lambda ctx: before_data.append(ctx.data),
                    after_delete=after_results.append,
                ),
            )
        )
        await repo.insert_many(people)

        await repo.delete_many({"status": "active"})

        assert before_data == [{"status": "active"}]
        assert after_results == [2]

    @pytest.mark.anyio
    async def test_delete_by_id_hook_receives_primary_key(self, sql_adapter, users_table):
        before_data = []
        repo = sql_adapter.create_repository(
            SqlRepositoryOptions(
                table=users_table,
                hooks=Hooks(before_delete=lambda ctx: before_data.append(ctx.data)),
            )
        )
        user = await repo.create({"name": "Ada"})

        assert await repo.delete_by_id(user["id"]) is True
        assert before_data == [{"id": user["id"]}]
