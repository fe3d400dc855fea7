"""
Tests for timestamp and soft-delete policies and repository options.
"""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from repokit.core.exceptions import ValidationFailure
from repokit.repositories.options import (
    MongoRepositoryOptions,
    PageResult,
    SqlRepositoryOptions,
    normalize_sort,
)
from repokit.repositories.policies import UNSET, SoftDeletePolicy, TimestampPolicy


FIXED = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED


class TestTimestampPolicy:
    """Test created/updated stamping."""

    def test_on_create_sets_both_fields(self):
        policy = TimestampPolicy(True, "createdAt", "updatedAt", clock=fixed_clock)

        payload = policy.on_create({"name": "Ada"})

        assert payload == {"name": "Ada", "createdAt": FIXED, "updatedAt": FIXED}

    def test_on_create_keeps_caller_values(self):
        """Test that caller-supplied timestamps are not overwritten."""
        earlier = datetime(2020, 1, 1, tzinfo=timezone.utc)
        policy = TimestampPolicy(True, "createdAt", "updatedAt", clock=fixed_clock)

        payload = policy.on_create({"createdAt": earlier})

        assert payload["createdAt"] == earlier
        assert payload["updatedAt"] == FIXED

    def test_on_update_never_touches_created(self):
        policy = TimestampPolicy(True, "created_at", "updated_at", clock=fixed_clock)

        payload = policy.on_update({"name": "Grace"})

        assert payload == {"name": "Grace", "updated_at": FIXED}

    def test_disabled_is_noop(self):
        policy = TimestampPolicy(False, "createdAt", "updatedAt", clock=fixed_clock)

        assert policy.on_create({"a": 1}) == {"a": 1}
        assert policy.on_update({"a": 1}) == {"a": 1}

    def test_caller_data_is_not_mutated(self):
        policy = TimestampPolicy(True, "createdAt", "updatedAt", clock=fixed_clock)
        data = {"name": "Ada"}

        policy.on_create(data)

        assert data == {"name": "Ada"}


class TestSoftDeletePolicy:
    """Test soft-delete filter and payload rewrites."""

    def test_live_adds_null_clause(self):
        policy = SoftDeletePolicy("deletedAt")

        assert policy.live({"status": "active"}) == {
            "status": "active",
            "deletedAt": {"isNull": True},
        }

    def test_live_replaces_caller_clause_on_same_field(self):
        """Test that callers cannot see deleted records through find_all."""
        policy = SoftDeletePolicy("deletedAt")

        assert policy.live({"deletedAt": {"notNull": True}}) == {"deletedAt": {"isNull": True}}

    def test_deleted_adds_not_null_clause(self):
        policy = SoftDeletePolicy("deleted_at")

        assert policy.deleted(None) == {"deleted_at": {"notNull": True}}

    def test_deletion_and_restoration_payloads(self):
        policy = SoftDeletePolicy("deletedAt", clock=fixed_clock)

        assert policy.deletion() == {"deletedAt": FIXED}
        assert policy.restoration() == {"deletedAt": UNSET}

    def test_unset_is_a_falsy_singleton(self):
        assert not UNSET
        assert type(UNSET)() is UNSET
        assert repr(UNSET) == "UNSET"


class TestRepositoryOptions:
    """Test option models and sort normalization."""

    def test_options_are_frozen(self):
        options = MongoRepositoryOptions(collection="users")

        with pytest.raises(ValidationError):
            options.timestamps = True

    def test_unknown_option_rejected(self):
        with pytest.raises(ValidationError):
            MongoRepositoryOptions(collection="users", softDelete=True)

    def test_default_limit_must_be_positive(self):
        with pytest.raises(ValidationError):
            MongoRepositoryOptions(collection="users", default_limit=0)

    def test_table_name_needs_columns(self):
        options = SqlRepositoryOptions(table="users")

        with pytest.raises(ValidationFailure):
            options.resolve_table()

    def test_table_name_with_columns_builds_clause(self):
        table = SqlRepositoryOptions(table="users", columns=["id", "name"]).resolve_table()

        assert table.name == "users"
        assert set(table.c.keys()) == {"id", "name"}

    def test_table_object_is_used_as_is(self, users_table):
        assert SqlRepositoryOptions(table=users_table).resolve_table() is users_table

    @pytest.mark.parametrize(
        "spec,expected",
        [
            ({"age": "desc", "name": 1}, [("age", False), ("name", True)]),
            ([("age", -1), ("name", "ASC")], [("age", False), ("name", True)]),
            ({"age": "descending"}, [("age", False)]),
            (None, []),
        ],
    )
    def test_normalize_sort(self, spec, expected):
        assert normalize_sort(spec) == expected

    def test_normalize_sort_rejects_unknown_direction(self):
        with pytest.raises(ValidationFailure):
            normalize_sort({"age": "sideways"})

    def test_page_result_total_pages(self):
        """Test total_pages is ceil(total / limit), and 0 for no matches."""
        assert PageResult.build(items=[], total=25, page=1, limit=10).total_pages == 3
        assert PageResult.build(items=[], total=20, page=1, limit=10).total_pages == 2
        assert PageResult.build(items=[], total=0, page=1, limit=10).total_pages == 0
