"""
Backend-independent repository orchestration.

Repository implements the public operations once, in terms of a small set
of backend primitives (``_insert_one``, ``_find_many``, ``_update_many``,
...). Each public call runs the same pipeline: policies rewrite the
payload and filter, the filter is translated to the native predicate,
``before_*`` hooks run, one primitive executes, ``after_*`` hooks run.

Soft deletion is a capability, not a flag check: SoftDeleteMixin adds the
soft-delete operations and is only mixed into the classes built for
``soft_delete=True``. A repository without it simply has no ``restore``.
"""

import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Type

from repokit.core.config import settings
from repokit.core.exceptions import BackendFailure, ValidationFailure
from repokit.core.logging_config import get_logger, log_with_context
from repokit.filters.base import FilterExpression, FilterTranslator, equality_fields
from repokit.repositories.hooks import HookPipeline
from repokit.repositories.options import (
    PageRequest,
    PageResult,
    RepositoryOptions,
    SortSpec,
    normalize_sort,
)
from repokit.repositories.policies import SoftDeletePolicy, TimestampPolicy

logger = get_logger(__name__)

Entity = Dict[str, Any]
Sort = List[Tuple[str, bool]]


class Repository(ABC):
    """
    Uniform CRUD contract over one collection or table.

    Subclasses provide the backend defaults and primitives; callers should
    obtain instances from an adapter's ``create_repository``.

    Attributes:
        options: Frozen RepositoryOptions this repository was built with
        primary_key: Resolved primary key field
        translator: FilterTranslator for this backend
        timestamps: TimestampPolicy
        hooks: HookPipeline
        default_limit: Page size used when find_page gets no valid limit
    """

    backend: str = ""
    default_primary_key: str = "id"
    default_created_at_field: str = "createdAt"
    default_updated_at_field: str = "updatedAt"
    default_soft_delete_field: str = "deletedAt"
    driver_errors: Tuple[Type[BaseException], ...] = ()

    def __init__(self, options: RepositoryOptions, translator: FilterTranslator):
        if options.soft_delete != isinstance(self, SoftDeleteMixin):
            raise ValidationFailure(
                f"{type(self).__name__} does not match soft_delete={options.soft_delete}; "
                f"build repositories through an adapter or repository_class()"
            )

        self.options = options
        self.primary_key = options.primary_key or self.default_primary_key
        self.translator = translator
        self.timestamps = TimestampPolicy(
            enabled=options.timestamps,
            created_at_field=options.created_at_field or self.default_created_at_field,
            updated_at_field=options.updated_at_field or self.default_updated_at_field,
        )
        self.hooks = HookPipeline(options.hooks, self)
        self.default_limit = options.default_limit or settings.default_page_limit

    # Filter pipeline

    def _scope(self, filter: Optional[FilterExpression]) -> Dict[str, Any]:
        """Apply implicit clauses; plain repositories add none."""
        return dict(filter or {})

    def _where(self, filter: Mapping[str, Any]) -> Any:
        return self.translator.translate(filter)

    def _coerce_id(self, id: Any) -> Any:
        if id is None:
            raise ValidationFailure(f"'{self.primary_key}' must not be None")
        return id

    def _id_filter(self, id: Any) -> Dict[str, Any]:
        return {self.primary_key: self._coerce_id(id)}

    def _live_where(self, filter: Optional[FilterExpression]) -> Any:
        return self._where(self._scope(filter))

    @staticmethod
    def _require_payload(payload: Mapping[str, Any], operation: str) -> None:
        if not payload:
            raise ValidationFailure(f"{operation} needs at least one field to write")

    # Primitive instrumentation

    def _log_target(self) -> Dict[str, Any]:
        return {}

    def _error_code(self, exc: BaseException) -> Any:
        return None

    @contextmanager
    def _primitive(self, operation: str) -> Iterator[None]:
        """Time one backend round trip and wrap driver errors."""
        started = time.perf_counter()
        try:
            yield
        except self.driver_errors as exc:
            log_with_context(
                logger, "error", f"{operation} failed: {exc}",
                backend=self.backend, operation=operation, **self._log_target(),
            )
            raise BackendFailure(str(exc), code=self._error_code(exc)) from exc

        log_with_context(
            logger, "debug", f"{operation} completed",
            backend=self.backend,
            operation=operation,
            latency_ms=round((time.perf_counter() - started) * 1000, 3),
            **self._log_target(),
        )

    # Backend primitives

    @abstractmethod
    async def _insert_one(self, data: Entity) -> Entity: ...

    @abstractmethod
    async def _insert_many(self, rows: List[Entity]) -> List[Entity]: ...

    @abstractmethod
    async def _find_one(self, where: Any, sort: Sort) -> Optional[Entity]: ...

    @abstractmethod
    async def _find_many(
        self,
        where: Any,
        sort: Sort,
        limit: Optional[int],
        offset: Optional[int],
        fields: Optional[Sequence[str]] = None,
    ) -> List[Entity]: ...

    @abstractmethod
    async def _count(self, where: Any) -> int: ...

    @abstractmethod
    async def _exists(self, where: Any) -> bool: ...

    @abstractmethod
    async def _update_one(self, where: Any, data: Entity) -> Optional[Entity]: ...

    @abstractmethod
    async def _update_many(self, where: Any, data: Entity) -> int: ...

    @abstractmethod
    async def _delete_one(self, where: Any) -> bool: ...

    @abstractmethod
    async def _delete_many(self, where: Any) -> int: ...

    @abstractmethod
    async def _distinct(self, field: str, where: Any) -> List[Any]: ...

    @abstractmethod
    async def _upsert(self, where: Any, data: Entity, seed: Entity) -> Entity: ...

    # Create

    async def create(self, data: Mapping[str, Any]) -> Entity:
        """
        Insert one record and return it as stored (including its id).

        Example:
            >>> user = await repo.create({"name": "Ada", "age": 36})
        """
        payload = self.timestamps.on_create(data)
        payload = await self.hooks.before("create", payload)
        entity = await self._insert_one(payload)
        await self.hooks.after("create", entity)
        return entity

    async def insert_many(self, rows: Sequence[Mapping[str, Any]]) -> List[Entity]:
        """
        Insert several records in one round trip.

        An empty sequence returns [] without contacting the backend. Create
        hooks run once per row.
        """
        if not rows:
            return []

        payloads = []
        for row in rows:
            payload = self.timestamps.on_create(row)
            payloads.append(await self.hooks.before("create", payload))

        entities = await self._insert_many(payloads)
        for entity in entities:
            await self.hooks.after("create", entity)
        return entities

    # Read

    async def find_by_id(self, id: Any) -> Optional[Entity]:
        """Return the record with this primary key, or None."""
        return await self._find_one(self._live_where(self._id_filter(id)), [])

    async def find_one(
        self,
        filter: Optional[FilterExpression] = None,
        sort: Optional[SortSpec] = None,
    ) -> Optional[Entity]:
        """Return the first record matching filter (in sort order), or None."""
        return await self._find_one(self._live_where(filter), normalize_sort(sort))

    async def find_all(
        self,
        filter: Optional[FilterExpression] = None,
        sort: Optional[SortSpec] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Entity]:
        """
        Return every record matching filter.

        Example:
            >>> adults = await repo.find_all({"age": {"gte": 18}}, sort={"age": "desc"})
        """
        return await self._find_many(self._live_where(filter), normalize_sort(sort), limit, offset)

    async def find_page(
        self,
        request: Optional[PageRequest] = None,
        *,
        page: int = 1,
        limit: Optional[int] = None,
        sort: Optional[SortSpec] = None,
        filter: Optional[FilterExpression] = None,
    ) -> PageResult:
        """
        Return one page of matching records plus totals.

        Pass either a PageRequest or the keyword arguments. ``page < 1`` is
        read as 1 and a missing or non-positive limit uses ``default_limit``.
        Issues a count and a fetch over the same filter.

        Example:
            >>> result = await repo.find_page(page=2, limit=10, filter={"status": "active"})
            >>> result.total_pages
            4
        """
        if request is None:
            request = PageRequest(page=page, limit=limit, sort=sort, filter=filter)

        page_number = request.page if request.page >= 1 else 1
        page_size = request.limit if request.limit is not None and request.limit >= 1 else self.default_limit

        where = self._live_where(request.filter)
        order = normalize_sort(request.sort)

        total = await self._count(where)
        items = await self._find_many(where, order, page_size, (page_number - 1) * page_size)
        return PageResult.build(items=items, total=total, page=page_number, limit=page_size)

    async def count(self, filter: Optional[FilterExpression] = None) -> int:
        return await self._count(self._live_where(filter))

    async def exists(self, filter: Optional[FilterExpression] = None) -> bool:
        return await self._exists(self._live_where(filter))

    async def distinct(self, field: str, filter: Optional[FilterExpression] = None) -> List[Any]:
        """Return the unique values of ``field`` among matching records."""
        return await self._distinct(field, self._live_where(filter))

    async def select(
        self,
        fields: Sequence[str],
        filter: Optional[FilterExpression] = None,
        sort: Optional[SortSpec] = None,
        limit: Optional[int] = None,
    ) -> List[Entity]:
        """
        Return matching records projected to ``fields``.

        Example:
            >>> await repo.select(["name"], {"status": "active"})
            [{'name': 'Ada'}, {'name': 'Grace'}]
        """
        if isinstance(fields, str) or not fields:
            raise ValidationFailure("select needs a non-empty list of field names")
        return await self._find_many(
            self._live_where(filter), normalize_sort(sort), limit, None, fields=list(fields)
        )

    # Update

    async def update_by_id(self, id: Any, data: Mapping[str, Any]) -> Optional[Entity]:
        """Update one record and return it as stored, or None if absent."""
        where = self._live_where(self._id_filter(id))
        payload = self.timestamps.on_update(data)
        payload = await self.hooks.before("update", payload)
        self._require_payload(payload, "update_by_id")

        entity = await self._update_one(where, payload)
        await self.hooks.after("update", entity)
        return entity

    async def update_many(self, filter: Optional[FilterExpression], data: Mapping[str, Any]) -> int:
        """
        Update every matching record.

        Returns the number of matched records on every backend, including
        records whose values were already equal to ``data``.
        """
        where = self._live_where(filter)
        payload = self.timestamps.on_update(data)
        payload = await self.hooks.before("update", payload)
        self._require_payload(payload, "update_many")

        count = await self._update_many(where, payload)
        await self.hooks.after("update", count)
        return count

    async def upsert(self, filter: FilterExpression, data: Mapping[str, Any]) -> Entity:
        """
        Update the first record matching filter, or insert one.

        The inserted record combines the filter's equality fields with
        ``data``. Mongo performs this atomically; SQL looks up the record
        first, so two concurrent upserts of the same key may both insert
        unless a unique constraint rejects one of them.
        """
        where = self._live_where(filter)
        payload = self.timestamps.on_update(data)
        payload = await self.hooks.before("update", payload)
        self._require_payload(payload, "upsert")

        seed = self.timestamps.on_create(equality_fields(filter))
        entity = await self._upsert(where, payload, seed)
        await self.hooks.after("update", entity)
        return entity

    # Delete

    async def delete_by_id(self, id: Any) -> bool:
        """Delete one record; False when nothing matched."""
        data = await self.hooks.before("delete", self._id_filter(id))
        deleted = await self._delete_one(self._where(data))
        await self.hooks.after("delete", deleted)
        return deleted

    async def delete_many(self, filter: Optional[FilterExpression] = None) -> int:
        """Delete every matching record; returns the number deleted."""
        data = await self.hooks.before("delete", dict(filter or {}))
        count = await self._delete_many(self._where(data))
        await self.hooks.after("delete", count)
        return count


class SoftDeleteMixin:
    """
    Soft-delete capability.

    Reads, counts and updates only see live records. ``delete_by_id`` and
    ``delete_many`` stamp the soft-delete field instead of removing rows;
    ``restore`` clears it again. Both directions only touch records in the
    opposite state, so repeating them is harmless.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.soft_delete_field = self.options.soft_delete_field or self.default_soft_delete_field
        self.soft_deletes = SoftDeletePolicy(self.soft_delete_field, clock=self.timestamps.clock)

    def _scope(self, filter: Optional[FilterExpression]) -> Dict[str, Any]:
        return self.soft_deletes.live(filter)

    async def delete_by_id(self, id: Any) -> bool:
        return await self.soft_delete(id)

    async def delete_many(self, filter: Optional[FilterExpression] = None) -> int:
        return await self.soft_delete_many(filter)

    async def soft_delete(self, id: Any) -> bool:
        """Mark one live record deleted; False if missing or already deleted."""
        data = await self.hooks.before("delete", self._id_filter(id))
        payload = self.timestamps.on_update(self.soft_deletes.deletion())

        entity = await self._update_one(self._where(self.soft_deletes.live(data)), payload)
        deleted = entity is not None
        await self.hooks.after("delete", deleted)
        return deleted

    async def soft_delete_many(self, filter: Optional[FilterExpression] = None) -> int:
        data = await self.hooks.before("delete", dict(filter or {}))
        payload = self.timestamps.on_update(self.soft_deletes.deletion())

        count = await self._update_many(self._where(self.soft_deletes.live(data)), payload)
        await self.hooks.after("delete", count)
        return count

    async def restore(self, id: Any) -> Optional[Entity]:
        """Clear the deletion mark; returns the restored record, or None."""
        where = self._where(self.soft_deletes.deleted(self._id_filter(id)))
        payload = self.timestamps.on_update(self.soft_deletes.restoration())
        payload = await self.hooks.before("update", payload)

        entity = await self._update_one(where, payload)
        await self.hooks.after("update", entity)
        return entity

    async def restore_many(self, filter: Optional[FilterExpression] = None) -> int:
        where = self._where(self.soft_deletes.deleted(filter))
        payload = self.timestamps.on_update(self.soft_deletes.restoration())
        payload = await self.hooks.before("update", payload)

        count = await self._update_many(where, payload)
        await self.hooks.after("update", count)
        return count

    async def find_all_with_deleted(
        self,
        filter: Optional[FilterExpression] = None,
        sort: Optional[SortSpec] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Entity]:
        return await self._find_many(self._where(dict(filter or {})), normalize_sort(sort), limit, offset)

    async def find_deleted(
        self,
        filter: Optional[FilterExpression] = None,
        sort: Optional[SortSpec] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Entity]:
        return await self._find_many(
            self._where(self.soft_deletes.deleted(filter)), normalize_sort(sort), limit, offset
        )


SOFT_DELETE_OPERATIONS = (
    "soft_delete",
    "soft_delete_many",
    "restore",
    "restore_many",
    "find_all_with_deleted",
    "find_deleted",
)


def supports_soft_delete(repository: Any) -> bool:
    """True when the repository exposes the soft-delete operations."""
    return isinstance(repository, SoftDeleteMixin)


_soft_delete_classes: Dict[type, type] = {}


def repository_class(base: Type[Repository], soft_delete: bool) -> Type[Repository]:
    """
    Pick the concrete class for a backend repository.

    Returns ``base`` itself, or a cached subclass mixing in SoftDeleteMixin.
    """
    if not soft_delete:
        return base
    if base not in _soft_delete_classes:
        _soft_delete_classes[base] = type(
            f"SoftDelete{base.__name__}", (SoftDeleteMixin, base), {}
        )
    return _soft_delete_classes[base]
