"""
SQL repository built on SQLAlchemy Core.

The repository is bound either to an AsyncEngine, where each primitive runs
in its own short transaction, or to the AsyncConnection of an enclosing
``with_transaction`` call, where every primitive joins that transaction.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Union

from sqlalchemy import delete, func, insert, literal, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
from sqlalchemy.sql.elements import ColumnElement

from repokit.core.exceptions import ValidationFailure
from repokit.filters.sql import SqlFilterTranslator
from repokit.repositories.base import Entity, Repository, Sort, repository_class
from repokit.repositories.options import SqlRepositoryOptions
from repokit.repositories.policies import UNSET


class SqlRepository(Repository):
    """
    Repository over one SQL table.

    Attributes:
        table: Table clause statements are built against
        bind: AsyncEngine, or the AsyncConnection of a transaction
    """

    backend = "postgres"
    default_primary_key = "id"
    default_created_at_field = "created_at"
    default_updated_at_field = "updated_at"
    default_soft_delete_field = "deleted_at"
    driver_errors = (SQLAlchemyError,)

    def __init__(
        self,
        bind: Union[AsyncEngine, AsyncConnection],
        options: SqlRepositoryOptions,
    ):
        table = options.resolve_table()
        super().__init__(options, SqlFilterTranslator(table))
        self.table = table
        self.bind = bind

    def _log_target(self) -> Dict[str, Any]:
        return {"table": self.table.name}

    def _error_code(self, exc: BaseException) -> Any:
        orig = getattr(exc, "orig", None)
        return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None) or getattr(exc, "code", None)

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[AsyncConnection]:
        if isinstance(self.bind, AsyncConnection):
            yield self.bind
        else:
            async with self.bind.begin() as conn:
                yield conn

    def _values(self, data: Entity) -> Dict[str, Any]:
        """Check column names and turn UNSET into NULL."""
        values = {}
        for field, value in data.items():
            self.translator.column(field)
            values[field] = None if value is UNSET else value
        return values

    def _order_by(self, sort: Sort) -> List[Any]:
        clauses = []
        for field, ascending in sort:
            column = self.translator.column(field)
            clauses.append(column.asc() if ascending else column.desc())
        return clauses

    async def _insert_one(self, data: Entity) -> Entity:
        stmt = insert(self.table).values(self._values(data)).returning(*self.table.c)
        with self._primitive("insert_one"):
            async with self._connection() as conn:
                row = (await conn.execute(stmt)).mappings().one()
        return dict(row)

    async def _insert_many(self, rows: List[Entity]) -> List[Entity]:
        values = [self._values(row) for row in rows]
        keys = set(values[0])
        if any(set(row) != keys for row in values[1:]):
            raise ValidationFailure("insert_many rows must all provide the same fields")

        stmt = insert(self.table).returning(*self.table.c, sort_by_parameter_order=True)
        with self._primitive("insert_many"):
            async with self._connection() as conn:
                result = await conn.execute(stmt, values)
                inserted = result.mappings().all()
        return [dict(row) for row in inserted]

    async def _find_one(self, where: ColumnElement, sort: Sort) -> Optional[Entity]:
        stmt = select(self.table).where(where).order_by(*self._order_by(sort)).limit(1)
        with self._primitive("find_one"):
            async with self._connection() as conn:
                row = (await conn.execute(stmt)).mappings().first()
        return dict(row) if row is not None else None

    async def _find_many(
        self,
        where: ColumnElement,
        sort: Sort,
        limit: Optional[int],
        offset: Optional[int],
        fields: Optional[Sequence[str]] = None,
    ) -> List[Entity]:
        columns = [self.translator.column(field) for field in fields] if fields else [self.table]
        stmt = select(*columns).where(where).order_by(*self._order_by(sort))
        if limit:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)

        with self._primitive("find_many"):
            async with self._connection() as conn:
                rows = (await conn.execute(stmt)).mappings().all()
        return [dict(row) for row in rows]

    async def _count(self, where: ColumnElement) -> int:
        stmt = select(func.count()).select_from(self.table).where(where)
        with self._primitive("count"):
            async with self._connection() as conn:
                return (await conn.execute(stmt)).scalar_one()

    async def _exists(self, where: ColumnElement) -> bool:
        stmt = select(literal(1)).select_from(self.table).where(where).limit(1)
        with self._primitive("exists"):
            async with self._connection() as conn:
                found = (await conn.execute(stmt)).first()
        return found is not None

    async def _update_one(self, where: ColumnElement, data: Entity) -> Optional[Entity]:
        stmt = update(self.table).where(where).values(self._values(data)).returning(*self.table.c)
        with self._primitive("update_one"):
            async with self._connection() as conn:
                row = (await conn.execute(stmt)).mappings().first()
        return dict(row) if row is not None else None

    async def _update_many(self, where: ColumnElement, data: Entity) -> int:
        stmt = update(self.table).where(where).values(self._values(data))
        with self._primitive("update_many"):
            async with self._connection() as conn:
                return (await conn.execute(stmt)).rowcount

    async def _delete_one(self, where: ColumnElement) -> bool:
        stmt = delete(self.table).where(where)
        with self._primitive("delete_one"):
            async with self._connection() as conn:
                return (await conn.execute(stmt)).rowcount > 0

    async def _delete_many(self, where: ColumnElement) -> int:
        stmt = delete(self.table).where(where)
        with self._primitive("delete_many"):
            async with self._connection() as conn:
                return (await conn.execute(stmt)).rowcount

    async def _distinct(self, field: str, where: ColumnElement) -> List[Any]:
        column = self.translator.column(field)
        stmt = select(column).where(where).distinct()
        with self._primitive("distinct"):
            async with self._connection() as conn:
                return list((await conn.execute(stmt)).scalars().all())

    async def _upsert(self, where: ColumnElement, data: Entity, seed: Entity) -> Entity:
        # Find-then-branch: a concurrent insert between the lookup and the
        # write is not prevented here; rely on a unique constraint for that
        primary_key = self.translator.column(self.primary_key)
        values = self._values(data)
        insert_values = self._values({**seed, **data})

        with self._primitive("upsert"):
            async with self._connection() as conn:
                lookup = select(primary_key).where(where).limit(1)
                existing = (await conn.execute(lookup)).scalar_one_or_none()

                if existing is not None:
                    stmt = (
                        update(self.table)
                        .where(primary_key == existing)
                        .values(values)
                        .returning(*self.table.c)
                    )
                else:
                    stmt = insert(self.table).values(insert_values).returning(*self.table.c)
                row = (await conn.execute(stmt)).mappings().one()
        return dict(row)


def create_sql_repository(
    bind: Union[AsyncEngine, AsyncConnection],
    options: SqlRepositoryOptions,
) -> SqlRepository:
    """Build a SqlRepository, with soft-delete operations when enabled."""
    cls = repository_class(SqlRepository, options.soft_delete)
    return cls(bind, options)
