"""
MongoDB repository over a Motor collection.

Every primitive is one driver call. When the repository was created inside
a transaction, the bound ClientSession is passed to each call.
"""

from typing import Any, Dict, List, Optional, Sequence

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorCollection
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from repokit.core.exceptions import ValidationFailure
from repokit.filters.mongo import MongoFilterTranslator
from repokit.repositories.base import Entity, Repository, Sort, repository_class
from repokit.repositories.options import MongoRepositoryOptions
from repokit.repositories.policies import UNSET


class MongoRepository(Repository):
    """
    Repository over one MongoDB collection.

    Attributes:
        collection: Motor collection
        session: ClientSession of the enclosing transaction, if any
    """

    backend = "mongo"
    default_primary_key = "_id"
    default_created_at_field = "createdAt"
    default_updated_at_field = "updatedAt"
    default_soft_delete_field = "deletedAt"
    driver_errors = (PyMongoError,)

    def __init__(
        self,
        collection: AsyncIOMotorCollection,
        options: MongoRepositoryOptions,
        session: Optional[AsyncIOMotorClientSession] = None,
    ):
        super().__init__(options, MongoFilterTranslator())
        self.collection = collection
        self.session = session

    def _session_kwargs(self) -> Dict[str, Any]:
        return {"session": self.session} if self.session is not None else {}

    def _log_target(self) -> Dict[str, Any]:
        return {"collection": self.options.collection}

    def _error_code(self, exc: BaseException) -> Any:
        return getattr(exc, "code", None)

    def _coerce_id(self, id: Any) -> Any:
        id = super()._coerce_id(id)
        if self.primary_key != "_id" or not self.options.coerce_object_id:
            return id
        if isinstance(id, str):
            if not ObjectId.is_valid(id):
                raise ValidationFailure(f"Malformed ObjectId: {id!r}")
            return ObjectId(id)
        return id

    def _with_id(self, data: Entity) -> Entity:
        document = dict(data)
        if self.primary_key == "_id" and "_id" not in document:
            document["_id"] = ObjectId()
        return document

    @staticmethod
    def _update_document(data: Entity) -> Dict[str, Any]:
        """Split a payload into $set and $unset."""
        update: Dict[str, Any] = {}
        assignments = {key: value for key, value in data.items() if value is not UNSET}
        removals = {key: "" for key, value in data.items() if value is UNSET}
        if assignments:
            update["$set"] = assignments
        if removals:
            update["$unset"] = removals
        return update

    @staticmethod
    def _sort(sort: Sort) -> List[tuple]:
        return [(field, ASCENDING if ascending else DESCENDING) for field, ascending in sort]

    async def _insert_one(self, data: Entity) -> Entity:
        document = self._with_id(data)
        with self._primitive("insert_one"):
            await self.collection.insert_one(document, **self._session_kwargs())
        return document

    async def _insert_many(self, rows: List[Entity]) -> List[Entity]:
        documents = [self._with_id(row) for row in rows]
        with self._primitive("insert_many"):
            await self.collection.insert_many(documents, **self._session_kwargs())
        return documents

    async def _find_one(self, where: Dict[str, Any], sort: Sort) -> Optional[Entity]:
        kwargs = self._session_kwargs()
        if sort:
            kwargs["sort"] = self._sort(sort)
        with self._primitive("find_one"):
            return await self.collection.find_one(where, **kwargs)

    async def _find_many(
        self,
        where: Dict[str, Any],
        sort: Sort,
        limit: Optional[int],
        offset: Optional[int],
        fields: Optional[Sequence[str]] = None,
    ) -> List[Entity]:
        projection = None
        if fields:
            projection = {field: 1 for field in fields}
            if "_id" not in projection:
                projection["_id"] = 0

        with self._primitive("find_many"):
            cursor = self.collection.find(where, projection, **self._session_kwargs())
            if sort:
                cursor = cursor.sort(self._sort(sort))
            if offset:
                cursor = cursor.skip(offset)
            if limit:
                cursor = cursor.limit(limit)
            return await cursor.to_list(length=None)

    async def _count(self, where: Dict[str, Any]) -> int:
        with self._primitive("count"):
            return await self.collection.count_documents(where, **self._session_kwargs())

    async def _exists(self, where: Dict[str, Any]) -> bool:
        with self._primitive("exists"):
            found = await self.collection.find_one(where, {"_id": 1}, **self._session_kwargs())
        return found is not None

    async def _update_one(self, where: Dict[str, Any], data: Entity) -> Optional[Entity]:
        with self._primitive("update_one"):
            return await self.collection.find_one_and_update(
                where,
                self._update_document(data),
                return_document=ReturnDocument.AFTER,
                **self._session_kwargs(),
            )

    async def _update_many(self, where: Dict[str, Any], data: Entity) -> int:
        with self._primitive("update_many"):
            result = await self.collection.update_many(
                where, self._update_document(data), **self._session_kwargs()
            )
        return result.matched_count

    async def _delete_one(self, where: Dict[str, Any]) -> bool:
        with self._primitive("delete_one"):
            result = await self.collection.delete_one(where, **self._session_kwargs())
        return result.deleted_count > 0

    async def _delete_many(self, where: Dict[str, Any]) -> int:
        with self._primitive("delete_many"):
            result = await self.collection.delete_many(where, **self._session_kwargs())
        return result.deleted_count

    async def _distinct(self, field: str, where: Dict[str, Any]) -> List[Any]:
        with self._primitive("distinct"):
            return await self.collection.distinct(field, where, **self._session_kwargs())

    async def _upsert(self, where: Dict[str, Any], data: Entity, seed: Entity) -> Entity:
        update = self._update_document(data)
        # Equality fields of the filter are copied into inserts by the server
        on_insert = {
            key: value for key, value in seed.items()
            if key not in data and key not in where
        }
        if on_insert:
            update["$setOnInsert"] = on_insert

        with self._primitive("upsert"):
            return await self.collection.find_one_and_update(
                where,
                update,
                upsert=True,
                return_document=ReturnDocument.AFTER,
                **self._session_kwargs(),
            )


def create_mongo_repository(
    collection: AsyncIOMotorCollection,
    options: MongoRepositoryOptions,
    session: Optional[AsyncIOMotorClientSession] = None,
) -> MongoRepository:
    """Build a MongoRepository, with soft-delete operations when enabled."""
    cls = repository_class(MongoRepository, options.soft_delete)
    return cls(collection, options, session=session)
