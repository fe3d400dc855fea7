"""
MongoDB adapter built on Motor.

Transactions use a ClientSession. MongoDB has no nested transactions, so a
``with_transaction`` issued inside another one is flattened into the outer
session: its writes commit or abort together with the outer transaction.
"""

from typing import Any, Callable, Optional
from urllib.parse import urlparse

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorClientSession,
    AsyncIOMotorDatabase,
)
from pymongo.errors import PyMongoError
from pymongo.read_concern import ReadConcern

from repokit.adapters.base import DatabaseAdapter, TransactionCallback
from repokit.core.config import MongoDatabaseConfig, settings
from repokit.core.exceptions import NotConnected
from repokit.core.logging_config import get_logger
from repokit.repositories.mongo import MongoRepository, create_mongo_repository
from repokit.repositories.options import MongoRepositoryOptions
from repokit.transactions import TransactionContext, TransactionOptions, TransactionState

logger = get_logger(__name__)


class MongoAdapter(DatabaseAdapter):
    """
    Owns a Motor client and builds MongoRepository instances over it.

    Attributes:
        config: Connection settings
        client: Motor client, None until connect()

    Example:
        >>> adapter = MongoAdapter(MongoDatabaseConfig(connection_string="mongodb://localhost/app"))
        >>> await adapter.connect()
        >>> users = adapter.create_repository(
        ...     MongoRepositoryOptions(collection="users", timestamps=True)
        ... )
    """

    type = "mongo"
    driver_errors = (PyMongoError,)
    _not_connected_message = "Not connected to MongoDB"

    def __init__(
        self,
        config: Optional[MongoDatabaseConfig] = None,
        client: Optional[AsyncIOMotorClient] = None,
    ):
        super().__init__()
        self.config = config or MongoDatabaseConfig()
        self._provided_client = client
        self.client: Optional[AsyncIOMotorClient] = None

    @property
    def database_name(self) -> str:
        if self.config.database:
            return self.config.database
        path = urlparse(self.config.connection_string).path.lstrip("/")
        return path or settings.mongo_database

    async def connect(self) -> AsyncIOMotorClient:
        """Create the client; calling again reuses the existing one."""
        if self.client is not None:
            return self.client

        if self._provided_client is not None:
            self.client = self._provided_client
        else:
            self.client = AsyncIOMotorClient(
                self.config.connection_string,
                maxPoolSize=self.config.max_pool_size,
                serverSelectionTimeoutMS=self.config.server_selection_timeout_ms,
            )
        logger.info(f"MongoDB client ready for database '{self.database_name}'")
        return self.client

    async def disconnect(self) -> None:
        if self.client is None:
            return
        if self._provided_client is None:
            self.client.close()
        self.client = None
        logger.info("MongoDB client closed")

    def is_connected(self) -> bool:
        return self.client is not None

    def _require_connection(self) -> None:
        if self.client is None:
            raise NotConnected(self._not_connected_message)

    @property
    def database(self) -> AsyncIOMotorDatabase:
        """
        Raises:
            NotConnected: If connect() has not been called
        """
        self._require_connection()
        return self.client[self.database_name]

    def create_repository(
        self,
        options: MongoRepositoryOptions,
        session: Optional[AsyncIOMotorClientSession] = None,
    ) -> MongoRepository:
        """
        Build a repository over ``options.collection``.

        Raises:
            NotConnected: If connect() has not been called
        """
        return create_mongo_repository(self.database[options.collection], options, session=session)

    def _repository_factory(self, handle: AsyncIOMotorClientSession) -> Callable[[Any], Any]:
        return lambda options: self.create_repository(options, session=handle)

    async def _begin(self, options: TransactionOptions) -> AsyncIOMotorClientSession:
        session = await self.client.start_session()

        kwargs = {}
        if options.timeout_ms:
            kwargs["max_commit_time_ms"] = options.timeout_ms
        if options.isolation_level:
            if options.isolation_level.lower() == "snapshot":
                kwargs["read_concern"] = ReadConcern("snapshot")
            else:
                logger.warning(
                    f"Isolation level '{options.isolation_level}' is not supported by "
                    f"MongoDB transactions; using the session default"
                )

        try:
            session.start_transaction(**kwargs)
        except BaseException:
            await session.end_session()
            raise
        return session

    async def _commit(self, handle: AsyncIOMotorClientSession) -> None:
        await handle.commit_transaction()

    async def _rollback(self, handle: AsyncIOMotorClientSession) -> None:
        await handle.abort_transaction()

    async def _release(self, handle: AsyncIOMotorClientSession) -> None:
        await handle.end_session()

    async def _run_nested(
        self,
        outer: TransactionContext,
        callback: TransactionCallback,
        options: TransactionOptions,
    ) -> Any:
        logger.debug(
            f"Flattening nested transaction into session of {outer.transaction_id}"
        )
        context = TransactionContext(outer.handle, self._repository_factory(outer.handle), nested=True)
        context.state = TransactionState.ACTIVE
        try:
            result = await callback(context)
        except BaseException:
            context.state = TransactionState.ROLLED_BACK
            raise
        # Becomes durable only when the outer transaction commits
        context.state = TransactionState.COMMITTED
        return result

    def _is_transient_error(self, exc: BaseException) -> bool:
        return isinstance(exc, PyMongoError) and exc.has_error_label("TransientTransactionError")

    async def _ping(self) -> None:
        await self.client.admin.command("ping")
