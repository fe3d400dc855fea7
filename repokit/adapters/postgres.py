"""
Relational adapter built on SQLAlchemy's asyncio extension.

Written for PostgreSQL (asyncpg) and also usable with any async dialect
SQLAlchemy supports; SQLite via aiosqlite is used for local runs and tests.

Nested ``with_transaction`` calls open a SAVEPOINT on the outer connection:
a failing inner callback rolls back to the savepoint and re-raises, leaving
the outer transaction free to continue or fail.
"""

from typing import Any, Callable, Optional

from sqlalchemy import MetaData, Table, event, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from repokit.adapters.base import DatabaseAdapter, TransactionCallback
from repokit.core.config import PostgresDatabaseConfig
from repokit.core.exceptions import BackendFailure, NotConnected
from repokit.core.logging_config import get_logger
from repokit.repositories.options import SqlRepositoryOptions
from repokit.repositories.sql import SqlRepository, create_sql_repository
from repokit.transactions import TransactionContext, TransactionOptions, TransactionState

logger = get_logger(__name__)

# SQLSTATE codes worth re-running the whole transaction for
TRANSIENT_SQLSTATES = frozenset({"40001", "40P01"})


def _is_sqlite_memory(url: str) -> bool:
    parsed = make_url(url)
    return parsed.database in (None, "", ":memory:") or parsed.query.get("mode") == "memory"


def create_engine_from_config(config: PostgresDatabaseConfig) -> AsyncEngine:
    """
    Create and configure the async SQLAlchemy engine.

    For SQLite:
    - In-memory databases use StaticPool so the data survives across
      checkouts; every checkout shares one DBAPI connection, so a
      repository bound to the engine must not run while a transaction
      is open on the same adapter
    - File databases keep a regular pool, so engine-bound repositories
      read only committed data while a transaction is open
    - Lets SQLAlchemy emit BEGIN itself so SAVEPOINTs work with aiosqlite
    - Enables foreign keys

    Returns:
        Configured AsyncEngine instance
    """
    url = config.connection_string
    is_sqlite = url.startswith("sqlite")
    is_memory = is_sqlite and _is_sqlite_memory(url)

    engine_kwargs: dict = {"echo": config.echo}
    if is_memory:
        engine_kwargs["poolclass"] = StaticPool
    else:
        engine_kwargs["pool_size"] = config.pool_size
    if is_sqlite:
        engine_kwargs["connect_args"] = {"check_same_thread": False}

    engine = create_async_engine(url, **engine_kwargs)

    if is_sqlite:
        @event.listens_for(engine.sync_engine, "connect")
        def _set_sqlite_pragma(dbapi_connection, connection_record):  # noqa: ANN001
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine.sync_engine, "begin")
        def _begin_sqlite_transaction(conn):  # noqa: ANN001
            conn.exec_driver_sql("BEGIN")

    return engine


class PostgresAdapter(DatabaseAdapter):
    """
    Owns an AsyncEngine and builds SqlRepository instances over it.

    Attributes:
        config: Connection settings

    Example:
        >>> adapter = PostgresAdapter(PostgresDatabaseConfig(
        ...     connection_string="postgresql+asyncpg://localhost/app"
        ... ))
        >>> adapter.connect()
        >>> users = adapter.create_repository(
        ...     SqlRepositoryOptions(table=users_table, soft_delete=True)
        ... )
    """

    type = "postgres"
    driver_errors = (SQLAlchemyError,)
    _not_connected_message = "Not connected to PostgreSQL"

    def __init__(self, config: Optional[PostgresDatabaseConfig] = None):
        super().__init__()
        self.config = config or PostgresDatabaseConfig()
        self._engine: Optional[AsyncEngine] = None

    def connect(self) -> AsyncEngine:
        """Create the engine; calling again returns the existing one."""
        if self._engine is None:
            self._engine = create_engine_from_config(self.config)
            logger.info(f"SQL engine created for dialect '{self._engine.dialect.name}'")
        return self._engine

    async def disconnect(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        logger.info("SQL engine disposed")

    def is_connected(self) -> bool:
        return self._engine is not None

    def _require_connection(self) -> None:
        if self._engine is None:
            raise NotConnected(self._not_connected_message)

    def get_engine(self) -> AsyncEngine:
        """
        Raises:
            NotConnected: If connect() has not been called
        """
        self._require_connection()
        return self._engine

    def create_repository(
        self,
        options: SqlRepositoryOptions,
        connection: Optional[AsyncConnection] = None,
    ) -> SqlRepository:
        """
        Build a repository over ``options.table``.

        Raises:
            NotConnected: If connect() has not been called
        """
        bind = connection if connection is not None else self.get_engine()
        return create_sql_repository(bind, options)

    async def reflect(self, table_name: str, schema: Optional[str] = None) -> Table:
        """
        Load a table definition from the database.

        Useful when only a table name is known:

            users = await adapter.reflect("users")
            repo = adapter.create_repository(SqlRepositoryOptions(table=users))
        """
        engine = self.get_engine()
        try:
            async with engine.connect() as conn:
                return await conn.run_sync(
                    lambda sync_conn: Table(table_name, MetaData(), schema=schema, autoload_with=sync_conn)
                )
        except SQLAlchemyError as exc:
            raise BackendFailure(f"Could not reflect table '{table_name}': {exc}") from exc

    def _repository_factory(self, handle: AsyncConnection) -> Callable[[Any], Any]:
        return lambda options: self.create_repository(options, connection=handle)

    async def _begin(self, options: TransactionOptions) -> AsyncConnection:
        conn = await self._engine.connect()
        try:
            if options.isolation_level:
                level = options.isolation_level.upper().replace("_", " ")
                await conn.execution_options(isolation_level=level)

            await conn.begin()

            if options.timeout_ms:
                if conn.dialect.name == "postgresql":
                    await conn.execute(
                        text(f"SET LOCAL statement_timeout = {int(options.timeout_ms)}")
                    )
                else:
                    logger.warning(
                        f"Statement timeout is not supported on '{conn.dialect.name}'; ignoring"
                    )
        except BaseException:
            await conn.close()
            raise
        return conn

    async def _commit(self, handle: AsyncConnection) -> None:
        await handle.commit()

    async def _rollback(self, handle: AsyncConnection) -> None:
        await handle.rollback()

    async def _release(self, handle: AsyncConnection) -> None:
        await handle.close()

    async def _run_nested(
        self,
        outer: TransactionContext,
        callback: TransactionCallback,
        options: TransactionOptions,
    ) -> Any:
        conn: AsyncConnection = outer.handle
        try:
            savepoint = await conn.begin_nested()
        except SQLAlchemyError as exc:
            raise BackendFailure(f"Could not create savepoint: {exc}") from exc

        context = TransactionContext(conn, self._repository_factory(conn), nested=True)
        context.state = TransactionState.ACTIVE
        token = self._current.set(context)
        try:
            try:
                result = await callback(context)
            except BaseException:
                context.state = TransactionState.ROLLED_BACK
                await savepoint.rollback()
                raise
            await savepoint.commit()
            context.state = TransactionState.COMMITTED
            return result
        finally:
            self._current.reset(token)

    def _is_transient_error(self, exc: BaseException) -> bool:
        orig = getattr(exc, "orig", None)
        code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        return code in TRANSIENT_SQLSTATES

    async def _ping(self) -> None:
        async with self._engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
