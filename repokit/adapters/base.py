"""
Adapter contract: owns a backend connection handle, builds repositories
over it and runs transactions.

``with_transaction`` is implemented once here as a small state machine;
backends supply begin/commit/rollback/release and their nesting policy.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from contextvars import ContextVar
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel

from repokit.core.exceptions import BackendFailure, TransactionAborted
from repokit.core.logging_config import get_logger, log_with_context
from repokit.core.retry import retry_with_backoff
from repokit.transactions import TransactionContext, TransactionOptions, TransactionState

logger = get_logger(__name__)

T = TypeVar("T")
TransactionCallback = Callable[[TransactionContext], Awaitable[T]]


class HealthCheckResult(BaseModel):
    """Outcome of an adapter health check."""

    healthy: bool
    type: str
    response_time_ms: float
    error: Optional[str] = None


class DatabaseAdapter(ABC):
    """
    Base class for backend adapters.

    Attributes:
        type: "mongo" or "postgres"
    """

    type: str = ""
    _not_connected_message = "Not connected"
    driver_errors: Tuple[Type[BaseException], ...] = ()

    def __init__(self):
        # Active transaction of the current task, used to detect nesting
        self._current: ContextVar[Optional[TransactionContext]] = ContextVar(
            f"repokit_{self.type}_transaction_{id(self)}", default=None
        )

    @abstractmethod
    def is_connected(self) -> bool: ...

    @abstractmethod
    async def disconnect(self) -> None: ...

    @abstractmethod
    def create_repository(self, options: Any) -> Any:
        """Build a repository over the adapter's connection."""

    @abstractmethod
    def _repository_factory(self, handle: Any) -> Callable[[Any], Any]:
        """Return a create_repository bound to a transaction handle."""

    @abstractmethod
    def _require_connection(self) -> None:
        """Raise NotConnected before any I/O if the adapter is not connected."""

    @abstractmethod
    async def _begin(self, options: TransactionOptions) -> Any: ...

    @abstractmethod
    async def _commit(self, handle: Any) -> None: ...

    @abstractmethod
    async def _rollback(self, handle: Any) -> None: ...

    @abstractmethod
    async def _release(self, handle: Any) -> None: ...

    @abstractmethod
    async def _run_nested(
        self,
        outer: TransactionContext,
        callback: TransactionCallback,
        options: TransactionOptions,
    ) -> Any:
        """Run a with_transaction issued inside another one."""

    @abstractmethod
    async def _ping(self) -> None:
        """Cheapest round trip proving the backend answers."""

    def _is_transient_error(self, exc: BaseException) -> bool:
        """Whether a native error means "retry the whole transaction"."""
        return False

    def _should_retry(self, exc: BaseException) -> bool:
        native = exc.__cause__ if isinstance(exc, (BackendFailure, TransactionAborted)) else exc
        return native is not None and self._is_transient_error(native)

    async def with_transaction(
        self,
        callback: TransactionCallback,
        options: Optional[TransactionOptions] = None,
    ) -> Any:
        """
        Run ``callback(context)`` inside one atomic unit.

        Commits and returns the callback's result when it succeeds; rolls
        back and re-raises the callback's exception unchanged when it fails.

        Args:
            callback: Async callable receiving a TransactionContext
            options: Isolation level, timeout and retry settings

        Returns:
            Whatever the callback returned

        Raises:
            NotConnected: If the adapter is not connected
            TransactionAborted: If the backend refuses the commit

        Example:
            >>> async def transfer(ctx):
            ...     accounts = ctx.create_repository(options)
            ...     await accounts.update_by_id(a, {"balance": 50})
            ...     await accounts.update_by_id(b, {"balance": 150})
            >>> await adapter.with_transaction(transfer)
        """
        self._require_connection()
        options = options or TransactionOptions()

        outer = self._current.get()
        if outer is not None and outer.is_active:
            return await self._run_nested(outer, callback, options)

        attempt = retry_with_backoff(
            max_retries=options.retries,
            exceptions=(Exception,),
            retry_if=self._should_retry,
        )(self._run_transaction)
        return await attempt(callback, options)

    async def _run_transaction(self, callback: TransactionCallback, options: TransactionOptions) -> Any:
        try:
            handle = await self._begin(options)
        except self.driver_errors as exc:
            raise BackendFailure(f"Could not start transaction: {exc}") from exc
        context = TransactionContext(handle, self._repository_factory(handle))
        context.state = TransactionState.ACTIVE
        token = self._current.set(context)
        log_with_context(
            logger, "debug", "transaction started",
            backend=self.type, transaction_id=context.transaction_id,
        )

        try:
            try:
                result = await callback(context)
            except BaseException:
                context.state = TransactionState.ROLLED_BACK
                await self._safe_rollback(handle, context)
                raise

            try:
                await self._commit(handle)
            except Exception as exc:
                context.state = TransactionState.ROLLED_BACK
                log_with_context(
                    logger, "error", f"transaction commit failed: {exc}",
                    backend=self.type, transaction_id=context.transaction_id,
                )
                raise TransactionAborted(
                    f"Transaction {context.transaction_id} could not be committed: {exc}"
                ) from exc

            context.state = TransactionState.COMMITTED
            log_with_context(
                logger, "info", "transaction committed",
                backend=self.type, transaction_id=context.transaction_id,
            )
            return result
        finally:
            self._current.reset(token)
            await self._release(handle)

    async def _safe_rollback(self, handle: Any, context: TransactionContext) -> None:
        # The callback's exception is the one callers need to see
        try:
            await self._rollback(handle)
        except Exception as exc:
            log_with_context(
                logger, "error", f"transaction rollback failed: {exc}",
                backend=self.type, transaction_id=context.transaction_id,
            )
        else:
            log_with_context(
                logger, "info", "transaction rolled back",
                backend=self.type, transaction_id=context.transaction_id,
            )

    async def health_check(self, timeout_seconds: float = 2.0) -> HealthCheckResult:
        """
        Check backend connectivity.

        Never raises: failures are reported in the result.

        Args:
            timeout_seconds: Maximum time to wait for the ping
        """
        started = time.perf_counter()

        def elapsed() -> float:
            return round((time.perf_counter() - started) * 1000, 3)

        if not self.is_connected():
            return HealthCheckResult(
                healthy=False,
                type=self.type,
                response_time_ms=elapsed(),
                error=self._not_connected_message,
            )

        try:
            async with asyncio.timeout(timeout_seconds):
                await self._ping()
        except TimeoutError:
            return HealthCheckResult(
                healthy=False,
                type=self.type,
                response_time_ms=elapsed(),
                error=f"No response within {timeout_seconds}s",
            )
        except Exception as exc:
            return HealthCheckResult(
                healthy=False, type=self.type, response_time_ms=elapsed(), error=str(exc)
            )
        return HealthCheckResult(healthy=True, type=self.type, response_time_ms=elapsed())
