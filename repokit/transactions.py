"""
Transaction context shared by both adapters.

A TransactionContext is handed to the callback of ``with_transaction``. It
carries the backend's atomic handle (a Mongo ClientSession or a SQLAlchemy
AsyncConnection) and a ``create_repository`` factory bound to it, so every
repository created through the context joins the same transaction.

Callers must issue operations on one context sequentially; the handle is
not safe for concurrent use from several tasks.
"""

import uuid
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field

from repokit.core.config import settings
from repokit.core.exceptions import NotConnected


class TransactionState(str, Enum):
    """Lifecycle: IDLE → ACTIVE → COMMITTED | ROLLED_BACK."""

    IDLE = "idle"
    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class TransactionOptions(BaseModel):
    """
    Options for ``with_transaction``.

    Attributes:
        isolation_level: SQL isolation level (e.g. "serializable"); None
            keeps the backend default, READ COMMITTED on PostgreSQL. MongoDB
            only understands "snapshot".
        timeout_ms: Statement timeout (PostgreSQL) or commit timeout (MongoDB)
        retries: Re-run the whole transaction this many times on transient
            backend errors
    """

    isolation_level: Optional[str] = None
    timeout_ms: Optional[int] = Field(
        default_factory=lambda: settings.transaction_timeout_ms, ge=1
    )
    retries: int = Field(default_factory=lambda: settings.transaction_retries, ge=0)


class TransactionContext:
    """
    Handle plus repository factory for one transaction.

    Attributes:
        handle: Backend-native atomic handle
        transaction_id: Correlation ID used in log records
        nested: True for savepoints / flattened inner transactions
        state: Current TransactionState
    """

    def __init__(
        self,
        handle: Any,
        repository_factory: Callable[[Any], Any],
        nested: bool = False,
        transaction_id: Optional[str] = None,
    ):
        self.handle = handle
        self.nested = nested
        self.transaction_id = transaction_id or uuid.uuid4().hex
        self.state = TransactionState.IDLE
        self._repository_factory = repository_factory

    @property
    def transaction(self) -> Any:
        """Alias for ``handle``."""
        return self.handle

    @property
    def is_active(self) -> bool:
        return self.state is TransactionState.ACTIVE

    def create_repository(self, options: Any) -> Any:
        """
        Build a repository bound to this transaction's handle.

        Raises:
            NotConnected: If the transaction has already settled
        """
        if not self.is_active:
            raise NotConnected(
                f"Transaction {self.transaction_id} is {self.state.value}; "
                f"repositories can only be created while it is active"
            )
        return self._repository_factory(options)

    def __repr__(self) -> str:
        return f"TransactionContext(id={self.transaction_id!r}, state={self.state.value!r})"
