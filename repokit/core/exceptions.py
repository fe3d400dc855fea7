"""
Exception taxonomy for the repository layer.

"Not found" is never an exception: lookups return None, deletes return
False and bulk operations return 0. Exceptions are reserved for malformed
input, missing connections and backend failures.
"""

from typing import Any, Optional


class RepositoryError(Exception):
    """Base exception for repokit"""
    pass


class UnsupportedOperator(RepositoryError):
    """Raised when a filter uses an operator token outside the supported set"""

    def __init__(self, operator: str, field: str):
        self.operator = operator
        self.field = field
        super().__init__(
            f"Unsupported filter operator '{operator}' on field '{field}'"
        )


class NotConnected(RepositoryError):
    """Raised when an operation needs a backend connection that is not open"""
    pass


class ValidationFailure(RepositoryError):
    """Raised for malformed identifiers, filters, sort specs or options"""
    pass


class BackendFailure(RepositoryError):
    """
    Wraps a native driver error.

    The original exception is chained as ``__cause__``; its message and,
    when the driver exposes one, its error code are preserved.

    Attributes:
        code: Native error code (Mongo error code or SQLSTATE), if any
    """

    def __init__(self, message: str, code: Optional[Any] = None):
        self.code = code
        super().__init__(message)


class TransactionAborted(RepositoryError):
    """Raised when the backend refuses to commit a transaction"""
    pass
