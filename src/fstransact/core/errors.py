"""Custom exceptions for fstransact.

Filesystem failures surface as plain ``OSError`` from individual operations.
The types here describe contract misuse and the position at which a
transaction stopped, so callers can reason about manual recovery.
"""

import errno
from typing import Any, Literal

ErrorKind = Literal["not_found", "permission_denied", "already_exists", "other"]


def error_kind(exc: BaseException | None) -> ErrorKind:
    """Classify an OSError by its underlying cause.

    Args:
        exc: Exception to classify

    Returns:
        One of ``not_found``, ``permission_denied``, ``already_exists`` or
        ``other``
    """
    if isinstance(exc, FileNotFoundError):
        return "not_found"
    if isinstance(exc, PermissionError):
        return "permission_denied"
    if isinstance(exc, FileExistsError):
        return "already_exists"
    if isinstance(exc, OSError):
        if exc.errno == errno.ENOENT:
            return "not_found"
        if exc.errno in (errno.EACCES, errno.EPERM):
            return "permission_denied"
        if exc.errno == errno.EEXIST:
            return "already_exists"
    return "other"


class FsTransactError(Exception):
    """Base exception for all fstransact errors."""

    pass


class OperationStateError(FsTransactError):
    """Raised when an operation's execute/rollback contract is violated.

    An operation is executed at most once and rolled back at most once, and
    only after execute has been attempted.
    """

    pass


class TransactionStateError(FsTransactError):
    """Raised when a transaction is driven from a state that forbids it."""

    pass


class TransactionStepError(FsTransactError):
    """A transaction stopped at a specific operation.

    Attributes:
        phase: ``execute`` or ``rollback``
        index: Zero-based index of the operation that failed
        operation: The failing operation
        cause: The underlying OSError
    """

    phase: str = "step"

    def __init__(self, index: int, operation: Any, cause: OSError) -> None:
        self.index = index
        self.operation = operation
        self.cause = cause

        kind = getattr(operation, "kind", None)
        label = kind.value if kind is not None else type(operation).__name__
        message = f"{self.phase} failed at operation {index} ({label}): {cause}"
        super().__init__(message)

    @property
    def kind(self) -> ErrorKind:
        """Classification of the underlying cause."""
        return error_kind(self.cause)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for JSON output."""
        result: dict[str, Any] = {
            "error": f"{self.phase}_failed",
            "index": self.index,
            "kind": self.kind,
            "reason": str(self.cause),
        }
        describe = getattr(self.operation, "describe", None)
        if callable(describe):
            result["operation"] = describe()
        return result

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(index={self.index}, "
            f"operation={self.operation!r}, kind={self.kind!r})"
        )


class TransactionExecuteError(TransactionStepError):
    """Raised when an operation fails during ``Transaction.execute``.

    Later operations were not run. The transaction is not rolled back
    automatically.
    """

    phase = "execute"


class TransactionRollbackError(TransactionStepError):
    """Raised when an operation fails during ``Transaction.rollback``.

    Operations with a lower index than ``index`` were not rolled back; the
    transaction exposes them as ``pending_rollback``.
    """

    phase = "rollback"
