"""All-or-nothing sequences of reversible filesystem operations.

A Transaction collects operations in order, runs them with ``execute`` and,
when asked, undoes the ones that ran with ``rollback``. It never rolls back
on its own: after a failed execute the caller decides whether to propagate
the error or call ``rollback``.
"""

import uuid
from enum import Enum
from types import TracebackType
from typing import Any, Self

import structlog

from fstransact.core.config import resolve_temp_dir
from fstransact.core.errors import (
    TransactionExecuteError,
    TransactionRollbackError,
    TransactionStateError,
)
from fstransact.fs.manifest import TransactionJournal
from fstransact.fs.operations import (
    AppendFile,
    CopyDirectory,
    CopyFile,
    CreateDirectory,
    CreateFile,
    DeleteDirectory,
    DeleteFile,
    MoveDirectory,
    MoveFile,
    Operation,
    WriteFile,
)
from fstransact.fs.paths import PathLike


class TransactionState(str, Enum):
    """Lifecycle of a transaction.

    Attributes:
        BUILDING: Operations may be appended
        EXECUTING: ``execute`` is running
        EXECUTED: Every operation executed successfully
        FAILED: ``execute`` stopped at a failing operation
        ROLLED_BACK: Every attempted operation was rolled back
        ROLLBACK_FAILED: ``rollback`` stopped at a failing operation
    """

    BUILDING = "building"
    EXECUTING = "executing"
    EXECUTED = "executed"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"
    ROLLBACK_FAILED = "rollback_failed"


_ROLLBACK_ALLOWED = frozenset({TransactionState.EXECUTED, TransactionState.FAILED})


class Transaction:
    """An ordered batch of operations executed as a unit.

    ``execution_count`` counts operations whose ``execute`` was attempted,
    including a failing one: it is incremented before each call. ``rollback``
    visits exactly the indices below it, highest first, so a failed
    operation also gets the chance to undo its partial effect.

    Example:
        >>> with Transaction(temp_dir) as tx:
        ...     tx.create_file("f").write_file("f", b"Hello World")
        ...     try:
        ...         tx.execute()
        ...     except TransactionExecuteError:
        ...         tx.rollback()
        ...         raise
    """

    def __init__(
        self,
        temp_dir: PathLike | None = None,
        *,
        transaction_id: str | None = None,
        journal: TransactionJournal | None = None,
        logger: Any = None,
    ) -> None:
        """Initialize an empty transaction.

        Args:
            temp_dir: Backup location for the builder shortcuts; resolved
                through ``resolve_temp_dir`` when omitted
            transaction_id: Identifier for logs and the journal
            journal: Optional journal that receives one entry per step
            logger: Optional structlog logger instance
        """
        self.transaction_id = transaction_id or uuid.uuid4().hex
        self.temp_dir = resolve_temp_dir(temp_dir)
        self._journal = journal
        self._logger = (logger or structlog.get_logger()).bind(
            transaction_id=self.transaction_id
        )
        self._operations: list[Operation] = []
        self._execution_count = 0
        self._state = TransactionState.BUILDING
        self._failed_index: int | None = None
        self._rollback_failed_index: int | None = None

    @property
    def operations(self) -> tuple[Operation, ...]:
        return tuple(self._operations)

    @property
    def execution_count(self) -> int:
        return self._execution_count

    @property
    def state(self) -> TransactionState:
        return self._state

    @property
    def failed_index(self) -> int | None:
        """Index of the operation that failed to execute, if any."""
        return self._failed_index

    @property
    def rollback_failed_index(self) -> int | None:
        """Index of the operation whose rollback failed, if any."""
        return self._rollback_failed_index

    @property
    def pending_rollback(self) -> list[int]:
        """Indices that still need undoing, in the order rollback visits them.

        After a failed rollback this lists the failing index and every lower
        one, which is what a caller has to recover by hand.
        """
        if self._state is TransactionState.ROLLED_BACK:
            return []
        if self._rollback_failed_index is not None:
            return list(range(self._rollback_failed_index, -1, -1))
        return list(range(self._execution_count - 1, -1, -1))

    def __len__(self) -> int:
        return len(self._operations)

    def add(self, operation: Operation) -> Self:
        """Append an operation and return the transaction for chaining.

        Raises:
            TransactionStateError: If the transaction has started executing
        """
        if self._state is not TransactionState.BUILDING:
            raise TransactionStateError(
                f"Cannot add operations to a transaction in state {self._state.value}"
            )
        self._operations.append(operation)
        return self

    def create_file(self, path: PathLike) -> Self:
        return self.add(CreateFile(path))

    def create_directory(self, path: PathLike) -> Self:
        return self.add(CreateDirectory(path))

    def write_file(self, path: PathLike, payload: bytes) -> Self:
        return self.add(WriteFile(path, self.temp_dir, payload))

    def append_file(self, path: PathLike, payload: bytes) -> Self:
        return self.add(AppendFile(path, self.temp_dir, payload))

    def copy_file(self, source: PathLike, dest: PathLike) -> Self:
        return self.add(CopyFile(source, dest))

    def copy_directory(self, source: PathLike, dest: PathLike) -> Self:
        return self.add(CopyDirectory(source, dest))

    def move_file(self, source: PathLike, dest: PathLike) -> Self:
        return self.add(MoveFile(source, dest))

    def move_directory(self, source: PathLike, dest: PathLike) -> Self:
        return self.add(MoveDirectory(source, dest))

    def delete_file(self, path: PathLike) -> Self:
        return self.add(DeleteFile(path, self.temp_dir))

    def delete_directory(self, path: PathLike) -> Self:
        return self.add(DeleteDirectory(path, self.temp_dir))

    def execute(self) -> None:
        """Execute every operation in append order, stopping at the first failure.

        Raises:
            TransactionStateError: If the transaction was already executed
            TransactionExecuteError: If an operation fails; chained from the
                underlying OSError. Later operations are not run.
        """
        if self._state is not TransactionState.BUILDING:
            raise TransactionStateError(
                f"Cannot execute a transaction in state {self._state.value}"
            )

        self._state = TransactionState.EXECUTING
        self._logger.info("transaction.execute.start", operations=len(self))

        for index, operation in enumerate(self._operations):
            self._execution_count += 1
            try:
                operation.execute()
            except OSError as exc:
                self._state = TransactionState.FAILED
                self._failed_index = index
                self._record("execute", index, operation, "failed", str(exc))
                self._logger.error(
                    "transaction.execute.failed",
                    index=index,
                    kind=operation.kind.value,
                    path=str(operation.source_path),
                    error=str(exc),
                )
                raise TransactionExecuteError(index, operation, exc) from exc
            except Exception:
                self._state = TransactionState.FAILED
                self._failed_index = index
                raise
            self._record("execute", index, operation, "ok")

        self._state = TransactionState.EXECUTED
        self._logger.info(
            "transaction.execute.done", execution_count=self._execution_count
        )

    def rollback(self) -> None:
        """Roll back attempted operations from the highest index down.

        Raises:
            TransactionStateError: If nothing has been executed, or rollback
                already ran
            TransactionRollbackError: If an operation's rollback fails;
                chained from the underlying OSError. Lower indices are left
                as they are (see ``pending_rollback``).
        """
        if self._state not in _ROLLBACK_ALLOWED:
            raise TransactionStateError(
                f"Cannot roll back a transaction in state {self._state.value}"
            )

        self._logger.info(
            "transaction.rollback.start", execution_count=self._execution_count
        )

        for index in reversed(range(self._execution_count)):
            operation = self._operations[index]
            try:
                operation.rollback()
            except OSError as exc:
                self._state = TransactionState.ROLLBACK_FAILED
                self._rollback_failed_index = index
                self._record("rollback", index, operation, "failed", str(exc))
                self._logger.error(
                    "transaction.rollback.failed",
                    index=index,
                    kind=operation.kind.value,
                    path=str(operation.source_path),
                    pending=index + 1,
                    error=str(exc),
                )
                raise TransactionRollbackError(index, operation, exc) from exc
            except Exception:
                self._state = TransactionState.ROLLBACK_FAILED
                self._rollback_failed_index = index
                raise
            self._record("rollback", index, operation, "ok")

        self._state = TransactionState.ROLLED_BACK
        self._logger.info("transaction.rollback.done")

    def close(self) -> None:
        """Dispose of every operation's backup. Safe to call repeatedly."""
        for operation in self._operations:
            operation.close()

    def _record(
        self,
        phase: str,
        index: int,
        operation: Operation,
        status: str,
        reason: str | None = None,
    ) -> None:
        if self._journal is None:
            return
        self._journal.record(
            phase, index, operation.describe(), status=status, reason=reason
        )

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"Transaction(id={self.transaction_id!r}, operations={len(self)}, "
            f"state={self._state.value!r}, execution_count={self._execution_count})"
        )
