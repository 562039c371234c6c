"""Reversible filesystem operations grouped into all-or-nothing transactions."""

from fstransact.core.errors import (
    FsTransactError,
    OperationStateError,
    TransactionExecuteError,
    TransactionRollbackError,
    TransactionStateError,
    TransactionStepError,
    error_kind,
)
from fstransact.core.schemas import OperationKind
from fstransact.core.transaction import Transaction, TransactionState
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

__all__ = [
    "AppendFile",
    "CopyDirectory",
    "CopyFile",
    "CreateDirectory",
    "CreateFile",
    "DeleteDirectory",
    "DeleteFile",
    "FsTransactError",
    "MoveDirectory",
    "MoveFile",
    "Operation",
    "OperationKind",
    "OperationStateError",
    "Transaction",
    "TransactionExecuteError",
    "TransactionRollbackError",
    "TransactionState",
    "TransactionStateError",
    "TransactionStepError",
    "WriteFile",
    "error_kind",
]
