"""Reversible filesystem operations and the backup store behind them.

This package provides the operation variants, the backup/restore helpers
they use, and the transaction journal writer.
"""

from fstransact.fs.backup import (
    backup_directory,
    backup_file,
    copy_tree,
    dispose,
    restore_directory,
    restore_file,
)
from fstransact.fs.manifest import TransactionJournal
from fstransact.fs.operations import (
    AppendFile,
    BackedUpOperation,
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
    build_operation,
)

__all__ = [
    "AppendFile",
    "BackedUpOperation",
    "CopyDirectory",
    "CopyFile",
    "CreateDirectory",
    "CreateFile",
    "DeleteDirectory",
    "DeleteFile",
    "MoveDirectory",
    "MoveFile",
    "Operation",
    "TransactionJournal",
    "WriteFile",
    "backup_directory",
    "backup_file",
    "build_operation",
    "copy_tree",
    "dispose",
    "restore_directory",
    "restore_file",
]
