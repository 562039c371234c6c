"""Tests for the fstransact exception hierarchy."""

import errno
from pathlib import Path

import pytest

from fstransact.core.errors import (
    FsTransactError,
    OperationStateError,
    TransactionExecuteError,
    TransactionRollbackError,
    TransactionStateError,
    TransactionStepError,
    error_kind,
)
from fstransact.fs.operations import CopyFile


class TestErrorKind:
    """Test classification of OSError causes."""

    @pytest.mark.parametrize(
        ("exc", "expected"),
        [
            (FileNotFoundError(errno.ENOENT, "missing"), "not_found"),
            (PermissionError(errno.EACCES, "denied"), "permission_denied"),
            (FileExistsError(errno.EEXIST, "exists"), "already_exists"),
            (OSError(errno.ENOENT, "missing"), "not_found"),
            (OSError(errno.EPERM, "not permitted"), "permission_denied"),
            (OSError(errno.EIO, "io"), "other"),
            (ValueError("not an OSError"), "other"),
            (None, "other"),
        ],
    )
    def test_classification(self, exc: BaseException | None, expected: str) -> None:
        assert error_kind(exc) == expected


class TestHierarchy:
    """Test exception inheritance."""

    def test_all_errors_share_base(self) -> None:
        for error_type in (
            OperationStateError,
            TransactionStateError,
            TransactionExecuteError,
            TransactionRollbackError,
        ):
            assert issubclass(error_type, FsTransactError)

    def test_step_errors_share_parent(self) -> None:
        assert issubclass(TransactionExecuteError, TransactionStepError)
        assert issubclass(TransactionRollbackError, TransactionStepError)


class TestTransactionStepError:
    """Test the attributes and serialization of step errors."""

    def test_message_and_attributes(self) -> None:
        op = CopyFile(Path("src.txt"), Path("dst.txt"))
        cause = FileExistsError(errno.EEXIST, "Destination already exists", "dst.txt")

        exc = TransactionExecuteError(3, op, cause)

        assert exc.index == 3
        assert exc.operation is op
        assert exc.cause is cause
        assert exc.kind == "already_exists"
        assert "execute failed at operation 3 (copy_file)" in str(exc)

    def test_to_dict(self) -> None:
        op = CopyFile(Path("src.txt"), Path("dst.txt"))
        cause = PermissionError(errno.EACCES, "Permission denied", "dst.txt")

        result = TransactionRollbackError(1, op, cause).to_dict()

        assert result["error"] == "rollback_failed"
        assert result["index"] == 1
        assert result["kind"] == "permission_denied"
        assert result["operation"]["kind"] == "copy_file"
        assert "Permission denied" in result["reason"]

    def test_repr(self) -> None:
        op = CopyFile(Path("a"), Path("b"))
        exc = TransactionExecuteError(0, op, OSError(errno.EIO, "io"))

        assert repr(exc) == (
            "TransactionExecuteError(index=0, operation=CopyFile('a', 'b'), "
            "kind='other')"
        )
