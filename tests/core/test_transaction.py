"""Tests for transaction sequencing and rollback."""

import json
from pathlib import Path
from unittest.mock import Mock

import pytest

from fstransact.core.errors import (
    TransactionExecuteError,
    TransactionRollbackError,
    TransactionStateError,
)
from fstransact.core.schemas import OperationKind
from fstransact.core.transaction import Transaction, TransactionState
from fstransact.fs.manifest import TransactionJournal
from fstransact.fs.operations import CreateFile, Operation


class RecordingOperation(Operation):
    """Operation that records calls into a shared list and can be told to fail."""

    kind = OperationKind.CREATE_FILE

    def __init__(
        self,
        name: str,
        calls: list[str],
        *,
        fail_execute: bool = False,
        fail_rollback: bool = False,
    ) -> None:
        super().__init__(name)
        self.name = name
        self.calls = calls
        self.fail_execute = fail_execute
        self.fail_rollback = fail_rollback

    def _execute(self) -> None:
        self.calls.append(f"execute:{self.name}")
        if self.fail_execute:
            raise PermissionError(13, "Permission denied", self.name)
        self._mark_changed()

    def _rollback(self) -> None:
        self.calls.append(f"rollback:{self.name}")
        if self.fail_rollback:
            raise OSError(5, "Input/output error", self.name)


class TestTransactionExecute:
    """Test executing operations in order."""

    def test_executes_in_append_order(self, temp_dir: Path) -> None:
        calls: list[str] = []
        tx = Transaction(temp_dir)
        for name in ("a", "b", "c"):
            tx.add(RecordingOperation(name, calls))

        tx.execute()

        assert calls == ["execute:a", "execute:b", "execute:c"]
        assert tx.execution_count == 3
        assert tx.state is TransactionState.EXECUTED
        assert tx.failed_index is None

    def test_failure_at_k_sets_execution_count_to_k(self, temp_dir: Path) -> None:
        """Test that the failing operation counts toward the rollback range."""
        calls: list[str] = []
        ops = [
            RecordingOperation("op1", calls),
            RecordingOperation("op2", calls),
            RecordingOperation("op3", calls, fail_execute=True),
            RecordingOperation("op4", calls),
            RecordingOperation("op5", calls),
        ]
        tx = Transaction(temp_dir)
        for op in ops:
            tx.add(op)

        with pytest.raises(TransactionExecuteError) as exc_info:
            tx.execute()

        assert tx.execution_count == 3
        assert tx.state is TransactionState.FAILED
        assert tx.failed_index == 2
        assert exc_info.value.index == 2
        assert exc_info.value.operation is ops[2]
        assert isinstance(exc_info.value.__cause__, PermissionError)
        assert exc_info.value.kind == "permission_denied"
        assert not ops[3].attempted
        assert not ops[4].attempted

    def test_does_not_roll_back_automatically(self, tmp_path: Path) -> None:
        target = tmp_path / "a"
        tx = Transaction(tmp_path / "backups")
        tx.create_file(target).create_file(target)

        with pytest.raises(TransactionExecuteError):
            tx.execute()

        assert target.exists()

    def test_empty_transaction_executes(self, temp_dir: Path) -> None:
        tx = Transaction(temp_dir)

        tx.execute()

        assert tx.execution_count == 0
        assert tx.state is TransactionState.EXECUTED

    def test_execute_twice_raises(self, temp_dir: Path) -> None:
        tx = Transaction(temp_dir)
        tx.execute()

        with pytest.raises(TransactionStateError):
            tx.execute()

    def test_add_after_execute_raises(self, tmp_path: Path) -> None:
        tx = Transaction(tmp_path / "backups")
        tx.execute()

        with pytest.raises(TransactionStateError):
            tx.add(CreateFile(tmp_path / "late"))

    def test_failure_is_logged(self, tmp_path: Path) -> None:
        target = tmp_path / "a"
        target.write_text("exists")

        mock_logger = Mock()
        mock_bound_logger = Mock()
        mock_logger.bind.return_value = mock_bound_logger

        tx = Transaction(
            tmp_path / "backups", transaction_id="tx-1", logger=mock_logger
        )
        tx.create_file(target)
        with pytest.raises(TransactionExecuteError):
            tx.execute()

        mock_logger.bind.assert_called_once_with(transaction_id="tx-1")
        mock_bound_logger.error.assert_called_once()
        event, fields = mock_bound_logger.error.call_args
        assert event[0] == "transaction.execute.failed"
        assert fields["index"] == 0
        assert fields["kind"] == "create_file"
        assert fields["path"] == str(target)


class TestTransactionRollback:
    """Test reverse-order rollback of attempted operations."""

    def test_duplicate_create_scenario(self, tmp_path: Path) -> None:
        """Second create of the same path fails; rollback removes the file."""
        target = tmp_path / "a"
        tx = Transaction(tmp_path / "backups")
        tx.add(CreateFile(target)).add(CreateFile(target))

        with pytest.raises(TransactionExecuteError) as exc_info:
            tx.execute()

        assert exc_info.value.index == 1
        assert exc_info.value.kind == "already_exists"
        assert tx.execution_count == 2

        tx.rollback()

        assert not target.exists()
        assert all(op.rolled_back for op in tx.operations)
        assert tx.state is TransactionState.ROLLED_BACK
        assert tx.pending_rollback == []

    def test_rolls_back_attempted_operations_in_reverse(self, temp_dir: Path) -> None:
        calls: list[str] = []
        ops = [
            RecordingOperation("op1", calls),
            RecordingOperation("op2", calls),
            RecordingOperation("op3", calls, fail_execute=True),
            RecordingOperation("op4", calls),
        ]
        tx = Transaction(temp_dir)
        for op in ops:
            tx.add(op)
        with pytest.raises(TransactionExecuteError):
            tx.execute()
        calls.clear()

        tx.rollback()

        # op3 changed nothing, so only op2 and op1 have work to undo
        assert calls == ["rollback:op2", "rollback:op1"]
        assert ops[2].rolled_back
        assert not ops[3].rolled_back

    def test_rollback_after_success_restores_everything(
        self, tmp_path: Path, sample_tree: Path, tree_snapshot
    ) -> None:
        before = tree_snapshot(tmp_path)
        existing = sample_tree / "top.txt"

        with Transaction(tmp_path / "backups") as tx:
            (
                tx.create_directory(tmp_path / "out" / "nested")
                .create_file(tmp_path / "out" / "nested" / "f.txt")
                .write_file(tmp_path / "out" / "nested" / "f.txt", b"Hello World")
                .append_file(existing, b" appended")
                .copy_directory(sample_tree, tmp_path / "out" / "tree")
                .copy_file(existing, tmp_path / "out" / "top.copy")
                .move_file(sample_tree / "nested" / "mid.bin", tmp_path / "mid.bin")
                .delete_file(sample_tree / "nested" / "deeper" / "leaf.txt")
                .delete_directory(sample_tree / "empty")
                .move_directory(sample_tree / "nested", tmp_path / "nested_moved")
            )
            tx.execute()
            assert tx.execution_count == 10
            assert existing.read_text() == "top level appended"

            tx.rollback()

        after = tree_snapshot(tmp_path)
        # Only the (now empty) backup directory is new
        assert {k: v for k, v in after.items() if not k.startswith("backups")} == {
            k: v for k, v in before.items()
        }
        assert list((tmp_path / "backups").iterdir()) == []

    def test_rollback_failure_reports_index_and_pending(self, temp_dir: Path) -> None:
        calls: list[str] = []
        ops = [
            RecordingOperation("op1", calls),
            RecordingOperation("op2", calls, fail_rollback=True),
            RecordingOperation("op3", calls),
        ]
        tx = Transaction(temp_dir)
        for op in ops:
            tx.add(op)
        tx.execute()
        calls.clear()

        with pytest.raises(TransactionRollbackError) as exc_info:
            tx.rollback()

        assert calls == ["rollback:op3", "rollback:op2"]
        assert exc_info.value.index == 1
        assert isinstance(exc_info.value.__cause__, OSError)
        assert tx.state is TransactionState.ROLLBACK_FAILED
        assert tx.rollback_failed_index == 1
        assert tx.pending_rollback == [1, 0]
        assert not ops[0].rolled_back

    def test_rollback_before_execute_raises(self, temp_dir: Path) -> None:
        tx = Transaction(temp_dir)

        with pytest.raises(TransactionStateError):
            tx.rollback()

    def test_rollback_twice_raises(self, tmp_path: Path) -> None:
        tx = Transaction(tmp_path / "backups")
        tx.create_file(tmp_path / "f")
        tx.execute()
        tx.rollback()

        with pytest.raises(TransactionStateError):
            tx.rollback()

    def test_pending_rollback_before_rollback(self, temp_dir: Path) -> None:
        calls: list[str] = []
        tx = Transaction(temp_dir)
        tx.add(RecordingOperation("a", calls)).add(RecordingOperation("b", calls))
        tx.execute()

        assert tx.pending_rollback == [1, 0]


class TestTransactionResources:
    """Test configuration, disposal and journaling."""

    def test_builder_returns_same_transaction(self, tmp_path: Path) -> None:
        tx = Transaction(tmp_path / "backups")

        assert tx.create_file(tmp_path / "f") is tx
        assert len(tx) == 1

    def test_temp_dir_from_environment(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("FSTRANSACT_TEMP_DIR", str(tmp_path / "env-backups"))

        tx = Transaction()
        tx.write_file(tmp_path / "f", b"x")

        assert tx.temp_dir == tmp_path / "env-backups"
        assert tx.operations[0].temp_dir == tmp_path / "env-backups"

    def test_close_disposes_backups(self, tmp_path: Path) -> None:
        target = tmp_path / "file.txt"
        target.write_text("content")
        temp_dir = tmp_path / "backups"

        with Transaction(temp_dir) as tx:
            tx.write_file(target, b"new").delete_file(target)
            tx.execute()
            assert len(list(temp_dir.iterdir())) == 2

        assert list(temp_dir.iterdir()) == []
        assert not target.exists()

    def test_journal_records_every_step(self, tmp_path: Path) -> None:
        target = tmp_path / "a"
        journal_dir = tmp_path / "journal"

        with TransactionJournal("tx-journal", journal_dir) as journal:
            tx = Transaction(
                tmp_path / "backups", transaction_id="tx-journal", journal=journal
            )
            tx.create_file(target).create_file(target)
            with pytest.raises(TransactionExecuteError):
                tx.execute()
            tx.rollback()

        lines = (journal_dir / "tx-journal.jsonl").read_text().splitlines()
        entries = [json.loads(line) for line in lines]

        assert entries[0]["type"] == "header"
        assert entries[0]["transaction_id"] == "tx-journal"
        steps = [(e["phase"], e["index"], e["status"]) for e in entries[1:]]
        assert steps == [
            ("execute", 0, "ok"),
            ("execute", 1, "failed"),
            ("rollback", 1, "ok"),
            ("rollback", 0, "ok"),
        ]
        assert entries[2]["operation"]["kind"] == "create_file"
        assert "reason" in entries[2]
