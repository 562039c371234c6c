"""Transaction journal writer.

This module writes a JSONL audit trail of a transaction's steps. The journal
is informational: it is never replayed to recover from a crash.
"""

import json
import os
import platform
from datetime import UTC, datetime
from pathlib import Path
from types import TracebackType
from typing import IO, Any

from fstransact.fs.paths import PathLike, as_path, ensure_dir
from fstransact.utils.debug import debug

SCHEMA_VERSION = "1.0"


class TransactionJournal:
    """Writes one JSONL journal per transaction run.

    Each journal file contains:
    - Header line with metadata (type: "header")
    - One JSON object per execute or rollback step (type: "step")
    """

    def __init__(self, transaction_id: str, root: PathLike) -> None:
        """Initialize the journal writer.

        Args:
            transaction_id: Unique identifier of the transaction run
            root: Directory that receives the journal file

        Raises:
            OSError: If the journal directory cannot be created
        """
        self.transaction_id = transaction_id
        self.root = as_path(root)
        self._file: IO[str] | None = None
        self._header_written = False

        try:
            ensure_dir(self.root)
        except OSError as e:
            raise OSError(
                f"Cannot create journal directory {self.root}: {e}. "
                "Ensure the directory is writable or choose a different location."
            ) from e

        self.path: Path = self.root / f"{transaction_id}.jsonl"
        debug(f"Transaction journal will be written to: {self.path}")

    def write_header(self) -> None:
        """Write the journal header with run metadata."""
        if self._header_written:
            return

        header = {
            "type": "header",
            "schema_version": SCHEMA_VERSION,
            "transaction_id": self.transaction_id,
            "generated_at": datetime.now(UTC).isoformat(),
            "system": {"os": platform.system()},
        }

        self._write_line(header)
        self._header_written = True

    def record(
        self,
        phase: str,
        index: int,
        operation: dict[str, Any],
        *,
        status: str,
        reason: str | None = None,
    ) -> None:
        """Append one step entry.

        Args:
            phase: ``execute`` or ``rollback``
            index: Zero-based operation index
            operation: Operation description (see ``Operation.describe``)
            status: ``ok`` or ``failed``
            reason: Error message for failed steps
        """
        entry: dict[str, Any] = {
            "type": "step",
            "ts": datetime.now(UTC).isoformat(),
            "phase": phase,
            "index": index,
            "status": status,
            "operation": operation,
        }
        if reason is not None:
            entry["reason"] = reason

        self.append(entry)

    def append(self, entry: dict[str, Any]) -> None:
        """Append a raw entry, writing the header first if needed."""
        if not self._header_written:
            self.write_header()

        self._write_line(entry)

    def _write_line(self, data: dict[str, Any]) -> None:
        if self._file is None:
            self._file = open(self.path, "w", encoding="utf-8")

        json_line = json.dumps(data, ensure_ascii=False, separators=(",", ":"))
        self._file.write(json_line + "\n")
        self._file.flush()
        os.fsync(self._file.fileno())

    def close(self) -> None:
        """Close the journal file."""
        if self._file is not None:
            self._file.close()
            self._file = None
            debug(f"Closed journal file: {self.path}")

    def __enter__(self) -> "TransactionJournal":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
