"""Reversible filesystem operations.

Each operation performs one filesystem action in ``execute`` and undoes it in
``rollback``. Operations that overwrite or remove existing content first take
a backup through ``fstransact.fs.backup``; the backup is released by
``close()`` (or by leaving a ``with`` block), never by a successful execute.

The set of operations is closed: one class per ``OperationKind``.
"""

import errno
import os
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from types import TracebackType
from typing import Any, ClassVar, assert_never

import structlog

from fstransact.core.errors import OperationStateError
from fstransact.core.schemas import OperationKind, OperationSpec
from fstransact.fs import backup
from fstransact.fs.paths import PathLike, as_path, first_missing_ancestor
from fstransact.utils.debug import debug

logger = structlog.get_logger()


class Operation(ABC):
    """Base class for a single reversible filesystem action.

    ``execute`` and ``rollback`` are each called at most once, execute
    first. Both raise ``OSError`` unchanged when the filesystem refuses.

    An operation tracks whether it changed the filesystem. If ``execute``
    failed before changing anything (for example the backup could not be
    taken, or the file to create already existed) ``rollback`` does nothing.
    If it failed part way, ``rollback`` undoes the partial effect.
    """

    kind: ClassVar[OperationKind]

    def __init__(self, source_path: PathLike) -> None:
        self.source_path: Path = as_path(source_path)
        self._attempted = False
        self._changed = False
        self._completed = False
        self._rolled_back = False
        self._closed = False

    @property
    def attempted(self) -> bool:
        """True once ``execute`` has been called, whether or not it succeeded."""
        return self._attempted

    @property
    def completed(self) -> bool:
        """True if ``execute`` returned without error."""
        return self._completed

    @property
    def rolled_back(self) -> bool:
        return self._rolled_back

    def execute(self) -> None:
        """Perform the action.

        Raises:
            OperationStateError: If already executed or closed
            OSError: If the filesystem action fails
        """
        if self._closed:
            raise OperationStateError(f"{self!r} is closed")
        if self._attempted:
            raise OperationStateError(f"{self!r} has already been executed")

        self._attempted = True
        self._execute()
        self._completed = True

    def rollback(self) -> None:
        """Undo whatever ``execute`` changed.

        Raises:
            OperationStateError: If execute was never attempted or rollback
                was already called
            OSError: If the filesystem refuses the undo
        """
        if not self._attempted:
            raise OperationStateError(
                f"{self!r} cannot be rolled back before execute"
            )
        if self._rolled_back:
            raise OperationStateError(f"{self!r} has already been rolled back")

        self._rolled_back = True
        if not self._changed:
            debug(f"Nothing to roll back for {self!r}")
            return
        self._rollback()

    def _mark_changed(self) -> None:
        """Record that the filesystem is about to be (or has been) changed."""
        self._changed = True

    @abstractmethod
    def _execute(self) -> None: ...

    @abstractmethod
    def _rollback(self) -> None: ...

    def close(self) -> None:
        """Release resources held by the operation. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        self._dispose()

    def _dispose(self) -> None:
        pass

    def describe(self) -> dict[str, Any]:
        """Return a JSON-serializable description of the operation."""
        return {"kind": self.kind.value, "path": str(self.source_path)}

    def __enter__(self) -> "Operation":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self.source_path)!r})"


class BackedUpOperation(Operation):
    """An operation that snapshots its target before mutating it.

    ``backup_path`` stays ``None`` until a backup exists and is assigned at
    most once. The backup outlives a successful execute and is removed by
    ``close()``; disposal failures are logged, not raised.
    """

    directory_backup: ClassVar[bool] = False

    def __init__(self, source_path: PathLike, temp_dir: PathLike) -> None:
        super().__init__(source_path)
        self.temp_dir: Path = as_path(temp_dir)
        self.backup_path: Path | None = None
        self._backup_consumed = False

    def _take_backup(self) -> Path:
        if self.backup_path is not None:
            raise OperationStateError(f"{self!r} already holds a backup")

        if self.directory_backup:
            self.backup_path = backup.backup_directory(self.source_path, self.temp_dir)
        else:
            self.backup_path = backup.backup_file(self.source_path, self.temp_dir)
        return self.backup_path

    def _require_backup(self) -> Path:
        if self.backup_path is None:
            raise OperationStateError(f"{self!r} has no backup to restore from")
        return self.backup_path

    def _dispose(self) -> None:
        if self.backup_path is None or self._backup_consumed:
            return
        try:
            backup.dispose(self.backup_path)
        except OSError as exc:
            logger.warning(
                "operation.dispose_failed",
                kind=self.kind.value,
                path=str(self.source_path),
                backup_path=str(self.backup_path),
                error=str(exc),
            )

    def describe(self) -> dict[str, Any]:
        result = super().describe()
        result["backup_path"] = (
            str(self.backup_path) if self.backup_path is not None else None
        )
        return result


class CreateFile(Operation):
    """Create a new empty file. Fails if the path already exists."""

    kind = OperationKind.CREATE_FILE

    def _execute(self) -> None:
        with open(self.source_path, "xb"):
            pass
        self._mark_changed()

    def _rollback(self) -> None:
        self.source_path.unlink()


class CreateDirectory(Operation):
    """Create a directory together with any missing parents.

    Rollback removes the topmost directory this operation created, so a
    multi-level path is removed as a whole rather than just its leaf.
    """

    kind = OperationKind.CREATE_DIRECTORY

    def __init__(self, source_path: PathLike) -> None:
        super().__init__(source_path)
        self.created_root: Path | None = None

    def _execute(self) -> None:
        self.created_root = first_missing_ancestor(self.source_path)
        if self.created_root is not None:
            self._mark_changed()
        self.source_path.mkdir(parents=True, exist_ok=True)

    def _rollback(self) -> None:
        assert self.created_root is not None
        if self._completed or self.created_root.exists():
            shutil.rmtree(self.created_root)

    def describe(self) -> dict[str, Any]:
        result = super().describe()
        result["created_root"] = (
            str(self.created_root) if self.created_root is not None else None
        )
        return result


class WriteFile(BackedUpOperation):
    """Replace the whole contents of an existing file with ``payload``.

    The file is truncated first, so a payload shorter than the old contents
    leaves none of the old bytes behind.
    """

    kind = OperationKind.WRITE_FILE

    def __init__(
        self, source_path: PathLike, temp_dir: PathLike, payload: bytes
    ) -> None:
        super().__init__(source_path, temp_dir)
        self.payload = bytes(payload)

    def _execute(self) -> None:
        self._take_backup()
        with open(self.source_path, "r+b") as handle:
            self._mark_changed()
            handle.truncate()
            handle.write(self.payload)

    def _rollback(self) -> None:
        backup.restore_file(self._require_backup(), self.source_path)

    def describe(self) -> dict[str, Any]:
        result = super().describe()
        result["payload_size"] = len(self.payload)
        return result


class AppendFile(BackedUpOperation):
    """Append ``payload`` to the end of an existing file."""

    kind = OperationKind.APPEND_FILE

    def __init__(
        self, source_path: PathLike, temp_dir: PathLike, payload: bytes
    ) -> None:
        super().__init__(source_path, temp_dir)
        self.payload = bytes(payload)

    def _execute(self) -> None:
        self._take_backup()
        with open(self.source_path, "ab") as handle:
            self._mark_changed()
            handle.write(self.payload)

    def _rollback(self) -> None:
        backup.restore_file(self._require_backup(), self.source_path)

    def describe(self) -> dict[str, Any]:
        result = super().describe()
        result["payload_size"] = len(self.payload)
        return result


class _TwoPathOperation(Operation):
    def __init__(self, source_path: PathLike, dest_path: PathLike) -> None:
        super().__init__(source_path)
        self.dest_path: Path = as_path(dest_path)

    def _refuse_existing_dest(self) -> None:
        # Rollback deletes the destination, so it must not hold prior content
        if self.dest_path.exists() or self.dest_path.is_symlink():
            raise FileExistsError(
                errno.EEXIST, "Destination already exists", str(self.dest_path)
            )

    def describe(self) -> dict[str, Any]:
        result = super().describe()
        result["dest"] = str(self.dest_path)
        return result

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({str(self.source_path)!r}, "
            f"{str(self.dest_path)!r})"
        )


class CopyFile(_TwoPathOperation):
    """Copy a file's bytes to a destination that does not exist yet."""

    kind = OperationKind.COPY_FILE

    def _execute(self) -> None:
        self._refuse_existing_dest()
        self._mark_changed()
        shutil.copyfile(self.source_path, self.dest_path)

    def _rollback(self) -> None:
        if self._completed or self.dest_path.exists():
            self.dest_path.unlink()


class CopyDirectory(_TwoPathOperation):
    """Copy a directory tree to a destination that does not exist yet."""

    kind = OperationKind.COPY_DIRECTORY

    def _execute(self) -> None:
        self._refuse_existing_dest()
        if not self.source_path.is_dir():
            raise NotADirectoryError(
                errno.ENOTDIR, "Not a directory", str(self.source_path)
            )
        self._mark_changed()
        backup.copy_tree(self.source_path, self.dest_path)

    def _rollback(self) -> None:
        if self._completed or self.dest_path.exists():
            shutil.rmtree(self.dest_path)


class _MoveOperation(_TwoPathOperation):
    """Rename ``source_path`` to ``dest_path``; rollback renames it back.

    Uses ``os.rename``, so both paths must be on the same volume. An existing
    destination is refused rather than silently replaced.
    """

    def _execute(self) -> None:
        self._refuse_existing_dest()
        os.rename(self.source_path, self.dest_path)
        self._mark_changed()

    def _rollback(self) -> None:
        os.rename(self.dest_path, self.source_path)


class MoveFile(_MoveOperation):
    kind = OperationKind.MOVE_FILE


class MoveDirectory(_MoveOperation):
    kind = OperationKind.MOVE_DIRECTORY


class DeleteFile(BackedUpOperation):
    """Remove a file after backing it up; rollback copies the backup back."""

    kind = OperationKind.DELETE_FILE

    def _execute(self) -> None:
        self._take_backup()
        self.source_path.unlink()
        self._mark_changed()

    def _rollback(self) -> None:
        backup.restore_file(self._require_backup(), self.source_path)


class DeleteDirectory(BackedUpOperation):
    """Remove a directory tree after backing it up.

    Rollback moves the backup back into place, so the backup is consumed
    and nothing is left to dispose afterwards.
    """

    kind = OperationKind.DELETE_DIRECTORY
    directory_backup = True

    def _execute(self) -> None:
        if self.source_path.is_symlink():
            # rmtree refuses links; fail before a backup is taken
            raise NotADirectoryError(
                errno.ENOTDIR, "Not a directory", str(self.source_path)
            )
        self._take_backup()
        self._mark_changed()
        shutil.rmtree(self.source_path)

    def _rollback(self) -> None:
        backup_path = self._require_backup()
        remnant = self.source_path
        if not self._completed and remnant.is_dir() and not remnant.is_symlink():
            # Remnant of a partially failed removal
            shutil.rmtree(self.source_path)
        backup.restore_directory(backup_path, self.source_path, consume=True)
        self._backup_consumed = True


def build_operation(spec: OperationSpec, temp_dir: PathLike) -> Operation:
    """Construct the operation described by a plan entry.

    Args:
        spec: Validated operation spec
        temp_dir: Backup location for kinds that take a backup

    Returns:
        The matching Operation instance
    """
    kind = spec.kind
    match kind:
        case OperationKind.CREATE_FILE:
            return CreateFile(spec.path)
        case OperationKind.CREATE_DIRECTORY:
            return CreateDirectory(spec.path)
        case OperationKind.WRITE_FILE:
            return WriteFile(spec.path, temp_dir, spec.payload)
        case OperationKind.APPEND_FILE:
            return AppendFile(spec.path, temp_dir, spec.payload)
        case OperationKind.COPY_FILE:
            assert spec.dest is not None
            return CopyFile(spec.path, spec.dest)
        case OperationKind.COPY_DIRECTORY:
            assert spec.dest is not None
            return CopyDirectory(spec.path, spec.dest)
        case OperationKind.MOVE_FILE:
            assert spec.dest is not None
            return MoveFile(spec.path, spec.dest)
        case OperationKind.MOVE_DIRECTORY:
            assert spec.dest is not None
            return MoveDirectory(spec.path, spec.dest)
        case OperationKind.DELETE_FILE:
            return DeleteFile(spec.path, temp_dir)
        case OperationKind.DELETE_DIRECTORY:
            return DeleteDirectory(spec.path, temp_dir)
        case _:
            assert_never(kind)
