"""Backup store for reversible filesystem operations.

A backup is a plain copy of a file or directory tree placed under a
caller-supplied temporary directory with a uuid4 name. The operation that
took the backup owns it until disposal.
"""

import errno
import os
import shutil
from pathlib import Path

from fstransact.fs.paths import PathLike, as_path, new_backup_path
from fstransact.utils.debug import debug


def copy_tree(source: PathLike, dest: PathLike) -> None:
    """Recursively copy the tree rooted at ``source`` to ``dest``.

    The traversal is depth-first with an explicit stack, so deep trees do
    not hit the recursion limit. A directory is always created before
    anything is copied into it. Sibling order follows ``os.scandir`` and is
    unspecified. Symlinks are copied as links and never descended into.

    Args:
        source: Root directory to copy
        dest: Destination root; its parent must exist

    Raises:
        OSError: If any directory cannot be listed or created, or any file
            cannot be copied. Already copied entries are left in place.
    """
    source = as_path(source)
    dest = as_path(dest)

    stack = [source]
    while stack:
        current = stack.pop()
        target = dest / current.relative_to(source)
        target.mkdir(exist_ok=True)

        with os.scandir(current) as entries:
            for entry in entries:
                if entry.is_dir(follow_symlinks=False):
                    stack.append(Path(entry.path))
                else:
                    shutil.copyfile(
                        entry.path, target / entry.name, follow_symlinks=False
                    )
                    debug(f"Copied {entry.path} -> {target / entry.name}")


def backup_file(path: PathLike, temp_dir: PathLike) -> Path:
    """Copy a file's bytes into ``temp_dir`` under a unique name.

    Args:
        path: File to back up
        temp_dir: Directory for backup artifacts (created if missing)

    Returns:
        Path of the backup file

    Raises:
        OSError: If the file cannot be read or the backup cannot be written
    """
    path = as_path(path)
    backup_path = new_backup_path(as_path(temp_dir))

    try:
        shutil.copyfile(path, backup_path)
    except OSError:
        # Remove a partially written backup; the caller never sees its path
        if backup_path.exists():
            try:
                backup_path.unlink()
            except OSError as cleanup_error:
                debug(
                    f"Could not remove partial backup {backup_path}: {cleanup_error}"
                )
        raise

    debug(f"Backed up file {path} -> {backup_path}")
    return backup_path


def backup_directory(path: PathLike, temp_dir: PathLike) -> Path:
    """Copy a directory tree into ``temp_dir`` under a unique name.

    Args:
        path: Directory to back up
        temp_dir: Directory for backup artifacts (created if missing)

    Returns:
        Path of the backup tree

    Raises:
        OSError: If any entry cannot be read or copied. A partial copy is
            left in place under ``temp_dir``.
    """
    path = as_path(path)
    backup_path = new_backup_path(as_path(temp_dir))

    if not path.is_dir():
        raise NotADirectoryError(
            errno.ENOTDIR, "Cannot back up a non-directory", str(path)
        )

    try:
        copy_tree(path, backup_path)
    except OSError:
        debug(f"Directory backup of {path} failed; partial copy at {backup_path}")
        raise

    debug(f"Backed up directory {path} -> {backup_path}")
    return backup_path


def restore_file(backup_path: PathLike, original_path: PathLike) -> None:
    """Overwrite ``original_path`` with the full contents of the backup.

    The original is truncated and rewritten (created if it was removed).

    Raises:
        FileNotFoundError: If the backup no longer exists
        OSError: If the original cannot be written
    """
    data = as_path(backup_path).read_bytes()
    with open(as_path(original_path), "wb") as original:
        original.write(data)
    debug(f"Restored file {original_path} from {backup_path}")


def restore_directory(
    backup_path: PathLike, original_path: PathLike, *, consume: bool
) -> None:
    """Put a backed-up tree back at ``original_path``.

    Args:
        backup_path: Backup tree created by ``backup_directory``
        original_path: Location to restore to
        consume: If True, move the backup into place (it no longer exists
            afterwards). If False, copy it and keep the backup.

    Raises:
        FileNotFoundError: If the backup no longer exists
        FileExistsError: If ``consume`` is set and ``original_path`` exists
        OSError: If the move or copy fails
    """
    backup_path = as_path(backup_path)
    original_path = as_path(original_path)

    if not backup_path.exists():
        raise FileNotFoundError(
            errno.ENOENT, "Backup no longer exists", str(backup_path)
        )

    if consume:
        if original_path.exists():
            raise FileExistsError(
                errno.EEXIST, "Restore target exists", str(original_path)
            )
        shutil.move(str(backup_path), str(original_path))
        debug(f"Moved backup {backup_path} -> {original_path}")
    else:
        copy_tree(backup_path, original_path)
        debug(f"Copied backup {backup_path} -> {original_path}")


def dispose(backup_path: PathLike) -> None:
    """Remove a backup artifact, file or tree. A missing artifact is a no-op.

    Raises:
        OSError: If the artifact exists but cannot be removed
    """
    backup_path = as_path(backup_path)

    if backup_path.is_dir() and not backup_path.is_symlink():
        shutil.rmtree(backup_path)
    elif backup_path.exists() or backup_path.is_symlink():
        backup_path.unlink()
    else:
        return

    debug(f"Disposed backup {backup_path}")
