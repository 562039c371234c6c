"""Path utilities for filesystem operations.

Paths are taken as given by the caller: they are converted to ``Path`` but
never resolved or normalized.
"""

import os
import uuid
from pathlib import Path

PathLike = str | os.PathLike[str]


def as_path(path: PathLike) -> Path:
    """Convert a caller-supplied path to ``Path`` without canonicalizing it."""
    if isinstance(path, Path):
        return path
    return Path(path)


def ensure_dir(path: Path) -> None:
    """Ensure a directory and its parents exist.

    Raises:
        OSError: If the directory cannot be created
    """
    path.mkdir(parents=True, exist_ok=True)


def new_backup_path(temp_dir: Path) -> Path:
    """Generate a unique, not yet existing backup location inside ``temp_dir``.

    ``temp_dir`` is created if missing. Names are 128-bit uuid4 hex strings,
    so operations may share one temp directory.

    Args:
        temp_dir: Directory that holds backup artifacts

    Returns:
        Path for the backup artifact
    """
    ensure_dir(temp_dir)
    return temp_dir / uuid.uuid4().hex


def first_missing_ancestor(path: Path) -> Path | None:
    """Return the topmost component of ``path`` that does not exist yet.

    For ``a/b/c`` where only ``a`` exists this is ``a/b``. Returns ``None``
    when ``path`` itself already exists.
    """
    if path.exists():
        return None

    missing = path
    parent = path.parent
    while parent != missing and not parent.exists():
        missing = parent
        parent = parent.parent
    return missing
