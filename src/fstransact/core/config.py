"""Helpers for resolving backup and journal locations."""

from __future__ import annotations

import os
from pathlib import Path

__all__ = ["DEFAULT_TEMP_DIR", "resolve_journal_dir", "resolve_temp_dir"]

DEFAULT_TEMP_DIR = Path(".fstransact") / "backups"


def resolve_temp_dir(temp_dir: str | os.PathLike[str] | None = None) -> Path:
    """Resolve the directory that holds backup artifacts.

    Args:
        temp_dir: Optional explicit location.

    Returns:
        The explicit path, else ``FSTRANSACT_TEMP_DIR``, else
        ``.fstransact/backups``. The directory is not created here; the
        backup store creates it when the first backup is taken.
    """

    chosen: str | os.PathLike[str] | None = temp_dir
    env_path = os.getenv("FSTRANSACT_TEMP_DIR")
    if chosen is None and env_path:
        chosen = env_path
    if chosen is None:
        chosen = DEFAULT_TEMP_DIR

    return Path(chosen).expanduser()


def resolve_journal_dir(
    journal_dir: str | os.PathLike[str] | None = None,
) -> Path | None:
    """Resolve the directory that receives transaction journals.

    Returns ``None`` when neither an explicit path nor
    ``FSTRANSACT_JOURNAL_DIR`` is given, which disables journaling.
    """

    chosen: str | os.PathLike[str] | None = journal_dir
    env_path = os.getenv("FSTRANSACT_JOURNAL_DIR")
    if chosen is None and env_path:
        chosen = env_path
    if chosen is None:
        return None

    return Path(chosen).expanduser()
