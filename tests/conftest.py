"""Pytest configuration and fixtures for fstransact tests."""

from collections.abc import Callable
from pathlib import Path

import pytest


def snapshot_tree(root: Path) -> dict[str, bytes | None]:
    """Map every path below ``root`` to its bytes (``None`` for directories)."""
    snapshot: dict[str, bytes | None] = {}
    for path in sorted(root.rglob("*")):
        relative = path.relative_to(root).as_posix()
        snapshot[relative] = None if path.is_dir() else path.read_bytes()
    return snapshot


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Backup location that does not exist yet."""
    return tmp_path / "backups"


@pytest.fixture
def sample_tree(tmp_path: Path) -> Path:
    """A small directory tree with nested, empty and binary entries."""
    root = tmp_path / "tree"
    (root / "nested" / "deeper").mkdir(parents=True)
    (root / "empty").mkdir()
    (root / "top.txt").write_bytes(b"top level")
    (root / "nested" / "mid.bin").write_bytes(bytes(range(256)))
    (root / "nested" / "deeper" / "leaf.txt").write_text("leaf", encoding="utf-8")
    return root


@pytest.fixture
def tree_snapshot() -> Callable[[Path], dict[str, bytes | None]]:
    return snapshot_tree
