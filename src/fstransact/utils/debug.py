"""Stdout tracing for the backup store.

Set ``FSTRANSACT_DEBUG`` to ``1``, ``true`` or ``yes`` to see each copy,
restore and disposal. The variable is read once at import.
"""

import os
import sys
from typing import Any

_TRUTHY = frozenset({"1", "true", "yes"})

_DEBUG_ENABLED = os.environ.get("FSTRANSACT_DEBUG", "").strip().lower() in _TRUTHY


def debug(msg: Any) -> None:
    """Write ``msg`` to stdout with a ``[DEBUG]`` prefix when tracing is on."""
    if not _DEBUG_ENABLED:
        return
    print(f"[DEBUG] {msg}", file=sys.stdout)
