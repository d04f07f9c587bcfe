"""Admission bounds for batch operations.

Every batch operation reads a bounded number of rows per call; backlogs drain
by calling again with the returned cursor.
"""

from __future__ import annotations

from typing import Final

DEFAULT_MATERIALIZE_LIMIT: Final = 200
MAX_MATERIALIZE_LIMIT: Final = 1000
DEFAULT_RECONCILE_BATCH_SIZE: Final = 200
MAX_RECONCILE_BATCH_SIZE: Final = 1000
DEFAULT_DUPLICATE_SCAN_LIMIT: Final = 1000
MAX_DUPLICATE_SCAN_LIMIT: Final = 10000

RESULT_SAMPLE_SIZE: Final = 10
AUDIT_SAMPLE_SIZE: Final = 5


def clamp_limit(value: int | None, *, default: int, maximum: int) -> int:
    """Bound a caller-supplied batch size to ``[1, maximum]``; ``None`` or 0 means default."""

    if not value:
        return default
    return min(max(value, 1), maximum)
