"""Domain-level error types."""

from __future__ import annotations


class InvalidRequestError(ValueError):
    """Raised when an operation is called with arguments it cannot act on.

    Validation happens before any read, so the store is never touched.
    """


__all__ = ["InvalidRequestError"]
