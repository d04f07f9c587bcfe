"""Public interface for the bePaid adapter."""

from __future__ import annotations

from .client import (
    DEFAULT_ENDPOINTS,
    BePaidAPIError,
    BePaidTransactionFetcher,
    EndpointDescriptor,
    should_cache_payload,
)
from .schema import TransactionEnvelope, TransactionPayload
from .translator import parse_transaction

__all__ = [
    "DEFAULT_ENDPOINTS",
    "BePaidAPIError",
    "BePaidTransactionFetcher",
    "EndpointDescriptor",
    "TransactionEnvelope",
    "TransactionPayload",
    "parse_transaction",
    "should_cache_payload",
]
