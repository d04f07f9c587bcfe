"""Ports for fetching authoritative transaction data from the payment provider."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class ProviderTransaction:
    """Provider view of one settled transaction; ``amount_minor`` is in minor units."""

    uid: str
    amount_minor: int
    currency: str | None = None
    type: str | None = None
    status: str | None = None
    customer_email: str | None = None


@dataclass(frozen=True, slots=True)
class FetchedTransaction:
    transaction: ProviderTransaction
    endpoint: str
    http_status: int


@runtime_checkable
class TransactionFetcher(Protocol):
    """Callable port returning a transaction by provider uid, or ``None`` if unknown.

    Implementations raise on transport or provider errors; a missing transaction
    is not an error.
    """

    def __call__(self, uid: str) -> FetchedTransaction | None: ...


__all__ = ["FetchedTransaction", "ProviderTransaction", "TransactionFetcher"]
