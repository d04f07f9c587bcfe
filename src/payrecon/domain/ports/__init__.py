"""Domain port definitions for adapters."""

from __future__ import annotations

from .fetching import FetchedTransaction, ProviderTransaction, TransactionFetcher
from .persistence import (
    AuditLog,
    CardLinkRepository,
    DuplicateCaseRepository,
    InsertOutcome,
    OrderRepository,
    PaymentRepository,
    ProfileRepository,
    QueueItemRepository,
    QueueScanEntry,
    Repository,
)
from .unit_of_work import (
    LedgerRepositories,
    LedgerUnitOfWork,
    RepositoryCollection,
    UnitOfWork,
)

__all__ = [
    "AuditLog",
    "CardLinkRepository",
    "DuplicateCaseRepository",
    "FetchedTransaction",
    "InsertOutcome",
    "LedgerRepositories",
    "LedgerUnitOfWork",
    "OrderRepository",
    "PaymentRepository",
    "ProfileRepository",
    "ProviderTransaction",
    "QueueItemRepository",
    "QueueScanEntry",
    "Repository",
    "RepositoryCollection",
    "TransactionFetcher",
    "UnitOfWork",
]
