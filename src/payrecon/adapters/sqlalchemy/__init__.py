"""SQLAlchemy adapter package for payrecon."""

from __future__ import annotations

from .mappings import create_all_tables, mapper_registry, start_mappers
from .repositories import (
    SqlAlchemyAuditLog,
    SqlAlchemyCardLinkRepository,
    SqlAlchemyDuplicateCaseRepository,
    SqlAlchemyOrderRepository,
    SqlAlchemyPaymentRepository,
    SqlAlchemyProfileRepository,
    SqlAlchemyQueueItemRepository,
    is_unique_violation,
)
from .unit_of_work import (
    SqlAlchemyLedgerUnitOfWork,
    StartupError,
    is_started,
    shutdown,
    startup,
)

__all__ = [
    "SqlAlchemyAuditLog",
    "SqlAlchemyCardLinkRepository",
    "SqlAlchemyDuplicateCaseRepository",
    "SqlAlchemyLedgerUnitOfWork",
    "SqlAlchemyOrderRepository",
    "SqlAlchemyPaymentRepository",
    "SqlAlchemyProfileRepository",
    "SqlAlchemyQueueItemRepository",
    "StartupError",
    "create_all_tables",
    "is_started",
    "is_unique_violation",
    "mapper_registry",
    "shutdown",
    "start_mappers",
    "startup",
]
