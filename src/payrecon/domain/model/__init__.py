"""Public domain model surface."""

from __future__ import annotations

from payrecon.domain.model.audit import AuditRecord
from payrecon.domain.model.cases import DuplicateCase, DuplicateCaseMember
from payrecon.domain.model.entity import Entity, new_id, utcnow
from payrecon.domain.model.enums import (
    OPEN_CASE_STATUSES,
    ActorType,
    CaseStatus,
    CaseType,
    PaymentStatus,
    Provider,
    QueueStatus,
    UidSource,
)
from payrecon.domain.model.ledger import (
    Payment,
    QueueCursor,
    QueueItem,
    queue_status_to_payment_status,
)
from payrecon.domain.model.money import (
    AMOUNT_EPSILON,
    amounts_differ,
    minor_to_major,
    to_amount,
)
from payrecon.domain.model.profiles import (
    CardProfileLink,
    Order,
    Profile,
    format_card_mask,
    normalize_brand,
)

__all__ = [  # noqa: RUF022
    # base
    "Entity",
    "new_id",
    "utcnow",
    # ledger
    "QueueItem",
    "Payment",
    "QueueCursor",
    "queue_status_to_payment_status",
    # profiles
    "Profile",
    "Order",
    "CardProfileLink",
    "format_card_mask",
    "normalize_brand",
    # cases
    "DuplicateCase",
    "DuplicateCaseMember",
    # audit
    "AuditRecord",
    # enums
    "OPEN_CASE_STATUSES",
    "ActorType",
    "CaseStatus",
    "CaseType",
    "PaymentStatus",
    "Provider",
    "QueueStatus",
    "UidSource",
    # money
    "AMOUNT_EPSILON",
    "amounts_differ",
    "minor_to_major",
    "to_amount",
]
