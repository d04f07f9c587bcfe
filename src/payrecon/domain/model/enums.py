"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class Provider(StrEnum):
    BEPAID = "bepaid"


class QueueStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    MANUALLY_LINKED = "manually_linked"
    FAILED = "failed"


class PaymentStatus(StrEnum):
    SUCCEEDED = "succeeded"
    PENDING = "pending"
    FAILED = "failed"
    REFUNDED = "refunded"


class UidSource(StrEnum):
    """Which queue field produced a ledger entry's stable uid."""

    PROVIDER_UID = "provider_uid"
    TRACKING_ID = "tracking_id"
    QUEUE_ID = "queue_id"


class CaseType(StrEnum):
    EMAIL = "email"
    PHONE = "phone"
    CARD = "card"


class CaseStatus(StrEnum):
    NEW = "new"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"


OPEN_CASE_STATUSES: frozenset[CaseStatus] = frozenset({CaseStatus.NEW, CaseStatus.IN_PROGRESS})


class ActorType(StrEnum):
    SYSTEM = "system"
    ADMIN = "admin"
