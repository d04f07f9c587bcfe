"""Ports for persisting ledger, profile and audit records."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from payrecon.domain.model import (
    AuditRecord,
    CardProfileLink,
    DuplicateCase,
    DuplicateCaseMember,
    Order,
    Payment,
    Profile,
    QueueItem,
)

if TYPE_CHECKING:
    from collections.abc import Collection, Sequence
    from datetime import datetime
    from decimal import Decimal

    from payrecon.domain.model import CaseType, QueueCursor


class InsertOutcome(StrEnum):
    """Result of the idempotent insert contract on unique ledger identity.

    ``CONFLICT`` means another writer already owns the stable uid. Callers treat
    it as a skip; the surrounding transaction has been rolled back.
    """

    CREATED = "created"
    CONFLICT = "conflict"


@runtime_checkable
class Repository[TEntity](Protocol):
    """Minimal repository contract for a persistent aggregate store."""

    def add(self, entity: TEntity) -> None: ...


@dataclass(frozen=True, slots=True)
class QueueScanEntry:
    """A completed queue item and whether the ledger already holds its stable uid."""

    item: QueueItem
    materialized: bool


@runtime_checkable
class QueueItemRepository(Protocol):
    """Read access to the staging queue."""

    def get(self, queue_id: str) -> QueueItem | None: ...

    def scan_completed(
        self,
        *,
        limit: int,
        paid_from: datetime | None = None,
        paid_to: datetime | None = None,
        profile_id: str | None = None,
        after: QueueCursor | None = None,
        until: QueueCursor | None = None,
        include_materialized: bool = True,
    ) -> Sequence[QueueScanEntry]:
        """Return completed items in ``(paid_at, id)`` order.

        ``after`` is exclusive and ``until`` inclusive. With
        ``include_materialized=False`` only the anti-join is returned.
        """
        ...


@runtime_checkable
class PaymentRepository(Protocol):
    """Persistence contract for ledger entries."""

    def add_if_absent(self, payment: Payment) -> InsertOutcome: ...

    def get_by_stable_uid(self, stable_uid: str) -> Payment | None: ...

    def list_for_reconciliation(
        self,
        *,
        paid_from: datetime,
        paid_to: datetime,
        limit: int,
        only_amount: Decimal | None = None,
    ) -> Sequence[Payment]: ...


@runtime_checkable
class ProfileRepository(Repository[Profile], Protocol):
    def get(self, profile_id: str) -> Profile | None: ...

    def list_active(self, *, limit: int) -> Sequence[Profile]: ...

    def find_active_by_email(self, normalized_email: str) -> Sequence[Profile]: ...

    def find_active_by_phone_suffix(self, suffix: str) -> Sequence[Profile]: ...


@runtime_checkable
class OrderRepository(Repository[Order], Protocol):
    def get(self, order_id: str) -> Order | None: ...


@runtime_checkable
class CardLinkRepository(Repository[CardProfileLink], Protocol):
    def list_with_profiles(
        self, *, last4: str, brand: str
    ) -> Sequence[tuple[CardProfileLink, Profile]]: ...

    def list_for_profiles(self, profile_ids: Collection[str]) -> Sequence[CardProfileLink]: ...

    def delete_many(self, link_ids: Collection[str]) -> int: ...


@runtime_checkable
class DuplicateCaseRepository(Repository[DuplicateCase], Protocol):
    def find_open(self, case_type: CaseType, identity_key: str) -> DuplicateCase | None: ...

    def member_ids(self, case_id: str) -> set[str]: ...

    def add_member(self, member: DuplicateCaseMember) -> None: ...


@runtime_checkable
class AuditLog(Protocol):
    """Append-only sink for audit records."""

    def append(self, record: AuditRecord) -> None: ...
