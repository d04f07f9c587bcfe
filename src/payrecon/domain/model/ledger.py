"""Staging queue items and the ledger entries they are promoted into."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .entity import Entity, utcnow
from .enums import PaymentStatus, Provider, QueueStatus, UidSource

if TYPE_CHECKING:
    from datetime import datetime
    from decimal import Decimal


@dataclass(eq=False, kw_only=True)
class QueueItem(Entity):
    """A provider-reported transaction awaiting promotion to the ledger.

    Rows are written by the statement importer; this package only reads them
    and flips their lifecycle fields.
    """

    amount: Decimal
    paid_at: datetime
    provider_uid: str | None = None
    tracking_id: str | None = None
    currency: str = "BYN"
    status: QueueStatus = QueueStatus.PENDING
    transaction_type: str = "payment"
    provider: Provider = Provider.BEPAID

    card_last4: str | None = None
    card_brand: str | None = None
    card_holder: str | None = None
    customer_email: str | None = None
    product_name: str | None = None

    matched_order_id: str | None = None
    matched_profile_id: str | None = None
    linked_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def stable_uid(self) -> str:
        return self.provider_uid or self.tracking_id or self.id

    @property
    def uid_source(self) -> UidSource:
        if self.provider_uid:
            return UidSource.PROVIDER_UID
        if self.tracking_id:
            return UidSource.TRACKING_ID
        return UidSource.QUEUE_ID


@dataclass(eq=False, kw_only=True)
class Payment(Entity):
    """A permanent ledger entry.

    ``stable_uid`` is unique across all payments and never changes once the
    row exists; ``amount`` and ``meta`` may be corrected in place.
    """

    stable_uid: str
    amount: Decimal
    paid_at: datetime
    uid_source: UidSource = UidSource.PROVIDER_UID
    currency: str = "BYN"
    status: PaymentStatus = PaymentStatus.SUCCEEDED
    transaction_type: str = "payment"
    provider: Provider = Provider.BEPAID

    order_id: str | None = None
    profile_id: str | None = None
    user_id: str | None = None
    card_last4: str | None = None
    card_brand: str | None = None

    meta: dict[str, Any] = field(default_factory=dict[str, Any])
    created_at: datetime = field(default_factory=utcnow)

    def correct_amount(self, new_amount: Decimal, *, provenance: dict[str, Any]) -> Decimal:
        """Replace the amount, keeping the prior value and ``provenance`` in ``meta``."""

        previous = self.amount
        self.amount = new_amount
        # reassign so the JSON column registers the change
        self.meta = {**(self.meta or {}), **provenance}
        return previous


def queue_status_to_payment_status(status: QueueStatus) -> PaymentStatus:
    if status is QueueStatus.FAILED:
        return PaymentStatus.FAILED
    if status is QueueStatus.PENDING:
        return PaymentStatus.PENDING
    return PaymentStatus.SUCCEEDED


@dataclass(frozen=True, slots=True)
class QueueCursor:
    """Resume position in the ``(paid_at, id)`` total order over queue items."""

    paid_at: datetime
    id: str
