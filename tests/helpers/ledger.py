"""Reusable factories and fakes for reconciliation tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import select

from payrecon.domain.model import (
    AuditRecord,
    CardProfileLink,
    Order,
    Payment,
    Profile,
    QueueItem,
    QueueStatus,
    UidSource,
    to_amount,
)
from payrecon.domain.ports.fetching import FetchedTransaction, ProviderTransaction

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.orm import Session

    from payrecon.adapters.sqlalchemy.unit_of_work import SqlAlchemyLedgerUnitOfWork

BASE_TIME = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)


def make_queue_item(
    *,
    provider_uid: str | None = "uid-1",
    tracking_id: str | None = None,
    amount: str = "150.00",
    paid_at: datetime = BASE_TIME,
    status: QueueStatus = QueueStatus.COMPLETED,
    item_id: str | None = None,
    **overrides: object,
) -> QueueItem:
    item = QueueItem(
        provider_uid=provider_uid,
        tracking_id=tracking_id,
        amount=to_amount(amount),
        paid_at=paid_at,
        status=status,
        **overrides,  # type: ignore[arg-type]
    )
    if item_id is not None:
        item.id = item_id
    return item


def make_payment(
    *,
    stable_uid: str = "uid-1",
    amount: str = "150.00",
    paid_at: datetime = BASE_TIME,
    uid_source: UidSource = UidSource.PROVIDER_UID,
    **overrides: object,
) -> Payment:
    return Payment(
        stable_uid=stable_uid,
        amount=to_amount(amount),
        paid_at=paid_at,
        uid_source=uid_source,
        **overrides,  # type: ignore[arg-type]
    )


def make_profile(
    *,
    user_id: str | None = None,
    email: str | None = None,
    phone: str | None = None,
    full_name: str | None = None,
    is_archived: bool = False,
) -> Profile:
    return Profile(
        user_id=user_id,
        email=email,
        phone=phone,
        full_name=full_name,
        is_archived=is_archived,
    )


def make_order(*, profile_id: str | None = None, order_number: str = "ORD-1") -> Order:
    return Order(order_number=order_number, profile_id=profile_id)


def make_link(
    profile: Profile,
    *,
    last4: str = "4242",
    brand: str = "visa",
    card_holder: str | None = None,
    source: str = "import",
) -> CardProfileLink:
    return CardProfileLink(
        last4=last4,
        brand=brand,
        profile_id=profile.id,
        card_holder=card_holder,
        source=source,
    )


def persist(
    unit_of_work_factory: Callable[[], SqlAlchemyLedgerUnitOfWork],
    *entities: object,
) -> None:
    """Store ``entities`` in one committed transaction."""

    with unit_of_work_factory() as uow:
        uow.session.add_all(entities)
        uow.commit()


def audit_records(session: Session, action: str | None = None) -> list[AuditRecord]:
    stmt = select(AuditRecord)
    records = list(session.execute(stmt).scalars())
    if action is None:
        return records
    return [record for record in records if record.action == action]


def transaction(
    uid: str,
    amount_minor: int,
    *,
    currency: str = "BYN",
    type_: str = "payment",
    status: str = "successful",
    endpoint: str = "beyag",
) -> FetchedTransaction:
    return FetchedTransaction(
        transaction=ProviderTransaction(
            uid=uid,
            amount_minor=amount_minor,
            currency=currency,
            type=type_,
            status=status,
            customer_email="buyer@example.com",
        ),
        endpoint=endpoint,
        http_status=200,
    )


@dataclass
class FakeTransactionFetcher:
    """Serve canned provider answers; a stored exception is raised for that uid."""

    answers: dict[str, FetchedTransaction | Exception | None] = field(default_factory=dict)
    calls: list[str] = field(default_factory=list)

    def __call__(self, uid: str) -> FetchedTransaction | None:
        self.calls.append(uid)
        answer = self.answers.get(uid)
        if isinstance(answer, Exception):
            raise answer
        return answer
