from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy import select

from payrecon.domain.errors import InvalidRequestError
from payrecon.domain.manual_link import (
    LINK_AUDIT_ACTION,
    PAYMENT_ALREADY_EXISTED,
    LinkRequest,
    link_payment,
)
from payrecon.domain.model import Order, Payment, PaymentStatus, QueueItem, QueueStatus
from payrecon.domain.outcomes import Ok, Stop, StopReason
from tests.helpers.ledger import (
    audit_records,
    make_order,
    make_payment,
    make_profile,
    make_queue_item,
    persist,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.orm import Session

    from payrecon.adapters.sqlalchemy.unit_of_work import SqlAlchemyLedgerUnitOfWork

type UnitOfWorkFactory = Callable[[], SqlAlchemyLedgerUnitOfWork]


def _link(factory: UnitOfWorkFactory, **kwargs: str) -> object:
    request = LinkRequest(actor_user_id="admin-1", **kwargs)  # type: ignore[arg-type]
    return link_payment(request, unit_of_work_factory=factory)


def _stop_reason(outcome: object) -> StopReason:
    assert isinstance(outcome, Stop)
    return outcome.reason


def test_link_creates_payment_and_marks_queue_item(
    sqlite_unit_of_work: UnitOfWorkFactory,
    sqlite_session: Session,
) -> None:
    profile = make_profile(user_id="user-1")
    item = make_queue_item(
        provider_uid="bp-77",
        amount="42.00",
        customer_email="buyer@example.com",
        card_holder="ANNA IVANOVA",
    )
    order = make_order(order_number="ORD-77")
    persist(sqlite_unit_of_work, profile, item, order)

    outcome = _link(
        sqlite_unit_of_work,
        queue_id=item.id,
        order_id=order.id,
        profile_id=profile.id,
        user_id="user-1",
    )

    assert isinstance(outcome, Ok)
    result = outcome.value
    assert result.note is None

    payment = sqlite_session.get(Payment, result.payment_id)
    assert payment is not None
    assert payment.stable_uid == "bp-77"
    assert payment.order_id == order.id
    assert payment.profile_id == profile.id
    assert payment.user_id == "user-1"
    assert payment.status is PaymentStatus.SUCCEEDED
    assert payment.meta["source"] == "admin_link"
    assert payment.meta["linked_by"] == "admin-1"

    stored_item = sqlite_session.get(QueueItem, item.id)
    assert stored_item is not None
    assert stored_item.status is QueueStatus.MANUALLY_LINKED
    assert stored_item.matched_order_id == order.id
    assert stored_item.linked_at is not None

    stored_order = sqlite_session.get(Order, order.id)
    assert stored_order is not None
    assert stored_order.profile_id == profile.id

    records = audit_records(sqlite_session, LINK_AUDIT_ACTION)
    assert len(records) == 1
    assert records[0].meta["order_number"] == "ORD-77"
    assert records[0].meta["amount"] == "42.00"
    assert records[0].target_user_id == "user-1"


def test_missing_queue_item_stops(sqlite_unit_of_work: UnitOfWorkFactory) -> None:
    order = make_order()
    persist(sqlite_unit_of_work, order)

    outcome = _link(sqlite_unit_of_work, queue_id="nope", order_id=order.id)

    assert _stop_reason(outcome) is StopReason.QUEUE_ITEM_NOT_FOUND


def test_missing_order_stops(sqlite_unit_of_work: UnitOfWorkFactory) -> None:
    item = make_queue_item()
    persist(sqlite_unit_of_work, item)

    outcome = _link(sqlite_unit_of_work, queue_id=item.id, order_id="nope")

    assert _stop_reason(outcome) is StopReason.ORDER_NOT_FOUND


def test_item_linked_elsewhere_stops(sqlite_unit_of_work: UnitOfWorkFactory) -> None:
    first = make_order(order_number="ORD-1")
    second = make_order(order_number="ORD-2")
    item = make_queue_item(matched_order_id=first.id)
    persist(sqlite_unit_of_work, first, second, item)

    outcome = _link(sqlite_unit_of_work, queue_id=item.id, order_id=second.id)

    assert _stop_reason(outcome) is StopReason.PAYMENT_ALREADY_LINKED
    assert isinstance(outcome, Stop)
    assert outcome.details == {"existing_order_id": first.id}


def test_ledger_entry_for_another_order_stops(
    sqlite_unit_of_work: UnitOfWorkFactory,
    sqlite_session: Session,
) -> None:
    other = make_order(order_number="ORD-1")
    target = make_order(order_number="ORD-2")
    item = make_queue_item(provider_uid="bp-1")
    persist(sqlite_unit_of_work, other, target, item)
    persist(sqlite_unit_of_work, make_payment(stable_uid="bp-1", order_id=other.id))

    outcome = _link(sqlite_unit_of_work, queue_id=item.id, order_id=target.id)

    assert _stop_reason(outcome) is StopReason.DUPLICATE_PROVIDER_UID
    assert audit_records(sqlite_session) == []


def test_profile_mismatch_stops(sqlite_unit_of_work: UnitOfWorkFactory) -> None:
    owner = make_profile()
    stranger = make_profile()
    order = make_order(profile_id=owner.id)
    item = make_queue_item()
    persist(sqlite_unit_of_work, owner, stranger, order, item)

    outcome = _link(
        sqlite_unit_of_work, queue_id=item.id, order_id=order.id, profile_id=stranger.id
    )

    assert _stop_reason(outcome) is StopReason.PROFILE_MISMATCH


def test_existing_payment_for_same_order_is_reused(
    sqlite_unit_of_work: UnitOfWorkFactory,
    sqlite_session: Session,
) -> None:
    order = make_order()
    item = make_queue_item(provider_uid="bp-5")
    existing = make_payment(stable_uid="bp-5", order_id=order.id)
    persist(sqlite_unit_of_work, order, item, existing)

    outcome = _link(sqlite_unit_of_work, queue_id=item.id, order_id=order.id)

    assert isinstance(outcome, Ok)
    assert outcome.value.payment_id == existing.id
    assert outcome.value.as_payload()["note"] == PAYMENT_ALREADY_EXISTED
    payments = list(sqlite_session.execute(select(Payment)).scalars())
    assert len(payments) == 1
    records = audit_records(sqlite_session, LINK_AUDIT_ACTION)
    assert records[0].meta["note"] == PAYMENT_ALREADY_EXISTED


def test_order_profile_is_used_when_none_given(
    sqlite_unit_of_work: UnitOfWorkFactory,
) -> None:
    owner = make_profile()
    order = make_order(profile_id=owner.id)
    item = make_queue_item()
    persist(sqlite_unit_of_work, owner, order, item)

    outcome = _link(sqlite_unit_of_work, queue_id=item.id, order_id=order.id)

    assert isinstance(outcome, Ok)
    assert outcome.value.profile_id == owner.id


@pytest.mark.parametrize(
    ("queue_id", "order_id", "actor"),
    [("", "o", "a"), ("q", "", "a"), ("q", "o", "")],
)
def test_incomplete_requests_are_rejected(queue_id: str, order_id: str, actor: str) -> None:
    with pytest.raises(InvalidRequestError):
        LinkRequest(queue_id=queue_id, order_id=order_id, actor_user_id=actor)
