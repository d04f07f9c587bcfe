"""Operator-driven linking of a staging-queue item to an order."""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, Any

from payrecon.domain.errors import InvalidRequestError
from payrecon.domain.materialization import build_payment
from payrecon.domain.model import ActorType, AuditRecord, PaymentStatus, QueueStatus, utcnow
from payrecon.domain.outcomes import Failure, Ok, Stop, StopReason
from payrecon.domain.ports.persistence import InsertOutcome

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from payrecon.domain.model import Order, QueueItem
    from payrecon.domain.outcomes import Outcome
    from payrecon.domain.ports.unit_of_work import LedgerUnitOfWork


log = getLogger(__name__)

LINK_AUDIT_ACTION = "admin.link_payment_to_order"
PAYMENT_ALREADY_EXISTED = "payment_already_existed"


@dataclass(frozen=True, slots=True)
class LinkRequest:
    queue_id: str
    order_id: str
    actor_user_id: str
    profile_id: str | None = None
    user_id: str | None = None

    def __post_init__(self) -> None:
        if not self.queue_id or not self.order_id:
            raise InvalidRequestError("queue_id and order_id are required")
        if not self.actor_user_id:
            raise InvalidRequestError("actor_user_id is required")


@dataclass(frozen=True, slots=True)
class LinkResult:
    payment_id: str
    order_id: str
    profile_id: str | None
    note: str | None = None

    def as_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": True,
            "payment_id": self.payment_id,
            "order_id": self.order_id,
            "profile_id": self.profile_id,
        }
        if self.note:
            payload["note"] = self.note
        return payload


def link_payment(
    request: LinkRequest,
    *,
    unit_of_work_factory: Callable[[], LedgerUnitOfWork],
) -> Outcome[LinkResult]:
    """Attach ``request.queue_id`` to ``request.order_id``, creating its ledger entry."""

    with unit_of_work_factory() as uow:
        try:
            outcome = _link(uow, request)
        except Exception as exc:  # noqa: BLE001
            log.exception("Linking queue item %s failed", request.queue_id)
            uow.rollback()
            return Failure(message=str(exc), error=exc)

    if isinstance(outcome, Stop):
        log.warning(
            "STOP %s linking queue item %s: %s", outcome.reason, request.queue_id, outcome.message
        )
    elif isinstance(outcome, Ok):
        log.info(
            "Linked queue item %s to order %s as payment %s",
            request.queue_id,
            outcome.value.order_id,
            outcome.value.payment_id,
        )
    return outcome


def _link(uow: LedgerUnitOfWork, request: LinkRequest) -> Outcome[LinkResult]:
    repositories = uow.repositories
    item = repositories.queue_items.get(request.queue_id)
    if item is None:
        return Stop(
            StopReason.QUEUE_ITEM_NOT_FOUND,
            f"Queue item not found: {request.queue_id}",
        )
    order = repositories.orders.get(request.order_id)
    if order is None:
        return Stop(StopReason.ORDER_NOT_FOUND, f"Order not found: {request.order_id}")

    if item.matched_order_id and item.matched_order_id != order.id:
        return Stop(
            StopReason.PAYMENT_ALREADY_LINKED,
            f"Payment is already linked to order {item.matched_order_id}",
            {"existing_order_id": item.matched_order_id},
        )

    stable_uid = item.stable_uid
    existing = repositories.payments.get_by_stable_uid(stable_uid)
    if existing is not None and existing.order_id != order.id:
        return _duplicate_uid_stop(stable_uid, existing.id, existing.order_id)

    profile_id = request.profile_id or order.profile_id
    if existing is not None:
        _mark_linked(item, order, profile_id)
        repositories.audit_log.append(
            _link_audit(request, item, order, existing.id, profile_id, note=PAYMENT_ALREADY_EXISTED)
        )
        uow.commit()
        return Ok(
            LinkResult(
                payment_id=existing.id,
                order_id=order.id,
                profile_id=profile_id,
                note=PAYMENT_ALREADY_EXISTED,
            )
        )

    if order.profile_id and request.profile_id and order.profile_id != request.profile_id:
        return Stop(
            StopReason.PROFILE_MISMATCH,
            f"Order profile {order.profile_id} does not match "
            f"provided profile {request.profile_id}",
            {"order_profile_id": order.profile_id, "provided_profile_id": request.profile_id},
        )

    linked_at = utcnow()
    payment = build_payment(
        item,
        meta={
            "source": "admin_link",
            "queue_id": item.id,
            "linked_by": request.actor_user_id,
            "linked_at": linked_at.isoformat(),
            "customer_email": item.customer_email,
            "card_holder": item.card_holder,
            "product_name": item.product_name,
        },
    )
    payment.order_id = order.id
    payment.profile_id = profile_id
    payment.user_id = request.user_id or order.user_id
    payment.status = PaymentStatus.SUCCEEDED

    if repositories.payments.add_if_absent(payment) is InsertOutcome.CONFLICT:
        return _duplicate_uid_stop(stable_uid, None, None)

    _mark_linked(item, order, profile_id, linked_at=linked_at)
    if not order.profile_id and profile_id:
        order.profile_id = profile_id
    repositories.audit_log.append(_link_audit(request, item, order, payment.id, profile_id))
    uow.commit()
    return Ok(LinkResult(payment_id=payment.id, order_id=order.id, profile_id=profile_id))


def _duplicate_uid_stop(
    stable_uid: str,
    payment_id: str | None,
    order_id: str | None,
) -> Stop:
    return Stop(
        StopReason.DUPLICATE_PROVIDER_UID,
        f"Payment with UID {stable_uid} already exists for order {order_id}",
        {"existing_payment_id": payment_id, "existing_order_id": order_id},
    )


def _mark_linked(
    item: QueueItem,
    order: Order,
    profile_id: str | None,
    *,
    linked_at: datetime | None = None,
) -> None:
    item.matched_order_id = order.id
    item.matched_profile_id = profile_id
    item.status = QueueStatus.MANUALLY_LINKED
    item.linked_at = linked_at or utcnow()


def _link_audit(
    request: LinkRequest,
    item: QueueItem,
    order: Order,
    payment_id: str,
    profile_id: str | None,
    *,
    note: str | None = None,
) -> AuditRecord:
    meta: dict[str, Any] = {
        "source": "reconcile_queue",
        "queue_id": item.id,
        "order_id": order.id,
        "order_number": order.order_number,
        "payment_id": payment_id,
        "profile_id": profile_id,
        "amount": str(item.amount),
        "currency": item.currency,
        "stable_uid": item.stable_uid,
    }
    if note:
        meta["note"] = note
    return AuditRecord(
        action=LINK_AUDIT_ACTION,
        actor_type=ActorType.ADMIN,
        actor_user_id=request.actor_user_id,
        target_user_id=request.user_id or order.user_id,
        meta=meta,
    )


__all__ = ["LinkRequest", "LinkResult", "link_payment"]
