"""Compare ledger amounts with the provider's transactions and correct drift."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Any

from payrecon.domain.admission import (
    DEFAULT_RECONCILE_BATCH_SIZE,
    MAX_RECONCILE_BATCH_SIZE,
    clamp_limit,
)
from payrecon.domain.errors import InvalidRequestError
from payrecon.domain.model import (
    ActorType,
    AuditRecord,
    amounts_differ,
    minor_to_major,
    to_amount,
    utcnow,
)
from payrecon.domain.outcomes import Failure, Ok

if TYPE_CHECKING:
    from collections.abc import Callable
    from decimal import Decimal

    from payrecon.domain.model import Payment
    from payrecon.domain.ports.fetching import FetchedTransaction, TransactionFetcher
    from payrecon.domain.ports.unit_of_work import LedgerUnitOfWork
    from payrecon.domain.time_windows import DateRange


log = getLogger(__name__)

DEFAULT_CALL_DELAY_SECONDS = 0.08
SENTINEL_AMOUNT = 1
CORRECTION_SOURCE = "provider_api_reconcile"
RECONCILE_AUDIT_ACTION = "payment_amount_reconciled"
_REFUND_MARKERS = ("refund", "возврат")


@dataclass(frozen=True, slots=True)
class ReconcileRequest:
    period: DateRange
    dry_run: bool = True
    batch_size: int | None = None
    # only payments stored with the placeholder amount of 1
    only_sentinel_amount: bool = False
    actor_user_id: str | None = None

    @property
    def effective_batch_size(self) -> int:
        return clamp_limit(
            self.batch_size,
            default=DEFAULT_RECONCILE_BATCH_SIZE,
            maximum=MAX_RECONCILE_BATCH_SIZE,
        )


@dataclass(frozen=True, slots=True)
class Discrepancy:
    payment_id: str
    stable_uid: str
    order_id: str | None
    ledger_amount: Decimal
    provider_amount: Decimal
    transaction_type: str
    status: str
    paid_at: str
    customer_email: str | None
    http_status: int
    endpoint: str

    def as_payload(self) -> dict[str, Any]:
        return {
            "payment_id": self.payment_id,
            "provider_payment_id": self.stable_uid,
            "order_id": self.order_id,
            "our_amount": str(self.ledger_amount),
            "provider_amount": str(self.provider_amount),
            "transaction_type": self.transaction_type,
            "status": self.status,
            "paid_at": self.paid_at,
            "customer_email": self.customer_email,
            "provider_http_status": self.http_status,
            "provider_endpoint": self.endpoint,
        }


@dataclass(slots=True)
class ReconcileResult:
    dry_run: bool
    checked: int = 0
    fixed: int = 0
    skipped: int = 0
    discrepancies: list[Discrepancy] = field(default_factory=list[Discrepancy])
    error_details: list[dict[str, str]] = field(default_factory=list[dict[str, str]])

    @property
    def discrepancies_found(self) -> int:
        return len(self.discrepancies)

    @property
    def errors(self) -> int:
        return len(self.error_details)

    def as_payload(self) -> dict[str, Any]:
        return {
            "success": True,
            "dry_run": self.dry_run,
            "checked": self.checked,
            "discrepancies_found": self.discrepancies_found,
            "fixed": self.fixed,
            "skipped": self.skipped,
            "errors": self.errors,
            "discrepancies": [item.as_payload() for item in self.discrepancies],
            "error_details": list(self.error_details),
        }


def is_refund(provider_type: str | None, ledger_type: str | None) -> bool:
    if provider_type == "refund":
        return True
    lowered = (ledger_type or "").lower()
    return any(marker in lowered for marker in _REFUND_MARKERS)


def provider_amount(fetched: FetchedTransaction, payment: Payment) -> Decimal:
    """Normalize the provider amount to signed major units for ``payment``."""

    tx = fetched.transaction
    amount = minor_to_major(tx.amount_minor, tx.currency or payment.currency)
    if is_refund(tx.type, payment.transaction_type) and amount > 0:
        amount = -amount
    return amount


def reconcile_amounts(
    request: ReconcileRequest,
    *,
    fetcher: TransactionFetcher,
    unit_of_work_factory: Callable[[], LedgerUnitOfWork],
    sleep: Callable[[float], None] = time.sleep,
    call_delay_seconds: float = DEFAULT_CALL_DELAY_SECONDS,
) -> Ok[ReconcileResult] | Failure:
    """Check provider-sourced payments in ``request.period`` against the provider."""

    if call_delay_seconds < 0:
        raise InvalidRequestError("call_delay_seconds must be non-negative")

    paid_from, paid_to = request.period.bounds()
    result = ReconcileResult(dry_run=request.dry_run)
    log.info(
        "Starting amount reconciliation: %s to %s, dry_run=%s, sentinel_only=%s",
        request.period.start,
        request.period.end,
        request.dry_run,
        request.only_sentinel_amount,
    )

    with unit_of_work_factory() as uow:
        try:
            payments = list(
                uow.repositories.payments.list_for_reconciliation(
                    paid_from=paid_from,
                    paid_to=paid_to,
                    limit=request.effective_batch_size,
                    only_amount=_sentinel(request),
                )
            )
        except Exception as exc:  # noqa: BLE001
            log.exception("Amount reconciliation aborted: cannot read payments")
            return Failure(message=str(exc), error=exc)

        for index, payment in enumerate(payments):
            result.checked += 1
            payment_id = payment.id
            if index > 0 and call_delay_seconds:
                sleep(call_delay_seconds)
            try:
                _reconcile_one(uow, payment, request, fetcher, result)
            except Exception as exc:  # noqa: BLE001
                log.warning("Error reconciling payment %s: %s", payment_id, exc)
                uow.rollback()
                result.error_details.append({"payment_id": payment_id, "error": str(exc)})

    log.info(
        "Amount reconciliation complete: checked=%s, discrepancies=%s, fixed=%s, "
        "skipped=%s, errors=%s",
        result.checked,
        result.discrepancies_found,
        result.fixed,
        result.skipped,
        result.errors,
    )
    return Ok(result)


def _sentinel(request: ReconcileRequest) -> Decimal | None:
    if not request.only_sentinel_amount:
        return None
    return to_amount(SENTINEL_AMOUNT)


def _reconcile_one(
    uow: LedgerUnitOfWork,
    payment: Payment,
    request: ReconcileRequest,
    fetcher: TransactionFetcher,
    result: ReconcileResult,
) -> None:
    fetched = fetcher(payment.stable_uid)
    if fetched is None:
        result.skipped += 1
        return

    expected = provider_amount(fetched, payment)
    if not amounts_differ(payment.amount, expected):
        return

    tx = fetched.transaction
    result.discrepancies.append(
        Discrepancy(
            payment_id=payment.id,
            stable_uid=payment.stable_uid,
            order_id=payment.order_id,
            ledger_amount=payment.amount,
            provider_amount=expected,
            transaction_type=payment.transaction_type or tx.type or "unknown",
            status=str(payment.status or tx.status or "unknown"),
            paid_at=payment.paid_at.isoformat(),
            customer_email=tx.customer_email,
            http_status=fetched.http_status,
            endpoint=fetched.endpoint,
        )
    )
    if request.dry_run:
        return

    previous = payment.correct_amount(
        expected,
        provenance={
            "original_amount": str(payment.amount),
            "amount_corrected_at": utcnow().isoformat(),
            "amount_corrected_source": CORRECTION_SOURCE,
            "provider_raw_amount": tx.amount_minor,
            "provider_transaction_type": tx.type,
        },
    )
    uow.repositories.audit_log.append(
        AuditRecord(
            action=RECONCILE_AUDIT_ACTION,
            actor_type=ActorType.ADMIN if request.actor_user_id else ActorType.SYSTEM,
            actor_user_id=request.actor_user_id,
            target_user_id=payment.profile_id,
            meta={
                "payment_id": payment.id,
                "provider_payment_id": payment.stable_uid,
                "order_id": payment.order_id,
                "old_amount": str(previous),
                "new_amount": str(expected),
                "source": CORRECTION_SOURCE,
            },
        )
    )
    uow.commit()
    result.fixed += 1
    log.info("Corrected payment %s amount: %s -> %s", payment.id, previous, expected)


__all__ = [
    "Discrepancy",
    "ReconcileRequest",
    "ReconcileResult",
    "is_refund",
    "provider_amount",
    "reconcile_amounts",
]
