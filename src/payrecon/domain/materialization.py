"""Promote completed staging-queue items into permanent ledger entries.

The read classifies each completed queue item against the ledger (the
anti-join); only items whose stable uid is absent from ``payments`` become
candidates. Dry run and execute share everything up to the single insert.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from time import perf_counter
from typing import TYPE_CHECKING, Any

from payrecon.domain.admission import (
    AUDIT_SAMPLE_SIZE,
    DEFAULT_MATERIALIZE_LIMIT,
    MAX_MATERIALIZE_LIMIT,
    RESULT_SAMPLE_SIZE,
    clamp_limit,
)
from payrecon.domain.errors import InvalidRequestError
from payrecon.domain.model import (
    ActorType,
    AuditRecord,
    Payment,
    QueueCursor,
    queue_status_to_payment_status,
    utcnow,
)
from payrecon.domain.outcomes import Failure, Ok
from payrecon.domain.ports.persistence import InsertOutcome

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from datetime import datetime, timedelta

    from payrecon.domain.model import QueueItem
    from payrecon.domain.ports.persistence import QueueScanEntry
    from payrecon.domain.ports.unit_of_work import LedgerUnitOfWork


log = getLogger(__name__)

MATERIALIZE_AUDIT_ACTION = "queue_materialize_to_payments"
MATERIALIZE_ACTOR_LABEL = "materialize-queue-payments"
RACE_SKIP_MESSAGE = "Already exists (race condition)"
ALREADY_MATERIALIZED_MESSAGE = "Already materialized"
DUPLICATE_IN_BATCH_MESSAGE = "Stable uid repeated within batch"


@dataclass(frozen=True, slots=True)
class MaterializeRequest:
    """Parameters of one bounded materialization call."""

    limit: int | None = None
    dry_run: bool = True
    paid_from: datetime | None = None
    paid_to: datetime | None = None
    profile_id: str | None = None
    cursor: QueueCursor | None = None
    # rescan this far behind a resumed cursor for late-arriving items
    rescan_window: timedelta | None = None

    def __post_init__(self) -> None:
        if self.paid_from and self.paid_to and self.paid_from > self.paid_to:
            raise InvalidRequestError("from_date must not be after to_date")
        if self.rescan_window is not None and self.rescan_window.total_seconds() < 0:
            raise InvalidRequestError("rescan_window must be non-negative")

    @property
    def effective_limit(self) -> int:
        return clamp_limit(
            self.limit,
            default=DEFAULT_MATERIALIZE_LIMIT,
            maximum=MAX_MATERIALIZE_LIMIT,
        )


@dataclass(slots=True)
class MaterializeStats:
    scanned: int = 0
    to_create: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0

    def as_payload(self) -> dict[str, int]:
        return {
            "scanned": self.scanned,
            "to_create": self.to_create,
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": self.errors,
        }


@dataclass(frozen=True, slots=True)
class MaterializeSample:
    queue_id: str
    stable_uid: str
    result: str
    payment_id: str | None = None
    error: str | None = None

    def as_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "queue_id": self.queue_id,
            "stable_uid": self.stable_uid,
            "payment_id": self.payment_id,
            "result": self.result,
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass(slots=True)
class MaterializeResult:
    """Outcome of a materialization call."""

    dry_run: bool
    stats: MaterializeStats = field(default_factory=MaterializeStats)
    next_cursor: QueueCursor | None = None
    samples: list[MaterializeSample] = field(default_factory=list[MaterializeSample])
    warnings: list[str] = field(default_factory=list[str])
    duration_ms: int = 0

    def record(self, sample: MaterializeSample) -> None:
        if len(self.samples) < RESULT_SAMPLE_SIZE:
            self.samples.append(sample)

    def as_payload(self) -> dict[str, Any]:
        cursor = (
            {"paid_at": self.next_cursor.paid_at.isoformat(), "id": self.next_cursor.id}
            if self.next_cursor is not None
            else None
        )
        return {
            "success": True,
            "dry_run": self.dry_run,
            "stats": self.stats.as_payload(),
            "next_cursor": cursor,
            "samples": [sample.as_payload() for sample in self.samples],
            "warnings": list(self.warnings),
            "duration_ms": self.duration_ms,
        }


def materialize(
    request: MaterializeRequest,
    *,
    unit_of_work_factory: Callable[[], LedgerUnitOfWork],
) -> Ok[MaterializeResult] | Failure:
    """Promote unmaterialized completed queue items into the ledger."""

    started = perf_counter()
    result = MaterializeResult(dry_run=request.dry_run)

    with unit_of_work_factory() as uow:
        try:
            entries, next_cursor = _read_batch(uow, request)
        except Exception as exc:  # noqa: BLE001
            log.exception("Materialization aborted: cannot read the staging queue")
            return Failure(message=str(exc), error=exc)

        result.next_cursor = next_cursor
        claimed: set[str] = set()
        for entry in entries:
            _process_entry(uow, entry, result, claimed=claimed, dry_run=request.dry_run)

        if not request.dry_run and result.stats.created > 0:
            try:
                uow.repositories.audit_log.append(_summary_audit(result))
                uow.commit()
            except Exception as exc:  # noqa: BLE001
                log.exception("Could not write the materialization summary audit record")
                uow.rollback()
                result.warnings.append(f"Summary audit record not written: {exc}")

    if result.stats.errors > 0:
        result.warnings.append(f"{result.stats.errors} errors occurred during processing.")

    result.duration_ms = int((perf_counter() - started) * 1000)
    log.info(
        "Materialization finished: dry_run=%s, scanned=%s, created=%s, skipped=%s, errors=%s",
        result.dry_run,
        result.stats.scanned,
        result.stats.created,
        result.stats.skipped,
        result.stats.errors,
    )
    return Ok(result)


def _read_batch(
    uow: LedgerUnitOfWork,
    request: MaterializeRequest,
) -> tuple[list[QueueScanEntry], QueueCursor | None]:
    queue = uow.repositories.queue_items
    limit = request.effective_limit
    filters: dict[str, Any] = {
        "paid_from": request.paid_from,
        "paid_to": request.paid_to,
        "profile_id": request.profile_id,
    }

    late: Sequence[QueueScanEntry] = ()
    if request.cursor is not None and request.rescan_window:
        rewound = QueueCursor(paid_at=request.cursor.paid_at - request.rescan_window, id="")
        late = queue.scan_completed(
            limit=limit,
            after=rewound,
            until=request.cursor,
            include_materialized=False,
            **filters,
        )
        if late:
            log.info("Rescan window picked up %s late-arriving queue items", len(late))

    forward: Sequence[QueueScanEntry] = ()
    remaining = limit - len(late)
    if remaining > 0:
        forward = queue.scan_completed(limit=remaining, after=request.cursor, **filters)

    if forward:
        last = forward[-1].item
        next_cursor: QueueCursor | None = QueueCursor(paid_at=last.paid_at, id=last.id)
    elif late:
        next_cursor = request.cursor
    else:
        next_cursor = None
    return [*late, *forward], next_cursor


def _process_entry(
    uow: LedgerUnitOfWork,
    entry: QueueScanEntry,
    result: MaterializeResult,
    *,
    claimed: set[str],
    dry_run: bool,
) -> None:
    item = entry.item
    stable_uid = item.stable_uid
    stats = result.stats
    stats.scanned += 1

    if entry.materialized:
        stats.skipped += 1
        result.record(_sample(item, "skipped", error=ALREADY_MATERIALIZED_MESSAGE))
        return

    stats.to_create += 1
    if stable_uid in claimed:
        stats.to_create -= 1
        stats.skipped += 1
        result.record(_sample(item, "skipped", error=DUPLICATE_IN_BATCH_MESSAGE))
        return
    claimed.add(stable_uid)

    if dry_run:
        stats.created += 1
        result.record(_sample(item, "created"))
        return

    payment = build_payment(item)
    try:
        outcome = uow.repositories.payments.add_if_absent(payment)
        if outcome is InsertOutcome.CREATED:
            uow.commit()
    except Exception as exc:  # noqa: BLE001
        log.warning("Failed to materialize queue item %s: %s", item.id, exc)
        uow.rollback()
        stats.to_create -= 1
        stats.errors += 1
        result.record(_sample(item, "error", error=str(exc)))
        return

    if outcome is InsertOutcome.CONFLICT:
        log.info("Race skip for queue item %s (stable uid %s)", item.id, stable_uid)
        stats.to_create -= 1
        stats.skipped += 1
        result.record(_sample(item, "skipped", error=RACE_SKIP_MESSAGE))
        return

    stats.created += 1
    result.record(_sample(item, "created", payment_id=payment.id))


def build_payment(item: QueueItem, *, meta: dict[str, Any] | None = None) -> Payment:
    """Project a queue item onto a new ledger entry."""

    return Payment(
        stable_uid=item.stable_uid,
        uid_source=item.uid_source,
        amount=item.amount,
        currency=item.currency or "BYN",
        status=queue_status_to_payment_status(item.status),
        transaction_type=item.transaction_type or "payment",
        provider=item.provider,
        card_last4=item.card_last4,
        card_brand=item.card_brand,
        paid_at=item.paid_at,
        profile_id=item.matched_profile_id,
        order_id=item.matched_order_id,
        meta=meta
        if meta is not None
        else {
            "materialized_from_queue": True,
            "queue_id": item.id,
            "materialized_at": utcnow().isoformat(),
            "original_queue_status": item.status.value,
        },
    )


def _sample(
    item: QueueItem,
    outcome: str,
    *,
    payment_id: str | None = None,
    error: str | None = None,
) -> MaterializeSample:
    return MaterializeSample(
        queue_id=item.id,
        stable_uid=item.stable_uid,
        result=outcome,
        payment_id=payment_id,
        error=error,
    )


def _summary_audit(result: MaterializeResult) -> AuditRecord:
    cursor = result.next_cursor
    return AuditRecord(
        action=MATERIALIZE_AUDIT_ACTION,
        actor_type=ActorType.SYSTEM,
        actor_label=MATERIALIZE_ACTOR_LABEL,
        meta={
            "dry_run": False,
            "stats": result.stats.as_payload(),
            "next_cursor": (
                {"paid_at": cursor.paid_at.isoformat(), "id": cursor.id}
                if cursor is not None
                else None
            ),
            "sample_queue_ids": [
                sample.queue_id
                for sample in result.samples
                if sample.result == "created"
            ][:AUDIT_SAMPLE_SIZE],
        },
    )


__all__ = [
    "MaterializeRequest",
    "MaterializeResult",
    "MaterializeSample",
    "MaterializeStats",
    "build_payment",
    "materialize",
]
