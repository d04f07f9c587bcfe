"""Application orchestration entry points."""

from __future__ import annotations

from collections.abc import Callable
from logging import getLogger
from typing import TYPE_CHECKING

from payrecon.adapters.bepaid import BePaidTransactionFetcher
from payrecon.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyLedgerUnitOfWork,
    is_started,
    startup,
)
from payrecon.config import get_bepaid_config
from payrecon.domain.amount_reconciliation import ReconcileRequest, reconcile_amounts
from payrecon.domain.collision_repair import RepairRequest, find_candidates, repair_collision
from payrecon.domain.duplicate_detection import ScanRequest, detect_for_profile, scan_duplicates
from payrecon.domain.manual_link import LinkRequest, link_payment
from payrecon.domain.materialization import MaterializeRequest, materialize
from payrecon.domain.outcomes import Ok
from payrecon.domain.ports.unit_of_work import LedgerUnitOfWork

if TYPE_CHECKING:
    from payrecon.domain.amount_reconciliation import ReconcileResult
    from payrecon.domain.collision_repair import CollisionCandidate, RepairResult
    from payrecon.domain.duplicate_detection import ProfileDetectionResult, ScanResult
    from payrecon.domain.manual_link import LinkResult
    from payrecon.domain.materialization import MaterializeResult
    from payrecon.domain.outcomes import Failure, Outcome
    from payrecon.domain.ports.fetching import TransactionFetcher

UnitOfWorkFactory = Callable[[], LedgerUnitOfWork]


log = getLogger(__name__)


def _unit_of_work_factory(factory: UnitOfWorkFactory | None) -> UnitOfWorkFactory:
    if factory is not None:
        return factory
    if not is_started():
        startup()
    return SqlAlchemyLedgerUnitOfWork


def materialize_queue(
    request: MaterializeRequest,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> Ok[MaterializeResult] | Failure:
    """Promote completed staging-queue items into the payment ledger."""

    log.info(
        "Starting materialization: limit=%s, dry_run=%s, from=%s, to=%s, profile=%s",
        request.effective_limit,
        request.dry_run,
        request.paid_from,
        request.paid_to,
        request.profile_id,
    )
    return materialize(request, unit_of_work_factory=_unit_of_work_factory(unit_of_work_factory))


def reconcile_payment_amounts(
    request: ReconcileRequest,
    *,
    fetcher: TransactionFetcher | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    call_delay_seconds: float | None = None,
) -> Ok[ReconcileResult] | Failure:
    """Compare ledger amounts with bePaid and correct the ones that drifted."""

    effective_uow = _unit_of_work_factory(unit_of_work_factory)
    if fetcher is None:
        config = get_bepaid_config()
        fetcher = BePaidTransactionFetcher(config=config)
        if call_delay_seconds is None:
            call_delay_seconds = config.call_delay_seconds
    return reconcile_amounts(
        request,
        fetcher=fetcher,
        unit_of_work_factory=effective_uow,
        call_delay_seconds=0.0 if call_delay_seconds is None else call_delay_seconds,
    )


def list_card_candidates(
    last4: str,
    brand: str,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> list[CollisionCandidate]:
    return find_candidates(
        last4,
        brand,
        unit_of_work_factory=_unit_of_work_factory(unit_of_work_factory),
    )


def repair_card_collision(
    request: RepairRequest,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> Outcome[RepairResult]:
    """Keep only the target profile's link for a card mask."""

    log.info(
        "Starting collision repair for %s/%s -> %s (dry_run=%s)",
        request.last4,
        request.brand,
        request.target_profile_id,
        request.dry_run,
    )
    return repair_collision(
        request, unit_of_work_factory=_unit_of_work_factory(unit_of_work_factory)
    )


def scan_profile_duplicates(
    request: ScanRequest,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> Ok[ScanResult] | Failure:
    log.info(
        "Starting duplicate scan: limit=%s, dry_run=%s", request.effective_limit, request.dry_run
    )
    return scan_duplicates(
        request, unit_of_work_factory=_unit_of_work_factory(unit_of_work_factory)
    )


def detect_profile_duplicates(
    profile_id: str,
    *,
    dry_run: bool = True,
    actor_user_id: str | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> Ok[ProfileDetectionResult] | Failure:
    return detect_for_profile(
        profile_id,
        dry_run=dry_run,
        actor_user_id=actor_user_id,
        unit_of_work_factory=_unit_of_work_factory(unit_of_work_factory),
    )


def link_queue_payment(
    request: LinkRequest,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> Outcome[LinkResult]:
    """Attach a staging-queue item to an order on an operator's behalf."""

    outcome = link_payment(
        request, unit_of_work_factory=_unit_of_work_factory(unit_of_work_factory)
    )
    if isinstance(outcome, Ok):
        log.info("Queue item %s linked by %s", request.queue_id, request.actor_user_id)
    return outcome


__all__ = [
    "LinkRequest",
    "MaterializeRequest",
    "ReconcileRequest",
    "RepairRequest",
    "ScanRequest",
    "detect_profile_duplicates",
    "link_queue_payment",
    "list_card_candidates",
    "materialize_queue",
    "reconcile_payment_amounts",
    "repair_card_collision",
    "scan_profile_duplicates",
]
