"""Repair card-to-profile links when one card mask points at several profiles.

Preview and execute go through :func:`list_candidates`, so the links shown in
a dry run are exactly the ones an execute call deletes.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Any

from payrecon.domain.errors import InvalidRequestError
from payrecon.domain.model import ActorType, AuditRecord, format_card_mask, normalize_brand
from payrecon.domain.outcomes import Failure, Ok, Stop, StopReason

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from payrecon.domain.outcomes import Outcome
    from payrecon.domain.ports.unit_of_work import LedgerUnitOfWork


log = getLogger(__name__)

REPAIR_AUDIT_ACTION = "card_links_repaired"
_LAST4_PATTERN = re.compile(r"^\d{4}$")


@dataclass(frozen=True, slots=True)
class CollisionCandidate:
    link_id: str
    profile_id: str
    source: str
    has_user_id: bool
    is_archived: bool
    full_name: str | None

    @property
    def is_active_identity(self) -> bool:
        return self.has_user_id and not self.is_archived

    def as_payload(self) -> dict[str, Any]:
        return {
            "link_id": self.link_id,
            "profile_id": self.profile_id,
            "source": self.source,
            "has_user_id": self.has_user_id,
            "is_archived": self.is_archived,
            "full_name": self.full_name,
        }


@dataclass(frozen=True, slots=True)
class RepairRequest:
    last4: str
    brand: str
    target_profile_id: str
    dry_run: bool = True
    actor_user_id: str | None = None

    def __post_init__(self) -> None:
        _validate_mask(self.last4, self.brand)
        if not self.target_profile_id:
            raise InvalidRequestError("target_profile_id is required")


@dataclass(slots=True)
class RepairResult:
    dry_run: bool
    last4: str
    brand: str
    candidates: list[CollisionCandidate] = field(default_factory=list[CollisionCandidate])
    links_to_delete_ids: list[str] = field(default_factory=list[str])
    deleted_count: int = 0

    @property
    def links_to_delete_count(self) -> int:
        return len(self.links_to_delete_ids)

    def as_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "dry_run": self.dry_run,
            "last4": self.last4,
            "brand": self.brand,
            "candidates": [candidate.as_payload() for candidate in self.candidates],
            "links_to_delete_count": self.links_to_delete_count,
            "links_to_delete_ids": list(self.links_to_delete_ids),
        }
        if not self.dry_run:
            payload["success"] = True
            payload["deleted_count"] = self.deleted_count
        return payload


def collision_payload(outcome: Outcome[RepairResult]) -> dict[str, Any]:
    """Render an outcome in the collision-repair response shape."""

    match outcome:
        case Ok(value=result):
            return result.as_payload()
        case Stop(reason=reason, message=message, details=details):
            return {"error": "STOP", "code": reason.value, "message": message, **details}
        case Failure():
            return outcome.as_payload()


def _validate_mask(last4: str, brand: str) -> None:
    if not _LAST4_PATTERN.match(last4 or ""):
        raise InvalidRequestError("last4 must be exactly four digits")
    if not (brand or "").strip():
        raise InvalidRequestError("brand is required")


def list_candidates(
    uow: LedgerUnitOfWork,
    *,
    last4: str,
    brand: str,
) -> list[CollisionCandidate]:
    """Return every link for the card mask, joined to its profile."""

    rows = uow.repositories.card_links.list_with_profiles(
        last4=last4,
        brand=normalize_brand(brand),
    )
    return [
        CollisionCandidate(
            link_id=link.id,
            profile_id=link.profile_id,
            source=link.source,
            has_user_id=profile.has_real_identity,
            is_archived=profile.is_archived,
            full_name=profile.full_name,
        )
        for link, profile in rows
    ]


def find_candidates(
    last4: str,
    brand: str,
    *,
    unit_of_work_factory: Callable[[], LedgerUnitOfWork],
) -> list[CollisionCandidate]:
    """Standalone read for the operator's target-selection step."""

    _validate_mask(last4, brand)
    with unit_of_work_factory() as uow:
        return list_candidates(uow, last4=last4, brand=brand)


def plan_repair(
    candidates: Sequence[CollisionCandidate],
    target_profile_id: str,
    *,
    mask: str,
) -> Stop | list[str]:
    """Decide which links to remove, or refuse.

    The target keeps its oldest link; any further links it holds for the same
    mask (brand spelled with a different case) are removed with the rest.
    """

    active_profiles = {c.profile_id for c in candidates if c.is_active_identity}
    if len(active_profiles) > 1:
        return Stop(
            reason=StopReason.MANUAL_MERGE_REQUIRED,
            message=(
                f"Card {mask} is linked to {len(active_profiles)} active profiles with real "
                "identities; merge the profiles before repairing"
            ),
            details={
                "candidates": [candidate.as_payload() for candidate in candidates],
                "active_profiles_count": len(active_profiles),
            },
        )
    kept = next((c for c in candidates if c.profile_id == target_profile_id), None)
    if candidates and kept is None:
        return Stop(
            reason=StopReason.TARGET_NOT_LINKED,
            message=f"Profile {target_profile_id} has no link for card {mask}",
            details={"candidates": [candidate.as_payload() for candidate in candidates]},
        )
    return [c.link_id for c in candidates if c is not kept]


def repair_collision(
    request: RepairRequest,
    *,
    unit_of_work_factory: Callable[[], LedgerUnitOfWork],
) -> Outcome[RepairResult]:
    """Converge the card mask onto ``request.target_profile_id``."""

    brand = normalize_brand(request.brand)
    mask = format_card_mask(request.last4, brand)

    with unit_of_work_factory() as uow:
        try:
            candidates = list_candidates(uow, last4=request.last4, brand=brand)
        except Exception as exc:  # noqa: BLE001
            log.exception("Collision repair aborted: cannot read card links for %s", mask)
            return Failure(message=str(exc), error=exc)

        decision = plan_repair(candidates, request.target_profile_id, mask=mask)
        if isinstance(decision, Stop):
            log.warning("STOP %s for card %s: %s", decision.reason, mask, decision.message)
            return decision

        result = RepairResult(
            dry_run=request.dry_run,
            last4=request.last4,
            brand=brand,
            candidates=candidates,
            links_to_delete_ids=decision,
        )
        if request.dry_run or not decision:
            return Ok(result)

        result.deleted_count = uow.repositories.card_links.delete_many(decision)
        uow.repositories.audit_log.append(
            AuditRecord(
                action=REPAIR_AUDIT_ACTION,
                actor_type=ActorType.ADMIN if request.actor_user_id else ActorType.SYSTEM,
                actor_user_id=request.actor_user_id,
                meta={
                    "last4": request.last4,
                    "brand": brand,
                    "target_profile_id": request.target_profile_id,
                    "links_before": [candidate.link_id for candidate in candidates],
                    "links_after": [
                        c.link_id for c in candidates if c.link_id not in set(decision)
                    ],
                    "deleted_link_ids": decision,
                },
            )
        )
        uow.commit()

    log.info("Repaired card %s: removed %s links", mask, result.deleted_count)
    return Ok(result)


__all__ = [
    "CollisionCandidate",
    "RepairRequest",
    "RepairResult",
    "collision_payload",
    "find_candidates",
    "list_candidates",
    "plan_repair",
    "repair_collision",
]
