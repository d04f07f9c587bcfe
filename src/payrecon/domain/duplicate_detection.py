"""Group profiles that share a weak identity key into reviewable cases.

Keys are the normalized email, the last nine digits of the phone number, and
the card mask together with a fuzzy-matched holder name. One open case exists
per ``(case_type, identity_key)``; later detections append to it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Any

from payrecon.domain.admission import (
    DEFAULT_DUPLICATE_SCAN_LIMIT,
    MAX_DUPLICATE_SCAN_LIMIT,
    clamp_limit,
)
from payrecon.domain.errors import InvalidRequestError
from payrecon.domain.model import (
    ActorType,
    AuditRecord,
    CaseType,
    DuplicateCase,
    DuplicateCaseMember,
    format_card_mask,
    utcnow,
)
from payrecon.domain.outcomes import Failure, Ok

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping, Sequence

    from payrecon.domain.model import CardProfileLink, Profile
    from payrecon.domain.ports.unit_of_work import LedgerUnitOfWork


log = getLogger(__name__)

SCAN_AUDIT_ACTION = "duplicate_scan"
PHONE_SUFFIX_LENGTH = 9

_NON_LETTERS = re.compile(r"[^A-ZА-ЯЁ\s]")
_WHITESPACE = re.compile(r"\s+")
_NON_DIGITS = re.compile(r"\D")


def normalize_holder_name(name: str | None) -> str:
    """Uppercase, drop everything but Latin/Cyrillic letters, collapse spaces."""

    if not name:
        return ""
    cleaned = _NON_LETTERS.sub("", name.upper())
    return _WHITESPACE.sub(" ", cleaned).strip()


def names_similar(left: str | None, right: str | None) -> bool:
    """Fuzzy holder-name match.

    Equal names match, as do names where one contains the other. Otherwise at
    least one token must be shared and the shared tokens must cover half of
    the shorter name.
    """

    first = normalize_holder_name(left)
    second = normalize_holder_name(right)
    if not first or not second:
        return False
    if first == second or first in second or second in first:
        return True
    first_tokens = first.split(" ")
    second_tokens = set(second.split(" "))
    shared = [token for token in first_tokens if token in second_tokens]
    shorter = min(len(first_tokens), len(second_tokens))
    return len(shared) >= 1 and len(shared) >= shorter / 2


def normalize_email(email: str | None) -> str | None:
    if not email:
        return None
    normalized = email.strip().lower()
    return normalized or None


def phone_suffix(phone: str | None) -> str | None:
    if not phone:
        return None
    digits = _NON_DIGITS.sub("", phone)
    return digits[-PHONE_SUFFIX_LENGTH:] or None


@dataclass(slots=True)
class IdentityGroup:
    """Distinct profiles sharing one identity key."""

    case_type: CaseType
    identity_key: str
    profile_ids: list[str] = field(default_factory=list[str])
    emails: list[str] = field(default_factory=list[str])
    mask: str | None = None
    holder: str | None = None

    def add(self, profile: Profile) -> None:
        if profile.id in self.profile_ids:
            return
        self.profile_ids.append(profile.id)
        self.emails.append(profile.email or "")

    @property
    def is_duplicate(self) -> bool:
        return len(self.profile_ids) > 1

    @property
    def notes(self) -> str:
        if self.case_type is CaseType.CARD:
            return f"Card: {self.mask}, Holder: {self.holder}"
        return f"{self.case_type.value.capitalize()}: {self.identity_key}"

    def as_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": self.case_type.value,
            "key": self.identity_key,
            "profileCount": len(self.profile_ids),
            "emails": list(self.emails),
        }
        if self.case_type is CaseType.CARD:
            payload["mask"] = self.mask
            payload["holder"] = self.holder
        return payload


def card_identity_key(mask: str, holder: str) -> str:
    return f"card:{mask}:{holder}"


def build_groups(
    profiles: Iterable[Profile],
    links_by_profile: Mapping[str, Sequence[CardProfileLink]],
) -> list[IdentityGroup]:
    """Group ``profiles`` by every identity key; returns only duplicate groups."""

    by_email: dict[str, IdentityGroup] = {}
    by_phone: dict[str, IdentityGroup] = {}
    by_card: list[IdentityGroup] = []

    for profile in profiles:
        email = normalize_email(profile.email)
        if email:
            by_email.setdefault(email, IdentityGroup(CaseType.EMAIL, email)).add(profile)
        suffix = phone_suffix(profile.phone)
        if suffix:
            by_phone.setdefault(suffix, IdentityGroup(CaseType.PHONE, suffix)).add(profile)
        for link in links_by_profile.get(profile.id, ()):
            _add_to_card_groups(by_card, link, profile)

    groups = [*by_email.values(), *by_phone.values(), *by_card]
    return [group for group in groups if group.is_duplicate]


def _add_to_card_groups(
    groups: list[IdentityGroup],
    link: CardProfileLink,
    profile: Profile,
) -> None:
    mask = link.mask
    for group in groups:
        if group.mask == mask and names_similar(group.holder, link.card_holder):
            group.add(profile)
            return
    holder = normalize_holder_name(link.card_holder)
    group = IdentityGroup(
        CaseType.CARD,
        card_identity_key(mask, holder),
        mask=mask,
        holder=holder,
    )
    group.add(profile)
    groups.append(group)


@dataclass(slots=True)
class CaseTally:
    cases_created: int = 0
    cases_skipped: int = 0
    profiles_appended: int = 0
    case_ids: list[str] = field(default_factory=list[str])
    errors: list[str] = field(default_factory=list[str])

    @property
    def changed(self) -> bool:
        return self.cases_created > 0 or self.profiles_appended > 0


@dataclass(frozen=True, slots=True)
class ScanRequest:
    limit: int | None = None
    dry_run: bool = True
    actor_user_id: str | None = None

    @property
    def effective_limit(self) -> int:
        return clamp_limit(
            self.limit,
            default=DEFAULT_DUPLICATE_SCAN_LIMIT,
            maximum=MAX_DUPLICATE_SCAN_LIMIT,
        )


@dataclass(slots=True)
class ScanResult:
    dry_run: bool
    scanned: int = 0
    groups: list[IdentityGroup] = field(default_factory=list[IdentityGroup])
    tally: CaseTally = field(default_factory=CaseTally)

    def as_payload(self) -> dict[str, Any]:
        return {
            "success": True,
            "dry_run": self.dry_run,
            "results": {
                "scanned": self.scanned,
                "duplicateGroups": len(self.groups),
                "casesCreated": self.tally.cases_created,
                "casesSkipped": self.tally.cases_skipped,
                "profilesAppended": self.tally.profiles_appended,
                "errors": list(self.tally.errors),
            },
            "groups": [group.as_payload() for group in self.groups],
        }


def scan_duplicates(
    request: ScanRequest,
    *,
    unit_of_work_factory: Callable[[], LedgerUnitOfWork],
) -> Ok[ScanResult] | Failure:
    """Scan active profiles and open or extend a case per duplicate group."""

    result = ScanResult(dry_run=request.dry_run)
    with unit_of_work_factory() as uow:
        try:
            profiles = list(uow.repositories.profiles.list_active(limit=request.effective_limit))
            links = uow.repositories.card_links.list_for_profiles([p.id for p in profiles])
        except Exception as exc:  # noqa: BLE001
            log.exception("Duplicate scan aborted: cannot read profiles")
            return Failure(message=str(exc), error=exc)

        result.scanned = len(profiles)
        result.groups = build_groups(profiles, _index_links(links))
        profiles_by_id = {profile.id: profile for profile in profiles}
        log.info(
            "Duplicate scan: %s profiles, %s duplicate groups", result.scanned, len(result.groups)
        )

        for group in result.groups:
            _apply_group(uow, group, profiles_by_id, result.tally, dry_run=request.dry_run)

        if not request.dry_run and result.tally.changed:
            _record_audit(
                uow,
                _scan_audit(request.actor_user_id, result.scanned, result.tally, "scan"),
                result.tally,
            )

    return Ok(result)


@dataclass(slots=True)
class ProfileDetectionResult:
    profile_id: str
    dry_run: bool
    groups: list[IdentityGroup] = field(default_factory=list[IdentityGroup])
    tally: CaseTally = field(default_factory=CaseTally)

    @property
    def is_duplicate(self) -> bool:
        return bool(self.groups)

    def as_payload(self) -> dict[str, Any]:
        return {
            "success": True,
            "dry_run": self.dry_run,
            "profile_id": self.profile_id,
            "isDuplicate": self.is_duplicate,
            "caseIds": list(self.tally.case_ids),
            "casesCreated": self.tally.cases_created,
            "casesSkipped": self.tally.cases_skipped,
            "profilesAppended": self.tally.profiles_appended,
            "errors": list(self.tally.errors),
            "groups": [group.as_payload() for group in self.groups],
        }


def detect_for_profile(
    profile_id: str,
    *,
    dry_run: bool = True,
    actor_user_id: str | None = None,
    unit_of_work_factory: Callable[[], LedgerUnitOfWork],
) -> Ok[ProfileDetectionResult] | Failure:
    """Match one profile against the active population on every identity key."""

    if not profile_id:
        raise InvalidRequestError("profile_id is required")

    result = ProfileDetectionResult(profile_id=profile_id, dry_run=dry_run)
    with unit_of_work_factory() as uow:
        try:
            profile = uow.repositories.profiles.get(profile_id)
            if profile is None:
                return Failure(message=f"Profile not found: {profile_id}")
            matches = _profile_matches(uow, profile)
        except Exception as exc:  # noqa: BLE001
            log.exception("Duplicate detection aborted for profile %s", profile_id)
            return Failure(message=str(exc), error=exc)

        result.groups = [group for group, _ in matches if group.is_duplicate]
        profiles_by_id = {p.id: p for _, members in matches for p in members}
        for group in result.groups:
            _apply_group(uow, group, profiles_by_id, result.tally, dry_run=dry_run)

        if not dry_run and result.tally.changed:
            _record_audit(
                uow,
                _scan_audit(actor_user_id, 1, result.tally, "profile", target=profile.user_id),
                result.tally,
            )

    return Ok(result)


def _profile_matches(
    uow: LedgerUnitOfWork,
    profile: Profile,
) -> list[tuple[IdentityGroup, list[Profile]]]:
    repositories = uow.repositories
    matches: list[tuple[IdentityGroup, list[Profile]]] = []

    email = normalize_email(profile.email)
    if email:
        found = [profile, *repositories.profiles.find_active_by_email(email)]
        matches.append((_group_of(IdentityGroup(CaseType.EMAIL, email), found), found))

    suffix = phone_suffix(profile.phone)
    if suffix:
        found = [profile, *repositories.profiles.find_active_by_phone_suffix(suffix)]
        matches.append((_group_of(IdentityGroup(CaseType.PHONE, suffix), found), found))

    for link in repositories.card_links.list_for_profiles([profile.id]):
        holder = normalize_holder_name(link.card_holder)
        found = [profile]
        for other_link, other in repositories.card_links.list_with_profiles(
            last4=link.last4, brand=link.brand
        ):
            if other.is_archived or not names_similar(holder, other_link.card_holder):
                continue
            found.append(other)
        mask = format_card_mask(link.last4, link.brand)
        group = IdentityGroup(
            CaseType.CARD, card_identity_key(mask, holder), mask=mask, holder=holder
        )
        matches.append((_group_of(group, found), found))
    return matches


def _group_of(group: IdentityGroup, profiles: Iterable[Profile]) -> IdentityGroup:
    for profile in profiles:
        group.add(profile)
    return group


def _apply_group(
    uow: LedgerUnitOfWork,
    group: IdentityGroup,
    profiles_by_id: Mapping[str, Profile],
    tally: CaseTally,
    *,
    dry_run: bool,
) -> None:
    cases = uow.repositories.duplicate_cases
    try:
        existing = cases.find_open(group.case_type, group.identity_key)
        if existing is not None:
            known = cases.member_ids(existing.id)
            new_ids = [pid for pid in group.profile_ids if pid not in known]
            if not dry_run and new_ids:
                _attach_members(uow, existing, new_ids, profiles_by_id, group.case_type)
                existing.profile_count = len(known) + len(new_ids)
                existing.updated_at = utcnow()
                uow.commit()
                log.info("Appended %s profiles to case %s", len(new_ids), existing.id)
            tally.cases_skipped += 1
            tally.profiles_appended += len(new_ids)
            tally.case_ids.append(existing.id)
            return

        if dry_run:
            tally.cases_created += 1
            return
        case = DuplicateCase(
            case_type=group.case_type,
            identity_key=group.identity_key,
            profile_count=len(group.profile_ids),
            notes=group.notes,
        )
        cases.add(case)
        _attach_members(uow, case, group.profile_ids, profiles_by_id, group.case_type)
        uow.commit()
        tally.cases_created += 1
        tally.case_ids.append(case.id)
        log.info("Created %s case %s for %s", group.case_type, case.id, group.identity_key)
    except Exception as exc:  # noqa: BLE001
        log.warning("Failed to record case for %s: %s", group.identity_key, exc)
        uow.rollback()
        tally.errors.append(f"Failed to record case for {group.identity_key}: {exc}")


def _attach_members(
    uow: LedgerUnitOfWork,
    case: DuplicateCase,
    profile_ids: Iterable[str],
    profiles_by_id: Mapping[str, Profile],
    case_type: CaseType,
) -> None:
    for profile_id in profile_ids:
        uow.repositories.duplicate_cases.add_member(
            DuplicateCaseMember(case_id=case.id, profile_id=profile_id)
        )
        profile = profiles_by_id.get(profile_id)
        if profile is not None:
            profile.duplicate_flag = f"duplicate_by_{case_type.value}"
            profile.duplicate_case_id = case.id


def _record_audit(uow: LedgerUnitOfWork, record: AuditRecord, tally: CaseTally) -> None:
    try:
        uow.repositories.audit_log.append(record)
        uow.commit()
    except Exception as exc:  # noqa: BLE001
        log.warning("Failed to write duplicate scan audit record: %s", exc)
        uow.rollback()
        tally.errors.append(f"Audit record not written: {exc}")


def _index_links(links: Iterable[CardProfileLink]) -> dict[str, list[CardProfileLink]]:
    indexed: dict[str, list[CardProfileLink]] = {}
    for link in links:
        indexed.setdefault(link.profile_id, []).append(link)
    return indexed


def _scan_audit(
    actor_user_id: str | None,
    scanned: int,
    tally: CaseTally,
    scope: str,
    *,
    target: str | None = None,
) -> AuditRecord:
    return AuditRecord(
        action=SCAN_AUDIT_ACTION,
        actor_type=ActorType.ADMIN if actor_user_id else ActorType.SYSTEM,
        actor_user_id=actor_user_id,
        target_user_id=target,
        meta={
            "scope": scope,
            "scanned": scanned,
            "cases_created": tally.cases_created,
            "cases_skipped": tally.cases_skipped,
            "profiles_appended": tally.profiles_appended,
            "case_ids": list(tally.case_ids),
            "errors": len(tally.errors),
        },
    )


__all__ = [
    "IdentityGroup",
    "ProfileDetectionResult",
    "ScanRequest",
    "ScanResult",
    "build_groups",
    "card_identity_key",
    "detect_for_profile",
    "names_similar",
    "normalize_email",
    "normalize_holder_name",
    "phone_suffix",
    "scan_duplicates",
]
