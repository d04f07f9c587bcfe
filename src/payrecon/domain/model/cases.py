"""Reviewable duplicate-profile cases."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .entity import Entity, utcnow
from .enums import OPEN_CASE_STATUSES, CaseStatus, CaseType

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(eq=False, kw_only=True)
class DuplicateCase(Entity):
    """Profiles sharing one identity key, waiting for an operator decision."""

    case_type: CaseType
    identity_key: str
    status: CaseStatus = CaseStatus.NEW
    profile_count: int = 0
    notes: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_CASE_STATUSES


@dataclass(eq=False, kw_only=True)
class DuplicateCaseMember(Entity):
    case_id: str
    profile_id: str
    created_at: datetime = field(default_factory=utcnow)
