"""Append-only audit records for every mutating operation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .entity import Entity, utcnow
from .enums import ActorType

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(eq=False, kw_only=True)
class AuditRecord(Entity):
    action: str
    actor_type: ActorType = ActorType.SYSTEM
    actor_user_id: str | None = None
    actor_label: str | None = None
    target_user_id: str | None = None
    meta: dict[str, Any] = field(default_factory=dict[str, Any])
    created_at: datetime = field(default_factory=utcnow)
