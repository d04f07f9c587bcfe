"""Three-way outcome of an operation that may refuse to act.

``Ok`` carries the value of a completed operation, ``Stop`` a deliberate
refusal that left the store untouched, and ``Failure`` an unexpected error
that was caught at a batch boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class StopReason(StrEnum):
    PAYMENT_ALREADY_LINKED = "PAYMENT_ALREADY_LINKED"
    DUPLICATE_PROVIDER_UID = "DUPLICATE_PROVIDER_UID"
    PROFILE_MISMATCH = "PROFILE_MISMATCH"
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    QUEUE_ITEM_NOT_FOUND = "QUEUE_ITEM_NOT_FOUND"
    MANUAL_MERGE_REQUIRED = "MANUAL_MERGE_REQUIRED"
    TARGET_NOT_LINKED = "TARGET_NOT_LINKED"


@dataclass(frozen=True, slots=True)
class Ok[T]:
    value: T


@dataclass(frozen=True, slots=True)
class Stop:
    reason: StopReason
    message: str
    details: dict[str, Any] = field(default_factory=dict[str, Any])

    def as_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": False,
            "error": self.reason.value,
            "message": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return payload


@dataclass(frozen=True, slots=True)
class Failure:
    message: str
    error: BaseException | None = None

    def as_payload(self) -> dict[str, Any]:
        return {"success": False, "error": self.message}


type Outcome[T] = Ok[T] | Stop | Failure


__all__ = ["Failure", "Ok", "Outcome", "Stop", "StopReason"]
