"""Customer profiles, their orders, and saved card associations."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .entity import Entity, utcnow

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(eq=False, kw_only=True)
class Profile(Entity):
    """A customer profile.

    Profiles created by imports have no ``user_id``; those are "ghost" profiles
    without an authenticated identity behind them.
    """

    user_id: str | None = None
    email: str | None = None
    phone: str | None = None
    full_name: str | None = None
    is_archived: bool = False
    duplicate_flag: str | None = None
    duplicate_case_id: str | None = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def has_real_identity(self) -> bool:
        return self.user_id is not None


@dataclass(eq=False, kw_only=True)
class Order(Entity):
    order_number: str
    profile_id: str | None = None
    user_id: str | None = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass(eq=False, kw_only=True)
class CardProfileLink(Entity):
    """Associates a card mask (last four digits + brand) with a profile."""

    last4: str
    brand: str
    profile_id: str
    card_holder: str | None = None
    source: str = "import"
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        self.brand = normalize_brand(self.brand)

    @property
    def mask(self) -> str:
        return format_card_mask(self.last4, self.brand)


def normalize_brand(brand: str) -> str:
    return brand.strip().lower()


def format_card_mask(last4: str, brand: str) -> str:
    return f"{last4}/{normalize_brand(brand)}"
