"""Pydantic models describing the bePaid gateway transaction payloads."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, field_validator


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


class BePaidBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class CustomerPayload(BePaidBaseModel):
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value: object) -> object:
        return _blank_to_none(value)


class CreditCardPayload(BePaidBaseModel):
    last_4: str | None = None
    brand: str | None = None
    holder: str | None = None


class TransactionPayload(BePaidBaseModel):
    uid: str
    amount: int
    currency: str | None = None
    type: str | None = None
    status: str | None = None
    tracking_id: str | None = None
    customer: CustomerPayload | None = None
    credit_card: CreditCardPayload | None = None

    @field_validator("amount", mode="before")
    @classmethod
    def _parse_minor_units(cls, value: int | str | None) -> int:
        if value is None or value == "":
            return 0
        return int(value)

    @field_validator("type", "status", "currency", mode="before")
    @classmethod
    def _normalize_text(cls, value: object) -> object:
        return _blank_to_none(value)


class TransactionEnvelope(BePaidBaseModel):
    """Body of ``GET .../transactions/{uid}``; ``transaction`` is absent for unknown uids."""

    transaction: TransactionPayload | None = None


__all__ = [
    "CreditCardPayload",
    "CustomerPayload",
    "TransactionEnvelope",
    "TransactionPayload",
]
