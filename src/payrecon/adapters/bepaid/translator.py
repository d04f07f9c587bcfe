"""Translate bePaid payloads into domain transaction records."""

from __future__ import annotations

from typing import TYPE_CHECKING

from payrecon.domain.ports.fetching import ProviderTransaction

if TYPE_CHECKING:
    from .schema import TransactionPayload


def parse_transaction(payload: TransactionPayload) -> ProviderTransaction:
    customer = payload.customer
    return ProviderTransaction(
        uid=payload.uid,
        amount_minor=payload.amount,
        currency=payload.currency.upper() if payload.currency else None,
        type=payload.type.lower() if payload.type else None,
        status=payload.status.lower() if payload.status else None,
        customer_email=customer.email if customer else None,
    )
