"""Decimal helpers for ledger amounts.

Amounts are kept as ``Decimal`` quantized to two places end to end; floats
never enter the ledger.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Final

CENT: Final[Decimal] = Decimal("0.01")
AMOUNT_EPSILON: Final[Decimal] = Decimal("0.01")

# ISO 4217 currencies without a minor unit; everything else uses two places.
ZERO_DECIMAL_CURRENCIES: Final[frozenset[str]] = frozenset(
    {
        "BIF", "CLP", "DJF", "GNF", "ISK", "JPY", "KMF",
        "KRW", "PYG", "RWF", "UGX", "VND", "XAF", "XOF",
    }
)


def to_amount(value: Decimal | int | str | float) -> Decimal:
    """Coerce ``value`` into a two-place ``Decimal``."""

    if isinstance(value, float):
        value = repr(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def minor_unit_exponent(currency: str | None) -> int:
    if currency and currency.upper() in ZERO_DECIMAL_CURRENCIES:
        return 0
    return 2


def minor_to_major(minor_amount: int | str | Decimal, currency: str | None) -> Decimal:
    """Convert a provider amount expressed in minor units into major units."""

    scale = Decimal(10) ** minor_unit_exponent(currency)
    return to_amount(Decimal(minor_amount) / scale)


def amounts_differ(left: Decimal, right: Decimal) -> bool:
    return abs(left - right) > AMOUNT_EPSILON
