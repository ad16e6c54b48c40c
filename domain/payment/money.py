"""
Conversion between store decimal amounts and processor minor units.

`from_minor_units` is the exact inverse of `to_minor_units` for every amount
expressible in the currency's exponent, so totals never drift across the
gateway → webhook round-trip.
"""
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from shared.codes.payment_codes import ZERO_DECIMAL_CURRENCIES


def currency_exponent(currency: str) -> int:
    return 0 if (currency or "").upper() in ZERO_DECIMAL_CURRENCIES else 2


def quantize_amount(amount: Decimal, currency: str) -> Decimal:
    """Round an amount half-up to the currency's smallest unit."""
    exponent = currency_exponent(currency)
    return Decimal(amount).quantize(Decimal(1).scaleb(-exponent), rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal, currency: str) -> int:
    # Round to nearest (half-up); truncation would systematically underbill
    exponent = currency_exponent(currency)
    scaled = Decimal(amount) * (Decimal(10) ** exponent)
    return int(scaled.to_integral_value(rounding=ROUND_HALF_UP))


def from_minor_units(minor: int, currency: str) -> Decimal:
    exponent = currency_exponent(currency)
    return Decimal(int(minor)).scaleb(-exponent).quantize(Decimal(1).scaleb(-exponent))
