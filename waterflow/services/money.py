"""Monetary rounding and tax helpers shared by billing services."""

from decimal import ROUND_HALF_UP, Decimal
from typing import NamedTuple

ZERO = Decimal("0.00")
CENT = Decimal("0.01")

# Flat VAT applied to every invoice
TAX_RATE = Decimal("0.12")


class TaxedAmount(NamedTuple):
    """Base amount split into tax and total."""

    base_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal


def round_money(value: Decimal | int | str) -> Decimal:
    """Round to cents, half away from zero."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def apply_tax(base_amount: Decimal) -> TaxedAmount:
    """Compute tax and total for a base amount, rounding each step."""
    base = round_money(base_amount)
    tax = round_money(base * TAX_RATE)
    return TaxedAmount(base_amount=base, tax_amount=tax, total_amount=round_money(base + tax))


__all__ = ["CENT", "TAX_RATE", "TaxedAmount", "ZERO", "apply_tax", "round_money"]
