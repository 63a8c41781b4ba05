"""
Cart and checkout pricing.

Money is handled as Decimal throughout and is never rounded here; totals are
recomputed from item totals after every change, so rounding mid-pipeline
would compound. Round only when presenting a figure (see quantize_money).
"""
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, NamedTuple, Optional

from ordering.config import settings

TAX_RATE = Decimal("0.10")
ZERO = Decimal("0")
CENT = Decimal("0.01")


class Totals(NamedTuple):
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    delivery_fee: Decimal
    total: Decimal


def to_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    # str() first so floats from the driver don't bring binary noise along
    return Decimal(str(value))


def quantize_money(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def clamp_discount(discount, subtotal) -> Decimal:
    """A discount can never push the subtotal below zero."""
    discount = to_decimal(discount)
    subtotal = to_decimal(subtotal)
    if discount < ZERO:
        return ZERO
    return min(discount, subtotal)


def subtotal_of(items: Iterable) -> Decimal:
    return sum((to_decimal(it.total_price) for it in items), ZERO)


def compute_totals(
    items: Iterable,
    discount=ZERO,
    tax_rate: Decimal = TAX_RATE,
    base_delivery_fee: Optional[Decimal] = None,
) -> Totals:
    """
    items: anything exposing ``total_price`` (cart items, checkout items).
    discount: already clamped to the subtotal by the caller.
    """
    if base_delivery_fee is None:
        base_delivery_fee = settings.BASE_DELIVERY_FEE
    subtotal = subtotal_of(items)
    discount = to_decimal(discount)
    discounted = subtotal - discount
    tax = discounted * to_decimal(tax_rate)
    delivery_fee = to_decimal(base_delivery_fee) if subtotal > ZERO else ZERO
    total = discounted + tax + delivery_fee
    return Totals(subtotal, discount, tax, delivery_fee, total)
