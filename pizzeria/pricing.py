"""
Line pricing shared by previews, the cart, and order finalization.

All arithmetic is Decimal; values are only rounded to cents when presented
or persisted (see to_money).
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from pizzeria.catalog import VariationCatalog
from pizzeria.models import Coupon, CouponType, HalfSelection, SelectedVariation

ZERO = Decimal("0")
CENT = Decimal("0.01")


def to_money(value: Decimal) -> Decimal:
    """Round to two fraction digits for display or storage"""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def variation_price(variation: SelectedVariation, catalog: Optional[VariationCatalog] = None) -> Decimal:
    """Price captured on the line, else the live catalog price, else zero"""
    if variation.additional_price is not None:
        return variation.additional_price
    if catalog is None:
        return ZERO
    return catalog.price_of(variation.variation_id)


def unit_price(line) -> Decimal:
    """Base price charged per unit; priceFrom items charge nothing for the base"""
    if line.is_half_pizza:
        return line.item.price
    return ZERO if line.item.price_from else line.item.price


def half_multiplier(line, variation: SelectedVariation) -> int:
    if line.is_half_pizza and variation.half_selection == HalfSelection.WHOLE:
        return 2
    return 1


def variations_total(line, catalog: Optional[VariationCatalog] = None) -> Decimal:
    """Per-unit cost of the selected variations"""
    total = ZERO
    for group in line.selected_variations:
        for variation in group.variations:
            if variation.quantity <= 0:
                continue
            total += variation_price(variation, catalog) * variation.quantity * half_multiplier(line, variation)
    return total


def border_total(line) -> Decimal:
    return line.selected_border.additional_price if line.selected_border else ZERO


def line_total(line, catalog: Optional[VariationCatalog] = None) -> Decimal:
    """(unit + variations + border) * quantity"""
    return (unit_price(line) + variations_total(line, catalog) + border_total(line)) * line.quantity


def subtotal(lines: Iterable, catalog: Optional[VariationCatalog] = None) -> Decimal:
    return sum((line_total(line, catalog) for line in lines), ZERO)


def discount_amount(amount: Decimal, coupon: Optional[Coupon]) -> Decimal:
    """Coupon discount on an amount, never more than the amount itself"""
    if coupon is None:
        return ZERO
    if coupon.type == CouponType.PERCENT:
        discount = amount * coupon.value / Decimal(100)
    else:
        discount = coupon.value
    return min(discount, amount)


def final_total(amount: Decimal, coupon: Optional[Coupon]) -> Decimal:
    return max(ZERO, amount - discount_amount(amount, coupon))
