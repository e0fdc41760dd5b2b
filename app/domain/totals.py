# app/domain/totals.py
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from app.domain.errors import NegativeTotalError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    shipping: Decimal
    discount: Decimal
    tax: Decimal
    gift_card: Decimal
    total: Decimal


def calculate_totals(
    subtotal,
    shipping,
    tax_rate,
    discount=ZERO,
    gift_card_offset=ZERO,
) -> OrderTotals:
    """
    total = subtotal + shipping - discount + tax - gift card
    tax = (subtotal - discount) * tax_rate

    Raises NegativeTotalError when the result drops below zero.
    """
    subtotal = money(subtotal)
    shipping = money(shipping)
    discount = money(discount)
    gift_card_offset = money(gift_card_offset)

    tax = money((subtotal - discount) * Decimal(str(tax_rate)))
    total = subtotal + shipping - discount + tax - gift_card_offset

    if total < ZERO:
        raise NegativeTotalError(f"Total amount cannot be negative ({total})")

    return OrderTotals(
        subtotal=subtotal,
        shipping=shipping,
        discount=discount,
        tax=tax,
        gift_card=gift_card_offset,
        total=total,
    )
