from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

MONEY_Q = Decimal("0.01")
WHOLE_Q = Decimal("1")


def to_decimal(v) -> Decimal:
    if v is None or v == "":
        return Decimal("0")
    if isinstance(v, Decimal):
        return v
    return Decimal(str(v))


def q_money(v) -> Decimal:
    return to_decimal(v).quantize(MONEY_Q, rounding=ROUND_HALF_UP)


def sales_totals(subtotal, discount_percent) -> tuple[Decimal, Decimal]:
    """
    Returns (discount_amount, total_amount).
    Discounts are rounded half-up to whole currency units, as printed on invoices.
    """
    subtotal = q_money(subtotal)
    pct = to_decimal(discount_percent)
    if pct < 0 or pct > 100:
        raise ValueError("discount_percent must be between 0 and 100")
    discount = (subtotal * pct / Decimal("100")).quantize(WHOLE_Q, rounding=ROUND_HALF_UP)
    return q_money(discount), q_money(subtotal - discount)


def line_total(quantity, unit_price) -> Decimal:
    return q_money(to_decimal(quantity) * to_decimal(unit_price))
