from __future__ import annotations

from decimal import Decimal
from typing import Optional

from fastapi import HTTPException

from .amounts import q_money, to_decimal
from .errors import NotFound
from .logs import json_log

# Table names are never taken from user input.
PARTY_TABLES = {"customer": "customers", "supplier": "suppliers"}


def adjust_ledger_balance(cur, party_type: str, party_id: int, delta) -> Decimal:
    """
    Add `delta` to the running balance of a customer (receivable) or supplier
    (payable) and return the new balance.
    """
    table = PARTY_TABLES[party_type]
    cur.execute(
        f"""
        UPDATE {table}
        SET ledger_balance = ledger_balance + %s
        WHERE id = %s
        RETURNING id, ledger_balance
        """,
        (q_money(delta), party_id),
    )
    row = cur.fetchone()
    if not row:
        raise NotFound(f"{party_type} not found")
    return to_decimal(row["ledger_balance"])


def insert_payment(
    cur,
    *,
    payment_type: str,
    partner_id: int,
    amount,
    method: str,
    reference_id: Optional[int] = None,
    notes: Optional[str] = None,
) -> dict:
    cur.execute(
        """
        INSERT INTO payments (type, reference_id, partner_id, amount, method, notes)
        VALUES (%s, %s, %s, %s, %s, %s)
        RETURNING id, type, reference_id, partner_id, amount, method, notes, created_at
        """,
        (payment_type, reference_id, partner_id, q_money(amount), method, notes),
    )
    return cur.fetchone()


def record_payment(
    cur,
    *,
    party_type: str,
    partner_id: int,
    amount,
    method: str = "cash",
    reference_id: Optional[int] = None,
    notes: Optional[str] = None,
) -> dict:
    """
    Payment received from a customer or paid to a supplier. Decrements the
    party's ledger balance by the amount; there is no allocation to invoices.
    """
    amount = q_money(amount)
    if amount <= 0:
        raise HTTPException(status_code=400, detail="amount must be > 0")
    # Balance first: an unknown partner raises before the payment row exists.
    balance = adjust_ledger_balance(cur, party_type, partner_id, -amount)
    payment = insert_payment(
        cur,
        payment_type=party_type,
        partner_id=partner_id,
        amount=amount,
        method=method,
        reference_id=reference_id,
        notes=notes,
    )
    payment = dict(payment)
    payment["ledger_balance"] = balance
    json_log(
        "info",
        "payment.recorded",
        party_type=party_type,
        partner_id=partner_id,
        payment_id=payment.get("id"),
        amount=amount,
        method=method,
    )
    return payment
