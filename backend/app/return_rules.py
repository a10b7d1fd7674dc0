from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Optional

from fastapi import HTTPException

from .amounts import line_total, q_money, to_decimal
from .doc_numbers import next_return_no
from .errors import NotFound, ReturnQuantityExceeded
from .ledger import adjust_ledger_balance, insert_payment
from .logs import json_log
from .stock import (
    adjust_batch_quantity,
    apply_stock_delta,
    assert_batches_available,
    assert_stock_available,
    lock_batches,
    lock_products,
    sum_quantities,
)

# Stock moves opposite to how the original invoice moved it.
RETURN_MOVEMENTS = {
    "customer": {"sign": 1, "type": "return_in", "reference_type": "customer_return", "refund_payment": "customer_refund"},
    "supplier": {"sign": -1, "type": "return_out", "reference_type": "supplier_return", "refund_payment": "supplier_refund"},
}


def _key(product_id, batch_id) -> tuple[int, Optional[int]]:
    return int(product_id), (int(batch_id) if batch_id is not None else None)


def plan_return_lines(
    invoiced: Iterable[dict],
    returned: Iterable[dict],
    requested: Iterable[dict],
    *,
    invoice_total=None,
) -> list[dict]:
    """
    Validate requested return quantities against what is still returnable on
    the original invoice and price them.

    - `invoiced`: rows {product_id, batch_id, quantity, total_price}, grouped per product/batch
    - `returned`: rows {product_id, batch_id, returned_qty, returned_amount} of earlier
      returns on the same invoice
    - `requested`: rows {product_id, batch_id, quantity}; duplicates are summed

    Requests above (invoiced - already returned) are rejected, never clamped.

    Lines are priced at their share of `invoice_total` (the amount posted at
    finalization, after the rounded discount). The return that takes back
    everything still outstanding is credited exactly the un-returned remainder.
    """
    sold: dict[tuple, dict] = {}
    for r in invoiced:
        k = _key(r["product_id"], r.get("batch_id"))
        agg = sold.setdefault(k, {"quantity": 0, "total_price": Decimal("0")})
        agg["quantity"] += int(r["quantity"])
        agg["total_price"] += to_decimal(r["total_price"])

    already: dict[tuple, int] = {}
    already_amount = Decimal("0")
    for r in returned:
        k = _key(r["product_id"], r.get("batch_id"))
        already[k] = already.get(k, 0) + int(r["returned_qty"] or 0)
        already_amount += to_decimal(r.get("returned_amount"))

    wanted: dict[tuple, int] = {}
    for r in requested:
        qty = int(r["quantity"])
        if qty <= 0:
            raise HTTPException(status_code=400, detail="quantity must be > 0")
        k = _key(r["product_id"], r.get("batch_id"))
        wanted[k] = wanted.get(k, 0) + qty
    if not wanted:
        raise HTTPException(status_code=400, detail="At least one item is required for return")

    subtotal = sum((s["total_price"] for s in sold.values()), Decimal("0"))
    total = subtotal if invoice_total is None else to_decimal(invoice_total)
    factor = total / subtotal if subtotal > 0 else Decimal("1")
    out = []
    for (product_id, batch_id), qty in wanted.items():
        s = sold.get((product_id, batch_id))
        if not s:
            label = f"product {product_id}" + (f" batch {batch_id}" if batch_id is not None else "")
            raise HTTPException(status_code=400, detail=f"{label} is not on the original invoice")
        returnable = s["quantity"] - already.get((product_id, batch_id), 0)
        if qty > returnable:
            raise ReturnQuantityExceeded(
                f"Return quantity exceeds returnable quantity for product {product_id}. "
                f"Returnable: {max(returnable, 0)}, Requested: {qty}"
            )
        unit_price = q_money(s["total_price"] / s["quantity"] * factor)
        out.append(
            {
                "product_id": product_id,
                "batch_id": batch_id,
                "quantity": qty,
                "unit_price": unit_price,
                "total_price": line_total(qty, unit_price),
            }
        )

    settles_invoice = all(
        s["quantity"] - already.get(k, 0) - wanted.get(k, 0) <= 0 for k, s in sold.items()
    )
    if settles_invoice and out:
        remainder = q_money(total - already_amount)
        diff = remainder - sum((l["total_price"] for l in out), Decimal("0"))
        last = out[-1]
        last["total_price"] = q_money(last["total_price"] + diff)
        last["unit_price"] = q_money(last["total_price"] / last["quantity"])
    return out


def _load_invoice(cur, return_type: str, invoice_id: int) -> dict:
    # The invoice row lock serializes concurrent returns against the same invoice.
    if return_type == "customer":
        cur.execute(
            """
            SELECT id, customer_id AS party_id, status, total_amount
            FROM sales_invoices
            WHERE id = %s
            FOR UPDATE
            """,
            (invoice_id,),
        )
    else:
        cur.execute(
            """
            SELECT id, supplier_id AS party_id, status, total_amount
            FROM import_invoices
            WHERE id = %s
            FOR UPDATE
            """,
            (invoice_id,),
        )
    inv = cur.fetchone()
    if not inv:
        raise NotFound("invoice not found")
    if inv["status"] != "finalized":
        raise HTTPException(status_code=400, detail="Invoice not finalized")
    if not inv["party_id"]:
        raise HTTPException(status_code=400, detail="invoice has no counterparty")
    return inv


def _load_invoiced_lines(cur, return_type: str, invoice_id: int) -> list[dict]:
    if return_type == "customer":
        cur.execute(
            """
            SELECT product_id, batch_id, SUM(quantity) AS quantity, SUM(total_price) AS total_price
            FROM sales_items
            WHERE invoice_id = %s
            GROUP BY product_id, batch_id
            """,
            (invoice_id,),
        )
    else:
        cur.execute(
            """
            SELECT product_id, batch_id, SUM(quantity) AS quantity, SUM(total_price) AS total_price
            FROM import_items
            WHERE import_invoice_id = %s
            GROUP BY product_id, batch_id
            """,
            (invoice_id,),
        )
    return cur.fetchall()


def load_returned_quantities(cur, return_type: str, invoice_id: int) -> list[dict]:
    cur.execute(
        """
        SELECT ri.product_id, ri.batch_id, SUM(ri.quantity) AS returned_qty,
               SUM(ri.total_price) AS returned_amount
        FROM return_items ri
        JOIN returns r ON r.id = ri.return_id
        WHERE r.invoice_id = %s AND r.return_type = %s
        GROUP BY ri.product_id, ri.batch_id
        """,
        (invoice_id, return_type),
    )
    return cur.fetchall()


def create_return(
    cur,
    *,
    return_type: str,
    invoice_id: int,
    items: list[dict],
    reason: Optional[str] = None,
    refund_type: str = "credit",
    notes: Optional[str] = None,
    party_id: Optional[int] = None,
) -> dict:
    """
    Record a customer or supplier return against a finalized invoice.

    Stock goes back in (customer) or out (supplier). Only credit refunds move
    the party's ledger balance; cash refunds are recorded as a refund payment
    and exchanges touch neither.
    """
    move = RETURN_MOVEMENTS[return_type]
    inv = _load_invoice(cur, return_type, invoice_id)
    if party_id is not None and int(party_id) != int(inv["party_id"]):
        raise HTTPException(status_code=400, detail="party does not match the invoice")
    party_id = int(inv["party_id"])

    lines = plan_return_lines(
        _load_invoiced_lines(cur, return_type, invoice_id),
        load_returned_quantities(cur, return_type, invoice_id),
        items,
        invoice_total=inv["total_amount"],
    )

    products = lock_products(cur, [l["product_id"] for l in lines])
    batch_ids = [l["batch_id"] for l in lines if l["batch_id"] is not None]
    batches = lock_batches(cur, batch_ids) if batch_ids else {}
    if return_type == "supplier":
        assert_stock_available(products, sum_quantities(lines, "product_id"))
        if batches:
            assert_batches_available(batches, sum_quantities(lines, "batch_id"), lines)

    total = q_money(sum((l["total_price"] for l in lines), Decimal("0")))
    return_no = next_return_no(cur, return_type)
    cur.execute(
        """
        INSERT INTO returns (return_no, return_type, invoice_id, party_id, total_amount, reason, refund_type, notes, status)
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, 'completed')
        RETURNING id, return_no, return_type, invoice_id, party_id, total_amount, reason, refund_type, notes, status, created_at
        """,
        (return_no, return_type, invoice_id, party_id, total, reason, refund_type, notes),
    )
    ret = dict(cur.fetchone())
    return_id = ret["id"]

    for l in lines:
        cur.execute(
            """
            INSERT INTO return_items (return_id, product_id, batch_id, quantity, unit_price, total_price)
            VALUES (%s, %s, %s, %s, %s, %s)
            """,
            (return_id, l["product_id"], l["batch_id"], l["quantity"], l["unit_price"], l["total_price"]),
        )
        delta = move["sign"] * l["quantity"]
        if l["batch_id"] is not None:
            adjust_batch_quantity(cur, l["batch_id"], delta)
        apply_stock_delta(
            cur,
            product_id=l["product_id"],
            delta=delta,
            movement_type=move["type"],
            reference_type=move["reference_type"],
            reference_id=return_id,
            batch_id=l["batch_id"],
        )

    balance = None
    if refund_type == "credit":
        balance = adjust_ledger_balance(cur, return_type, party_id, -total)
    elif refund_type == "cash":
        insert_payment(
            cur,
            payment_type=move["refund_payment"],
            partner_id=party_id,
            amount=total,
            method="cash",
            reference_id=return_id,
            notes=f"Refund for return {return_no}",
        )

    json_log(
        "info",
        "return.created",
        return_id=return_id,
        return_no=return_no,
        return_type=return_type,
        invoice_id=invoice_id,
        refund_type=refund_type,
        total=total,
    )
    ret["items"] = lines
    ret["ledger_balance"] = balance
    return ret
