"""
Invoice finalization.

Both workflows expect to run inside the caller's `conn.transaction()`: any
exception raised here rolls back every stock, batch, ledger and status write
made so far.
"""
from __future__ import annotations

from decimal import Decimal

from fastapi import HTTPException

from .amounts import q_money, sales_totals, to_decimal
from .errors import AlreadyFinalized, InvoiceNotDraft, NotFound
from .ledger import adjust_ledger_balance
from .logs import json_log
from .stock import (
    adjust_batch_quantity,
    apply_stock_delta,
    assert_batches_available,
    assert_stock_available,
    get_or_create_batch,
    lock_batches,
    lock_products,
    sum_quantities,
)


def _check_draft(inv: dict | None):
    if not inv:
        raise NotFound("invoice not found")
    if inv["status"] == "finalized":
        raise AlreadyFinalized()
    if inv["status"] != "draft":
        raise InvoiceNotDraft("invoice is not in draft status")


def refresh_sales_totals(cur, invoice_id: int) -> dict:
    cur.execute(
        """
        SELECT i.discount_percent,
               COALESCE((SELECT SUM(total_price) FROM sales_items WHERE invoice_id = i.id), 0) AS subtotal
        FROM sales_invoices i
        WHERE i.id = %s
        """,
        (invoice_id,),
    )
    row = cur.fetchone()
    if not row:
        raise NotFound("invoice not found")
    discount, total = sales_totals(row["subtotal"], row["discount_percent"])
    cur.execute(
        """
        UPDATE sales_invoices
        SET total_amount = %s, discount_amount = %s
        WHERE id = %s
        """,
        (total, discount, invoice_id),
    )
    return {"subtotal": q_money(row["subtotal"]), "discount_amount": discount, "total_amount": total}


def refresh_import_total(cur, invoice_id: int) -> Decimal:
    cur.execute(
        """
        UPDATE import_invoices
        SET total_amount = (
          SELECT COALESCE(SUM(total_price), 0) FROM import_items WHERE import_invoice_id = %s
        )
        WHERE id = %s
        RETURNING total_amount
        """,
        (invoice_id, invoice_id),
    )
    row = cur.fetchone()
    if not row:
        raise NotFound("invoice not found")
    return to_decimal(row["total_amount"])


def finalize_sales_invoice(cur, invoice_id: int) -> dict:
    cur.execute(
        """
        SELECT id, customer_id, invoice_no, type, status, discount_percent
        FROM sales_invoices
        WHERE id = %s
        FOR UPDATE
        """,
        (invoice_id,),
    )
    inv = cur.fetchone()
    _check_draft(inv)
    if inv["type"] == "credit" and not inv["customer_id"]:
        raise HTTPException(status_code=400, detail="credit invoice requires a customer")

    cur.execute(
        """
        SELECT id, product_id, batch_id, quantity, total_price
        FROM sales_items
        WHERE invoice_id = %s
        ORDER BY id
        """,
        (invoice_id,),
    )
    lines = cur.fetchall()
    if not lines:
        raise HTTPException(status_code=400, detail="Invoice has no items")

    # Every check runs before the first write.
    products = lock_products(cur, [l["product_id"] for l in lines])
    assert_stock_available(products, sum_quantities(lines, "product_id"))
    batch_required = sum_quantities(lines, "batch_id")
    if batch_required:
        batches = lock_batches(cur, batch_required.keys())
        assert_batches_available(batches, batch_required, lines)

    for l in lines:
        qty = int(l["quantity"])
        if l["batch_id"] is not None:
            adjust_batch_quantity(cur, l["batch_id"], -qty)
        apply_stock_delta(
            cur,
            product_id=l["product_id"],
            delta=-qty,
            movement_type="out",
            reference_type="sale",
            reference_id=invoice_id,
            batch_id=l["batch_id"],
        )

    subtotal = sum((to_decimal(l["total_price"]) for l in lines), Decimal("0"))
    discount, total = sales_totals(subtotal, inv["discount_percent"])

    balance = None
    if inv["type"] == "credit":
        balance = adjust_ledger_balance(cur, "customer", inv["customer_id"], total)

    cur.execute(
        """
        UPDATE sales_invoices
        SET status = 'finalized', total_amount = %s, discount_amount = %s, finalized_at = now()
        WHERE id = %s
        """,
        (total, discount, invoice_id),
    )
    json_log(
        "info",
        "invoice.finalized",
        kind="sale",
        invoice_id=invoice_id,
        invoice_type=inv["type"],
        lines=len(lines),
        total=total,
    )
    return {
        "id": invoice_id,
        "invoice_no": inv["invoice_no"],
        "status": "finalized",
        "type": inv["type"],
        "subtotal": q_money(subtotal),
        "discount_amount": discount,
        "total_amount": total,
        "customer_balance": balance,
    }


def finalize_import_invoice(cur, invoice_id: int) -> dict:
    cur.execute(
        """
        SELECT id, supplier_id, invoice_no, type, status
        FROM import_invoices
        WHERE id = %s
        FOR UPDATE
        """,
        (invoice_id,),
    )
    inv = cur.fetchone()
    _check_draft(inv)
    if inv["type"] == "credit" and not inv["supplier_id"]:
        raise HTTPException(status_code=400, detail="credit invoice requires a supplier")

    cur.execute(
        """
        SELECT id, product_id, batch_number, expiry_date, quantity, total_price
        FROM import_items
        WHERE import_invoice_id = %s
        ORDER BY id
        """,
        (invoice_id,),
    )
    lines = cur.fetchall()
    lock_products(cur, [l["product_id"] for l in lines])

    for l in lines:
        qty = int(l["quantity"])
        batch_id = None
        batch_number = (l.get("batch_number") or "").strip()
        if batch_number:
            batch_id = get_or_create_batch(
                cur,
                product_id=l["product_id"],
                batch_number=batch_number,
                expiry_date=l.get("expiry_date"),
                import_id=invoice_id,
            )
            adjust_batch_quantity(cur, batch_id, qty)
            cur.execute(
                """
                UPDATE import_items
                SET batch_id = %s
                WHERE id = %s
                """,
                (batch_id, l["id"]),
            )
        apply_stock_delta(
            cur,
            product_id=l["product_id"],
            delta=qty,
            movement_type="in",
            reference_type="import",
            reference_id=invoice_id,
            batch_id=batch_id,
        )

    total = q_money(sum((to_decimal(l["total_price"]) for l in lines), Decimal("0")))

    balance = None
    if inv["type"] == "credit":
        balance = adjust_ledger_balance(cur, "supplier", inv["supplier_id"], total)

    cur.execute(
        """
        UPDATE import_invoices
        SET status = 'finalized', total_amount = %s, finalized_at = now()
        WHERE id = %s
        """,
        (total, invoice_id),
    )
    json_log(
        "info",
        "invoice.finalized",
        kind="import",
        invoice_id=invoice_id,
        invoice_type=inv["type"],
        lines=len(lines),
        total=total,
    )
    return {
        "id": invoice_id,
        "invoice_no": inv["invoice_no"],
        "status": "finalized",
        "type": inv["type"],
        "total_amount": total,
        "supplier_balance": balance,
    }
