from datetime import date
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from ..amounts import line_total
from ..db import get_conn
from ..doc_numbers import next_import_invoice_no
from ..errors import InvoiceNotDraft, NotFound
from ..posting import finalize_import_invoice, refresh_import_total
from ..validation import DocStatus, InvoiceType

router = APIRouter(prefix="/imports", tags=["imports"])


class ImportInvoiceIn(BaseModel):
    supplier_id: Optional[int] = None
    type: InvoiceType = "cash"


class ImportItemIn(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)
    unit_price: float = Field(ge=0)
    batch_number: Optional[str] = None
    expiry_date: Optional[date] = None


def _lock_draft(cur, invoice_id: int, message: str = "Cannot modify finalized invoice"):
    cur.execute("SELECT id, status FROM import_invoices WHERE id = %s FOR UPDATE", (invoice_id,))
    inv = cur.fetchone()
    if not inv:
        raise NotFound("Invoice not found")
    if inv["status"] != "draft":
        raise InvoiceNotDraft(message)
    return inv


@router.post("")
def create_import_invoice(data: ImportInvoiceIn):
    if data.type == "credit" and not data.supplier_id:
        raise HTTPException(status_code=400, detail="credit invoice requires a supplier")
    with get_conn() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                invoice_no = next_import_invoice_no(cur)
                cur.execute(
                    """
                    INSERT INTO import_invoices (supplier_id, invoice_no, type, status)
                    VALUES (%s, %s, %s, 'draft')
                    RETURNING id, supplier_id, invoice_no, type, total_amount, status, finalized_at, created_at
                    """,
                    (data.supplier_id, invoice_no, data.type),
                )
                return cur.fetchone()


@router.get("")
def list_import_invoices(status: Optional[DocStatus] = None):
    with get_conn() as conn:
        with conn.cursor() as cur:
            sql = """
                SELECT i.id, i.supplier_id, i.invoice_no, i.type, i.total_amount, i.status,
                       i.finalized_at, i.created_at, s.name AS supplier_name
                FROM import_invoices i
                LEFT JOIN suppliers s ON s.id = i.supplier_id
            """
            params = []
            if status:
                sql += " WHERE i.status = %s"
                params.append(status)
            sql += " ORDER BY i.created_at DESC"
            cur.execute(sql, params)
            return cur.fetchall()


@router.get("/{invoice_id}")
def get_import_invoice(invoice_id: int):
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT i.id, i.supplier_id, i.invoice_no, i.type, i.total_amount, i.status,
                       i.finalized_at, i.created_at, s.name AS supplier_name
                FROM import_invoices i
                LEFT JOIN suppliers s ON s.id = i.supplier_id
                WHERE i.id = %s
                """,
                (invoice_id,),
            )
            inv = cur.fetchone()
            if not inv:
                raise NotFound("Invoice not found")
            cur.execute(
                """
                SELECT ii.id, ii.product_id, ii.batch_id, ii.batch_number, ii.expiry_date,
                       ii.quantity, ii.unit_price, ii.total_price, p.name AS product_name
                FROM import_items ii
                LEFT JOIN products p ON p.id = ii.product_id
                WHERE ii.import_invoice_id = %s
                ORDER BY ii.id
                """,
                (invoice_id,),
            )
            return {"invoice": inv, "items": cur.fetchall()}


@router.post("/{invoice_id}/items")
def add_import_item(invoice_id: int, data: ImportItemIn):
    batch_number = (data.batch_number or "").strip() or None
    with get_conn() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                _lock_draft(cur, invoice_id)
                cur.execute(
                    """
                    INSERT INTO import_items
                      (import_invoice_id, product_id, batch_number, expiry_date, quantity, unit_price, total_price)
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                    RETURNING id, import_invoice_id, product_id, batch_number, expiry_date, quantity, unit_price, total_price
                    """,
                    (
                        invoice_id,
                        data.product_id,
                        batch_number,
                        data.expiry_date,
                        data.quantity,
                        data.unit_price,
                        line_total(data.quantity, data.unit_price),
                    ),
                )
                item = cur.fetchone()
                refresh_import_total(cur, invoice_id)
                return item


@router.delete("/{invoice_id}/items/{item_id}")
def delete_import_item(invoice_id: int, item_id: int):
    with get_conn() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                _lock_draft(cur, invoice_id)
                cur.execute(
                    "DELETE FROM import_items WHERE id = %s AND import_invoice_id = %s RETURNING id",
                    (item_id, invoice_id),
                )
                if not cur.fetchone():
                    raise NotFound("Item not found")
                total = refresh_import_total(cur, invoice_id)
    return {"ok": True, "total_amount": total}


@router.post("/{invoice_id}/finalize")
def finalize_import(invoice_id: int):
    with get_conn() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                return finalize_import_invoice(cur, invoice_id)


@router.delete("/{invoice_id}")
def delete_import_invoice(invoice_id: int):
    with get_conn() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                _lock_draft(cur, invoice_id, "Cannot delete finalized invoice")
                cur.execute("DELETE FROM import_invoices WHERE id = %s", (invoice_id,))
    return {"ok": True}
