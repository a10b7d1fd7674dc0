from typing import List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from ..amounts import line_total
from ..db import get_conn
from ..doc_numbers import format_sales_invoice_no
from ..errors import InsufficientStock, InvoiceNotDraft, NotFound
from ..posting import finalize_sales_invoice, refresh_sales_totals
from ..validation import DocStatus, InvoiceType

router = APIRouter(prefix="/sales", tags=["sales"])

INVOICE_COLUMNS = (
    "i.id, i.customer_id, i.invoice_no, i.type, i.total_amount, i.discount_percent, i.discount_amount, "
    "i.status, i.finalized_at, i.created_at"
)


class SalesInvoiceIn(BaseModel):
    customer_id: Optional[int] = None
    type: InvoiceType = "cash"
    discount_percent: float = Field(default=0, ge=0, le=100)


class SalesItemIn(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)
    unit_price: float = Field(ge=0)
    batch_id: Optional[int] = None


class DiscountIn(BaseModel):
    discount_percent: float = Field(ge=0, le=100)


class CompleteSaleIn(BaseModel):
    customer_id: Optional[int] = None
    type: InvoiceType = "cash"
    discount_percent: float = Field(default=0, ge=0, le=100)
    items: List[SalesItemIn]


def _lock_draft(cur, invoice_id: int, message: str = "Cannot modify finalized invoice"):
    cur.execute("SELECT id, status FROM sales_invoices WHERE id = %s FOR UPDATE", (invoice_id,))
    inv = cur.fetchone()
    if not inv:
        raise NotFound("Invoice not found")
    if inv["status"] != "draft":
        raise InvoiceNotDraft(message)
    return inv


def _insert_invoice(cur, customer_id: Optional[int], invoice_type: str, discount_percent: float) -> dict:
    if invoice_type == "credit" and not customer_id:
        raise HTTPException(status_code=400, detail="credit invoice requires a customer")
    cur.execute(
        """
        INSERT INTO sales_invoices (customer_id, type, discount_percent, status)
        VALUES (%s, %s, %s, 'draft')
        RETURNING id
        """,
        (customer_id, invoice_type, discount_percent),
    )
    invoice_id = cur.fetchone()["id"]
    cur.execute(
        """
        UPDATE sales_invoices
        SET invoice_no = %s
        WHERE id = %s
        RETURNING id, customer_id, invoice_no, type, total_amount, discount_percent, discount_amount,
                  status, finalized_at, created_at
        """,
        (format_sales_invoice_no(invoice_id), invoice_id),
    )
    return cur.fetchone()


def _insert_item(cur, invoice_id: int, item: SalesItemIn) -> dict:
    cur.execute(
        """
        INSERT INTO sales_items (invoice_id, product_id, batch_id, quantity, unit_price, total_price)
        VALUES (%s, %s, %s, %s, %s, %s)
        RETURNING id, invoice_id, product_id, batch_id, quantity, unit_price, total_price
        """,
        (
            invoice_id,
            item.product_id,
            item.batch_id,
            item.quantity,
            item.unit_price,
            line_total(item.quantity, item.unit_price),
        ),
    )
    return cur.fetchone()


@router.post("")
def create_sales_invoice(data: SalesInvoiceIn):
    with get_conn() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                return _insert_invoice(cur, data.customer_id, data.type, data.discount_percent)


@router.get("")
def list_sales_invoices(status: Optional[DocStatus] = None):
    with get_conn() as conn:
        with conn.cursor() as cur:
            sql = f"""
                SELECT {INVOICE_COLUMNS}, c.name AS customer_name
                FROM sales_invoices i
                LEFT JOIN customers c ON c.id = i.customer_id
            """
            params = []
            if status:
                sql += " WHERE i.status = %s"
                params.append(status)
            sql += " ORDER BY i.created_at DESC"
            cur.execute(sql, params)
            return cur.fetchall()


@router.get("/{invoice_id}")
def get_sales_invoice(invoice_id: int):
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                SELECT {INVOICE_COLUMNS}, c.name AS customer_name
                FROM sales_invoices i
                LEFT JOIN customers c ON c.id = i.customer_id
                WHERE i.id = %s
                """,
                (invoice_id,),
            )
            inv = cur.fetchone()
            if not inv:
                raise NotFound("Invoice not found")
            cur.execute(
                """
                SELECT si.id, si.product_id, si.batch_id, si.quantity, si.unit_price, si.total_price,
                       p.name AS product_name, p.current_stock,
                       pb.batch_number, pb.expiry_date
                FROM sales_items si
                LEFT JOIN products p ON p.id = si.product_id
                LEFT JOIN product_batches pb ON pb.batch_id = si.batch_id
                WHERE si.invoice_id = %s
                ORDER BY si.id
                """,
                (invoice_id,),
            )
            return {"invoice": inv, "items": cur.fetchall()}


@router.post("/{invoice_id}/items")
def add_sales_item(invoice_id: int, data: SalesItemIn):
    with get_conn() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                _lock_draft(cur, invoice_id)
                # Advisory only; finalization re-checks under row locks.
                cur.execute("SELECT name, current_stock FROM products WHERE id = %s", (data.product_id,))
                product = cur.fetchone()
                if not product:
                    raise NotFound("Product not found")
                if int(product["current_stock"] or 0) < data.quantity:
                    raise InsufficientStock(f"Insufficient stock. Available: {product['current_stock']}")
                if data.batch_id is not None:
                    cur.execute(
                        "SELECT product_id, batch_number, quantity FROM product_batches WHERE batch_id = %s",
                        (data.batch_id,),
                    )
                    batch = cur.fetchone()
                    if not batch or int(batch["product_id"]) != data.product_id:
                        raise HTTPException(status_code=400, detail="batch does not belong to product")
                    if int(batch["quantity"] or 0) < data.quantity:
                        raise InsufficientStock(
                            f"Insufficient stock in batch {batch['batch_number']}. Available: {batch['quantity']}"
                        )
                item = _insert_item(cur, invoice_id, data)
                refresh_sales_totals(cur, invoice_id)
                return item


@router.delete("/{invoice_id}/items/{item_id}")
def delete_sales_item(invoice_id: int, item_id: int):
    with get_conn() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                _lock_draft(cur, invoice_id)
                cur.execute(
                    "DELETE FROM sales_items WHERE id = %s AND invoice_id = %s RETURNING id",
                    (item_id, invoice_id),
                )
                if not cur.fetchone():
                    raise NotFound("Item not found")
                return refresh_sales_totals(cur, invoice_id)


@router.put("/{invoice_id}/discount")
def set_sales_discount(invoice_id: int, data: DiscountIn):
    with get_conn() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                _lock_draft(cur, invoice_id)
                cur.execute(
                    "UPDATE sales_invoices SET discount_percent = %s WHERE id = %s",
                    (data.discount_percent, invoice_id),
                )
                return refresh_sales_totals(cur, invoice_id)


@router.post("/{invoice_id}/finalize")
def finalize_sale(invoice_id: int):
    with get_conn() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                return finalize_sales_invoice(cur, invoice_id)


@router.post("/create-complete")
def create_complete_sale(data: CompleteSaleIn):
    """
    Counter sale: create the invoice, add its items and finalize it in one
    transaction. Nothing is kept when any step fails.
    """
    if not data.items:
        raise HTTPException(status_code=400, detail="At least one item is required")
    with get_conn() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                inv = _insert_invoice(cur, data.customer_id, data.type, data.discount_percent)
                for item in data.items:
                    _insert_item(cur, inv["id"], item)
                return finalize_sales_invoice(cur, inv["id"])


@router.delete("/{invoice_id}")
def delete_sales_invoice(invoice_id: int):
    with get_conn() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                _lock_draft(cur, invoice_id, "Cannot delete finalized invoice")
                cur.execute("DELETE FROM sales_invoices WHERE id = %s", (invoice_id,))
    return {"ok": True}
