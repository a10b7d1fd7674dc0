from datetime import date
from typing import List, Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from ..db import get_conn
from ..errors import NotFound
from ..return_rules import create_return
from ..validation import PartyType, RefundType, ReturnReason

router = APIRouter(prefix="/returns", tags=["returns"])


class ReturnItemIn(BaseModel):
    product_id: int
    batch_id: Optional[int] = None
    quantity: int = Field(gt=0)


class ReturnIn(BaseModel):
    return_type: PartyType
    invoice_id: int
    party_id: Optional[int] = None
    items: List[ReturnItemIn]
    reason: Optional[ReturnReason] = None
    refund_type: RefundType = "credit"
    notes: Optional[str] = None


RETURN_LIST_SQL = """
    SELECT r.id, r.return_no, r.return_type, r.invoice_id, r.party_id, r.total_amount,
           r.reason, r.refund_type, r.notes, r.status, r.created_at,
           CASE WHEN r.return_type = 'customer' THEN c.name ELSE s.name END AS party_name,
           CASE WHEN r.return_type = 'customer' THEN si.invoice_no ELSE ii.invoice_no END AS original_invoice_no
    FROM returns r
    LEFT JOIN customers c ON r.return_type = 'customer' AND c.id = r.party_id
    LEFT JOIN suppliers s ON r.return_type = 'supplier' AND s.id = r.party_id
    LEFT JOIN sales_invoices si ON r.return_type = 'customer' AND si.id = r.invoice_id
    LEFT JOIN import_invoices ii ON r.return_type = 'supplier' AND ii.id = r.invoice_id
"""


@router.get("")
def list_returns(return_type: Optional[PartyType] = None):
    with get_conn() as conn:
        with conn.cursor() as cur:
            if return_type:
                cur.execute(RETURN_LIST_SQL + " WHERE r.return_type = %s ORDER BY r.created_at DESC", (return_type,))
            else:
                cur.execute(RETURN_LIST_SQL + " ORDER BY r.created_at DESC")
            return cur.fetchall()


@router.post("")
def create_return_endpoint(data: ReturnIn):
    with get_conn() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                return create_return(
                    cur,
                    return_type=data.return_type,
                    invoice_id=data.invoice_id,
                    party_id=data.party_id,
                    items=[i.model_dump() for i in data.items],
                    reason=data.reason,
                    refund_type=data.refund_type,
                    notes=data.notes,
                )


@router.get("/stats/summary")
def return_stats():
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT return_type,
                       COUNT(*) AS total_returns,
                       COALESCE(SUM(total_amount), 0) AS total_amount
                FROM returns
                GROUP BY return_type
                """
            )
            per_type = {r["return_type"]: r for r in cur.fetchall()}
            cur.execute(
                """
                SELECT reason, return_type, COUNT(*) AS count, COALESCE(SUM(total_amount), 0) AS amount
                FROM returns
                WHERE reason IS NOT NULL
                GROUP BY reason, return_type
                ORDER BY count DESC
                """
            )
            by_reason = cur.fetchall()
    empty = {"total_returns": 0, "total_amount": 0}
    return {
        "customer": per_type.get("customer", empty),
        "supplier": per_type.get("supplier", empty),
        "by_reason": by_reason,
    }


@router.get("/invoices/customer/{customer_id}")
def customer_invoices_for_return(customer_id: int, from_date: Optional[date] = None, to_date: Optional[date] = None):
    sql = """
        SELECT si.id, si.invoice_no, si.type, si.total_amount, si.created_at, c.name AS customer_name
        FROM sales_invoices si
        LEFT JOIN customers c ON c.id = si.customer_id
        WHERE si.customer_id = %s AND si.status = 'finalized'
    """
    params: list = [customer_id]
    if from_date:
        sql += " AND si.created_at::date >= %s"
        params.append(from_date)
    if to_date:
        sql += " AND si.created_at::date <= %s"
        params.append(to_date)
    sql += " ORDER BY si.created_at DESC"
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(sql, params)
            return cur.fetchall()


@router.get("/invoices/supplier/{supplier_id}")
def supplier_invoices_for_return(supplier_id: int, from_date: Optional[date] = None, to_date: Optional[date] = None):
    sql = """
        SELECT ii.id, ii.invoice_no, ii.type, ii.total_amount, ii.created_at, s.name AS supplier_name
        FROM import_invoices ii
        LEFT JOIN suppliers s ON s.id = ii.supplier_id
        WHERE ii.supplier_id = %s AND ii.status = 'finalized'
    """
    params: list = [supplier_id]
    if from_date:
        sql += " AND ii.created_at::date >= %s"
        params.append(from_date)
    if to_date:
        sql += " AND ii.created_at::date <= %s"
        params.append(to_date)
    sql += " ORDER BY ii.created_at DESC"
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(sql, params)
            return cur.fetchall()


@router.get("/invoice/customer/{invoice_id}")
def returnable_sales_lines(invoice_id: int):
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT si.id, si.invoice_no, si.type, si.total_amount, si.discount_percent, si.created_at,
                       si.customer_id, c.name AS customer_name
                FROM sales_invoices si
                LEFT JOIN customers c ON c.id = si.customer_id
                WHERE si.id = %s AND si.status = 'finalized'
                """,
                (invoice_id,),
            )
            inv = cur.fetchone()
            if not inv:
                raise NotFound("Invoice not found or not finalized")
            cur.execute(
                """
                SELECT it.product_id, it.batch_id, p.name AS product_name, pb.batch_number, pb.expiry_date,
                       SUM(it.quantity) AS sold_quantity,
                       SUM(it.total_price) AS total_price,
                       COALESCE(MAX(rq.returned_qty), 0) AS already_returned,
                       SUM(it.quantity) - COALESCE(MAX(rq.returned_qty), 0) AS returnable_quantity
                FROM sales_items it
                LEFT JOIN products p ON p.id = it.product_id
                LEFT JOIN product_batches pb ON pb.batch_id = it.batch_id
                LEFT JOIN (
                  SELECT ri.product_id, ri.batch_id, SUM(ri.quantity) AS returned_qty
                  FROM return_items ri
                  JOIN returns r ON r.id = ri.return_id
                  WHERE r.invoice_id = %s AND r.return_type = 'customer'
                  GROUP BY ri.product_id, ri.batch_id
                ) rq ON rq.product_id = it.product_id AND rq.batch_id IS NOT DISTINCT FROM it.batch_id
                WHERE it.invoice_id = %s
                GROUP BY it.product_id, it.batch_id, p.name, pb.batch_number, pb.expiry_date
                ORDER BY p.name
                """,
                (invoice_id, invoice_id),
            )
            return {"invoice": inv, "items": cur.fetchall()}


@router.get("/invoice/supplier/{invoice_id}")
def returnable_import_lines(invoice_id: int):
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT ii.id, ii.invoice_no, ii.type, ii.total_amount, ii.created_at,
                       ii.supplier_id, s.name AS supplier_name
                FROM import_invoices ii
                LEFT JOIN suppliers s ON s.id = ii.supplier_id
                WHERE ii.id = %s AND ii.status = 'finalized'
                """,
                (invoice_id,),
            )
            inv = cur.fetchone()
            if not inv:
                raise NotFound("Invoice not found or not finalized")
            cur.execute(
                """
                SELECT it.product_id, it.batch_id, p.name AS product_name, pb.batch_number, pb.expiry_date,
                       SUM(it.quantity) AS purchased_quantity,
                       SUM(it.total_price) AS total_price,
                       COALESCE(MAX(rq.returned_qty), 0) AS already_returned,
                       SUM(it.quantity) - COALESCE(MAX(rq.returned_qty), 0) AS returnable_quantity
                FROM import_items it
                LEFT JOIN products p ON p.id = it.product_id
                LEFT JOIN product_batches pb ON pb.batch_id = it.batch_id
                LEFT JOIN (
                  SELECT ri.product_id, ri.batch_id, SUM(ri.quantity) AS returned_qty
                  FROM return_items ri
                  JOIN returns r ON r.id = ri.return_id
                  WHERE r.invoice_id = %s AND r.return_type = 'supplier'
                  GROUP BY ri.product_id, ri.batch_id
                ) rq ON rq.product_id = it.product_id AND rq.batch_id IS NOT DISTINCT FROM it.batch_id
                WHERE it.import_invoice_id = %s
                GROUP BY it.product_id, it.batch_id, p.name, pb.batch_number, pb.expiry_date
                ORDER BY p.name
                """,
                (invoice_id, invoice_id),
            )
            return {"invoice": inv, "items": cur.fetchall()}


@router.get("/{return_id}")
def get_return(return_id: int):
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(RETURN_LIST_SQL + " WHERE r.id = %s", (return_id,))
            ret = cur.fetchone()
            if not ret:
                raise NotFound("Return not found")
            cur.execute(
                """
                SELECT ri.id, ri.product_id, ri.batch_id, ri.quantity, ri.unit_price, ri.total_price,
                       p.name AS product_name, pb.batch_number, pb.expiry_date
                FROM return_items ri
                LEFT JOIN products p ON p.id = ri.product_id
                LEFT JOIN product_batches pb ON pb.batch_id = ri.batch_id
                WHERE ri.return_id = %s
                ORDER BY ri.id
                """,
                (return_id,),
            )
            return {"return": ret, "items": cur.fetchall()}
