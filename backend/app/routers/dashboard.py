from datetime import date
from typing import Optional

from fastapi import APIRouter, Query

from ..amounts import to_decimal
from ..db import get_conn
from ..errors import NotFound

router = APIRouter(prefix="/dashboard", tags=["dashboard"])

# Reports bucket finalized documents by the day they were finalized.
DOC_DAY = "COALESCE(finalized_at, created_at)::date"


def _scalar(cur, sql: str, params=()):
    cur.execute(sql, params)
    row = cur.fetchone()
    return to_decimal(row["total"] if row else 0)


@router.get("/stats")
def dashboard_stats():
    today = date.today()
    with get_conn() as conn:
        with conn.cursor() as cur:
            today_sales = _scalar(
                cur,
                f"SELECT COALESCE(SUM(total_amount), 0) AS total FROM sales_invoices WHERE status = 'finalized' AND {DOC_DAY} = %s",
                (today,),
            )
            today_imports = _scalar(
                cur,
                f"SELECT COALESCE(SUM(total_amount), 0) AS total FROM import_invoices WHERE status = 'finalized' AND {DOC_DAY} = %s",
                (today,),
            )
            # Average finalized purchase price per product, falling back to the opening cost.
            stock_value = _scalar(
                cur,
                """
                SELECT COALESCE(SUM(
                  p.current_stock * COALESCE(
                    (SELECT AVG(ii.unit_price)
                     FROM import_items ii
                     JOIN import_invoices inv ON inv.id = ii.import_invoice_id
                     WHERE ii.product_id = p.id AND inv.status = 'finalized'),
                    p.opening_cost
                  )
                ), 0) AS total
                FROM products p
                WHERE p.current_stock > 0
                """,
            )
            receivables = _scalar(
                cur, "SELECT COALESCE(SUM(ledger_balance), 0) AS total FROM customers WHERE ledger_balance > 0"
            )
            payables = _scalar(
                cur, "SELECT COALESCE(SUM(ledger_balance), 0) AS total FROM suppliers WHERE ledger_balance > 0"
            )
            today_cash = _scalar(
                cur,
                f"""
                SELECT COALESCE(SUM(total_amount), 0) AS total
                FROM sales_invoices
                WHERE status = 'finalized' AND type = 'cash' AND {DOC_DAY} = %s
                """,
                (today,),
            )
            cash_sales = _scalar(
                cur,
                "SELECT COALESCE(SUM(total_amount), 0) AS total FROM sales_invoices WHERE status = 'finalized' AND type = 'cash'",
            )
            customer_payments = _scalar(
                cur, "SELECT COALESCE(SUM(amount), 0) AS total FROM payments WHERE type = 'customer'"
            )
    return {
        "today_sales": today_sales,
        "today_imports": today_imports,
        "stock_value": stock_value,
        "total_receivables": receivables,
        "total_payables": payables,
        "today_cash": today_cash,
        "cash_sales": cash_sales,
        "credit_outstanding": receivables,
        "customer_payments_received": customer_payments,
    }


@router.get("/daily")
def daily_report(date_: Optional[date] = Query(None, alias="date")):
    day = date_ or date.today()
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT s.id, s.invoice_no, s.customer_id, s.type, s.total_amount, s.discount_amount,
                       s.finalized_at, s.created_at, c.name AS customer_name
                FROM sales_invoices s
                LEFT JOIN customers c ON c.id = s.customer_id
                WHERE s.status = 'finalized' AND COALESCE(s.finalized_at, s.created_at)::date = %s
                ORDER BY s.created_at DESC
                """,
                (day,),
            )
            sales = cur.fetchall()
            cur.execute(
                """
                SELECT i.id, i.invoice_no, i.supplier_id, i.type, i.total_amount,
                       i.finalized_at, i.created_at, s.name AS supplier_name
                FROM import_invoices i
                LEFT JOIN suppliers s ON s.id = i.supplier_id
                WHERE i.status = 'finalized' AND COALESCE(i.finalized_at, i.created_at)::date = %s
                ORDER BY i.created_at DESC
                """,
                (day,),
            )
            imports = cur.fetchall()
            cur.execute(
                """
                SELECT p.id, p.type, p.partner_id, p.amount, p.method, p.reference_id, p.notes, p.created_at,
                       CASE WHEN p.type IN ('customer', 'customer_refund') THEN c.name ELSE s.name END AS partner_name
                FROM payments p
                LEFT JOIN customers c ON p.type IN ('customer', 'customer_refund') AND c.id = p.partner_id
                LEFT JOIN suppliers s ON p.type IN ('supplier', 'supplier_refund') AND s.id = p.partner_id
                WHERE p.created_at::date = %s
                ORDER BY p.created_at DESC
                """,
                (day,),
            )
            payments = cur.fetchall()
    return {"date": day, "sales": sales, "imports": imports, "payments": payments}


@router.get("/supplier/{supplier_id}")
def supplier_report(supplier_id: int):
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                "SELECT id, name, phone, currency, ledger_balance, created_at FROM suppliers WHERE id = %s",
                (supplier_id,),
            )
            supplier = cur.fetchone()
            if not supplier:
                raise NotFound("Supplier not found")
            cur.execute(
                """
                SELECT id, invoice_no, type, total_amount, status, finalized_at, created_at
                FROM import_invoices
                WHERE supplier_id = %s AND status = 'finalized'
                ORDER BY created_at DESC
                """,
                (supplier_id,),
            )
            invoices = cur.fetchall()
            cur.execute(
                """
                SELECT id, type, amount, method, reference_id, notes, created_at
                FROM payments
                WHERE type = 'supplier' AND partner_id = %s
                ORDER BY created_at DESC
                """,
                (supplier_id,),
            )
            return {"supplier": supplier, "invoices": invoices, "payments": cur.fetchall()}


@router.get("/customer/{customer_id}")
def customer_report(customer_id: int):
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                "SELECT id, name, phone, ledger_balance, created_at FROM customers WHERE id = %s",
                (customer_id,),
            )
            customer = cur.fetchone()
            if not customer:
                raise NotFound("Customer not found")
            cur.execute(
                """
                SELECT id, invoice_no, type, total_amount, discount_amount, status, finalized_at, created_at
                FROM sales_invoices
                WHERE customer_id = %s AND status = 'finalized'
                ORDER BY created_at DESC
                """,
                (customer_id,),
            )
            invoices = cur.fetchall()
            cur.execute(
                """
                SELECT id, type, amount, method, reference_id, notes, created_at
                FROM payments
                WHERE type = 'customer' AND partner_id = %s
                ORDER BY created_at DESC
                """,
                (customer_id,),
            )
            return {"customer": customer, "invoices": invoices, "payments": cur.fetchall()}
