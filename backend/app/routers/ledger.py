from fastapi import APIRouter

from ..db import get_conn
from ..errors import NotFound

router = APIRouter(prefix="/ledger", tags=["ledger"])

# Fixed identifiers per party type; never derived from request input.
PARTY_SOURCES = {
    "customer": {
        "party_table": "customers",
        "invoice_table": "sales_invoices",
        "invoice_party": "customer_id",
        "item_table": "sales_items",
        "item_invoice": "invoice_id",
        "extra_cols": "",
    },
    "supplier": {
        "party_table": "suppliers",
        "invoice_table": "import_invoices",
        "invoice_party": "supplier_id",
        "item_table": "import_items",
        "item_invoice": "import_invoice_id",
        "extra_cols": ", x.currency",
    },
}


def _list_party_ledgers(party_type: str):
    src = PARTY_SOURCES[party_type]
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                SELECT x.id, x.name, x.phone{src["extra_cols"]},
                       COUNT(i.id) AS total_invoices,
                       COALESCE(SUM(i.total_amount), 0) AS total_amount,
                       COALESCE(SUM(CASE WHEN i.type = 'cash' THEN i.total_amount ELSE 0 END), 0) AS total_cash,
                       COALESCE(SUM(CASE WHEN i.type = 'credit' THEN i.total_amount ELSE 0 END), 0) AS total_credit,
                       COALESCE((
                         SELECT SUM(p.amount) FROM payments p
                         WHERE p.type = %s AND p.partner_id = x.id
                       ), 0) AS total_paid,
                       x.ledger_balance AS balance
                FROM {src["party_table"]} x
                LEFT JOIN {src["invoice_table"]} i
                  ON i.{src["invoice_party"]} = x.id AND i.status = 'finalized'
                GROUP BY x.id
                ORDER BY x.name
                """,
                (party_type,),
            )
            return cur.fetchall()


def _party_ledger(party_type: str, party_id: int) -> dict:
    src = PARTY_SOURCES[party_type]
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                SELECT x.id, x.name, x.phone{src["extra_cols"]}, x.ledger_balance
                FROM {src["party_table"]} x
                WHERE x.id = %s
                """,
                (party_id,),
            )
            party = cur.fetchone()
            if not party:
                raise NotFound(f"{party_type.capitalize()} not found")

            cur.execute(
                f"""
                SELECT i.id, i.invoice_no, i.created_at AS date, i.type, i.status, i.total_amount,
                       (SELECT COUNT(*) FROM {src["item_table"]} it WHERE it.{src["item_invoice"]} = i.id) AS items_count
                FROM {src["invoice_table"]} i
                WHERE i.{src["invoice_party"]} = %s
                ORDER BY i.created_at DESC
                """,
                (party_id,),
            )
            invoices = cur.fetchall()

            cur.execute(
                """
                SELECT id, type, amount, method, reference_id, notes, created_at
                FROM payments
                WHERE type IN (%s, %s) AND partner_id = %s
                ORDER BY created_at DESC
                """,
                (party_type, f"{party_type}_refund", party_id),
            )
            payments = cur.fetchall()

            cur.execute(
                """
                SELECT id, return_no, invoice_id, total_amount, reason, refund_type, created_at
                FROM returns
                WHERE return_type = %s AND party_id = %s
                ORDER BY created_at DESC
                """,
                (party_type, party_id),
            )
            returns = cur.fetchall()

    finalized = [i for i in invoices if i["status"] == "finalized"]
    summary = {
        "total_invoices": len(finalized),
        "total_amount": sum((i["total_amount"] or 0) for i in finalized),
        "total_cash": sum((i["total_amount"] or 0) for i in finalized if i["type"] == "cash"),
        "total_credit": sum((i["total_amount"] or 0) for i in finalized if i["type"] == "credit"),
        "total_paid": sum((p["amount"] or 0) for p in payments if p["type"] == party_type),
        "total_returns": sum((r["total_amount"] or 0) for r in returns),
        "balance": party["ledger_balance"],
    }
    return {party_type: party, "invoices": invoices, "payments": payments, "returns": returns, "summary": summary}


@router.get("/customers")
def list_customer_ledgers():
    return _list_party_ledgers("customer")


@router.get("/customer/{customer_id}")
def customer_ledger(customer_id: int):
    return _party_ledger("customer", customer_id)


@router.get("/suppliers")
def list_supplier_ledgers():
    return _list_party_ledgers("supplier")


@router.get("/supplier/{supplier_id}")
def supplier_ledger(supplier_id: int):
    return _party_ledger("supplier", supplier_id)
