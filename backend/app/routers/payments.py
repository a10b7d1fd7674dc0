from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from ..db import get_conn
from ..ledger import record_payment
from ..validation import PartyType, PaymentMethod

router = APIRouter(prefix="/payments", tags=["payments"])

PAYMENT_COLUMNS = "p.id, p.type, p.reference_id, p.partner_id, p.amount, p.method, p.notes, p.created_at"


class PaymentIn(BaseModel):
    type: PartyType
    partner_id: int
    amount: float = Field(gt=0)
    method: PaymentMethod = "cash"
    reference_id: Optional[int] = None
    notes: Optional[str] = None


class CustomerPaymentIn(BaseModel):
    customer_id: int
    amount: float = Field(gt=0)
    reference: Optional[int] = None
    notes: Optional[str] = None


class SupplierPaymentIn(BaseModel):
    supplier_id: int
    amount: float = Field(gt=0)
    reference: Optional[int] = None
    notes: Optional[str] = None


def _record(party_type: str, partner_id: int, amount, method: str, reference_id=None, notes=None) -> dict:
    with get_conn() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                return record_payment(
                    cur,
                    party_type=party_type,
                    partner_id=partner_id,
                    amount=amount,
                    method=method,
                    reference_id=reference_id,
                    notes=notes,
                )


def _list(party_type: str, method: Optional[str] = None, partner_id: Optional[int] = None):
    table, name_col = ("customers", "customer_name") if party_type == "customer" else ("suppliers", "supplier_name")
    sql = f"""
        SELECT {PAYMENT_COLUMNS}, x.name AS {name_col}
        FROM payments p
        JOIN {table} x ON x.id = p.partner_id
        WHERE p.type = %s
    """
    params: list = [party_type]
    if method:
        sql += " AND p.method = %s"
        params.append(method)
    if partner_id is not None:
        sql += " AND p.partner_id = %s"
        params.append(partner_id)
    sql += " ORDER BY p.created_at DESC"
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(sql, params)
            return cur.fetchall()


@router.post("")
def create_payment(data: PaymentIn):
    return _record(data.type, data.partner_id, data.amount, data.method, data.reference_id, data.notes)


@router.get("")
def list_payments():
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                SELECT {PAYMENT_COLUMNS},
                       CASE WHEN p.type IN ('customer', 'customer_refund') THEN c.name ELSE s.name END AS partner_name
                FROM payments p
                LEFT JOIN customers c ON p.type IN ('customer', 'customer_refund') AND c.id = p.partner_id
                LEFT JOIN suppliers s ON p.type IN ('supplier', 'supplier_refund') AND s.id = p.partner_id
                ORDER BY p.created_at DESC
                """
            )
            return cur.fetchall()


@router.get("/customer/{customer_id}")
def list_customer_payments(customer_id: int):
    return _list("customer", partner_id=customer_id)


@router.get("/supplier/{supplier_id}")
def list_supplier_payments(supplier_id: int):
    return _list("supplier", partner_id=supplier_id)


@router.get("/supplier-payments")
def list_supplier_cash_payments():
    return _list("supplier")


@router.post("/supplier-payment")
def create_supplier_payment(data: SupplierPaymentIn):
    return _record("supplier", data.supplier_id, data.amount, "cash", data.reference, data.notes)


@router.get("/credit-vouchers")
def list_credit_vouchers():
    return _list("customer", method="credit_voucher")


@router.post("/credit-voucher")
def create_credit_voucher(data: CustomerPaymentIn):
    return _record("customer", data.customer_id, data.amount, "credit_voucher", data.reference, data.notes)


@router.get("/cash-received")
def list_cash_received():
    return _list("customer", method="cash")


@router.post("/cash-received")
def create_cash_received(data: CustomerPaymentIn):
    return _record("customer", data.customer_id, data.amount, "cash", data.reference, data.notes)
