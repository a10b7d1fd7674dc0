from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from ..db import get_conn
from ..errors import NotFound
from ..validation import CurrencyCode

router = APIRouter(prefix="/suppliers", tags=["suppliers"])

SUPPLIER_COLUMNS = "id, name, phone, currency, ledger_balance, created_at"


class SupplierIn(BaseModel):
    name: str
    phone: Optional[str] = None
    currency: CurrencyCode = "PKR"


@router.post("")
def create_supplier(data: SupplierIn):
    name = (data.name or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="name is required")
    with get_conn() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    INSERT INTO suppliers (name, phone, currency)
                    VALUES (%s, %s, %s)
                    RETURNING {SUPPLIER_COLUMNS}
                    """,
                    (name, data.phone, data.currency),
                )
                return cur.fetchone()


@router.get("")
def list_suppliers():
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(f"SELECT {SUPPLIER_COLUMNS} FROM suppliers ORDER BY id ASC")
            return cur.fetchall()


@router.get("/{supplier_id}")
def get_supplier(supplier_id: int):
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(f"SELECT {SUPPLIER_COLUMNS} FROM suppliers WHERE id = %s", (supplier_id,))
            row = cur.fetchone()
            if not row:
                raise NotFound("Supplier not found")
            return row


@router.put("/{supplier_id}")
def update_supplier(supplier_id: int, data: SupplierIn):
    name = (data.name or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="name is required")
    with get_conn() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                # ledger_balance is owned by finalization, payments and returns.
                cur.execute(
                    f"""
                    UPDATE suppliers
                    SET name = %s, phone = %s, currency = %s
                    WHERE id = %s
                    RETURNING {SUPPLIER_COLUMNS}
                    """,
                    (name, data.phone, data.currency, supplier_id),
                )
                row = cur.fetchone()
                if not row:
                    raise NotFound("Supplier not found")
                return row


@router.delete("/{supplier_id}")
def delete_supplier(supplier_id: int):
    with get_conn() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                cur.execute("DELETE FROM suppliers WHERE id = %s RETURNING id", (supplier_id,))
                if not cur.fetchone():
                    raise NotFound("Supplier not found")
    return {"ok": True}
