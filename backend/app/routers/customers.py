from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from ..db import get_conn
from ..errors import NotFound

router = APIRouter(prefix="/customers", tags=["customers"])

CUSTOMER_COLUMNS = "id, name, phone, ledger_balance, created_at"


class CustomerIn(BaseModel):
    name: str
    phone: Optional[str] = None


@router.post("")
def create_customer(data: CustomerIn):
    name = (data.name or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="name is required")
    with get_conn() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    INSERT INTO customers (name, phone)
                    VALUES (%s, %s)
                    RETURNING {CUSTOMER_COLUMNS}
                    """,
                    (name, data.phone),
                )
                return cur.fetchone()


@router.get("")
def list_customers():
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(f"SELECT {CUSTOMER_COLUMNS} FROM customers ORDER BY id ASC")
            return cur.fetchall()


@router.get("/{customer_id}")
def get_customer(customer_id: int):
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(f"SELECT {CUSTOMER_COLUMNS} FROM customers WHERE id = %s", (customer_id,))
            row = cur.fetchone()
            if not row:
                raise NotFound("Customer not found")
            return row


@router.put("/{customer_id}")
def update_customer(customer_id: int, data: CustomerIn):
    name = (data.name or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="name is required")
    with get_conn() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    UPDATE customers
                    SET name = %s, phone = %s
                    WHERE id = %s
                    RETURNING {CUSTOMER_COLUMNS}
                    """,
                    (name, data.phone, customer_id),
                )
                row = cur.fetchone()
                if not row:
                    raise NotFound("Customer not found")
                return row


@router.delete("/{customer_id}")
def delete_customer(customer_id: int):
    with get_conn() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                cur.execute("DELETE FROM customers WHERE id = %s RETURNING id", (customer_id,))
                if not cur.fetchone():
                    raise NotFound("Customer not found")
    return {"ok": True}
