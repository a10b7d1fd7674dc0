from datetime import date
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from ..db import get_conn
from ..errors import NotFound

router = APIRouter(prefix="/batches", tags=["batches"])

BATCH_COLUMNS = "pb.batch_id, pb.product_id, pb.batch_number, pb.expiry_date, pb.quantity, pb.import_id, pb.created_at"


class BatchIn(BaseModel):
    product_id: int
    batch_number: str
    expiry_date: Optional[date] = None
    quantity: int = Field(default=0, ge=0)
    import_id: Optional[int] = None


class BatchQuantityIn(BaseModel):
    quantity: int = Field(gt=0)


@router.get("/product/{product_id}")
def list_product_batches(product_id: int):
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                SELECT {BATCH_COLUMNS}
                FROM product_batches pb
                WHERE pb.product_id = %s AND pb.quantity > 0
                ORDER BY pb.expiry_date ASC NULLS LAST, pb.batch_id
                """,
                (product_id,),
            )
            return cur.fetchall()


@router.get("")
def list_batches():
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                SELECT {BATCH_COLUMNS}, p.name AS product_name
                FROM product_batches pb
                JOIN products p ON p.id = pb.product_id
                ORDER BY p.name, pb.expiry_date
                """
            )
            return cur.fetchall()


@router.get("/{batch_id}")
def get_batch(batch_id: int):
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                SELECT {BATCH_COLUMNS}, p.name AS product_name
                FROM product_batches pb
                JOIN products p ON p.id = pb.product_id
                WHERE pb.batch_id = %s
                """,
                (batch_id,),
            )
            row = cur.fetchone()
            if not row:
                raise NotFound("Batch not found")
            return row


@router.post("")
def upsert_batch(data: BatchIn):
    batch_number = (data.batch_number or "").strip()
    if not batch_number:
        raise HTTPException(status_code=400, detail="batch_number is required")
    with get_conn() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO product_batches (product_id, batch_number, expiry_date, quantity, import_id)
                    VALUES (%s, %s, %s, %s, %s)
                    ON CONFLICT (product_id, batch_number) DO UPDATE
                    SET quantity = product_batches.quantity + EXCLUDED.quantity,
                        expiry_date = COALESCE(EXCLUDED.expiry_date, product_batches.expiry_date)
                    RETURNING batch_id, product_id, batch_number, expiry_date, quantity, import_id, created_at
                    """,
                    (data.product_id, batch_number, data.expiry_date, data.quantity, data.import_id),
                )
                return cur.fetchone()


@router.put("/decrease/{batch_id}")
def decrease_batch(batch_id: int, data: BatchQuantityIn):
    with get_conn() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE product_batches
                    SET quantity = quantity - %s
                    WHERE batch_id = %s AND quantity >= %s
                    RETURNING batch_id, product_id, batch_number, expiry_date, quantity, import_id, created_at
                    """,
                    (data.quantity, batch_id, data.quantity),
                )
                row = cur.fetchone()
                if not row:
                    raise HTTPException(status_code=400, detail="Insufficient batch quantity")
                return row


@router.put("/increase/{batch_id}")
def increase_batch(batch_id: int, data: BatchQuantityIn):
    with get_conn() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE product_batches
                    SET quantity = quantity + %s
                    WHERE batch_id = %s
                    RETURNING batch_id, product_id, batch_number, expiry_date, quantity, import_id, created_at
                    """,
                    (data.quantity, batch_id),
                )
                row = cur.fetchone()
                if not row:
                    raise NotFound("Batch not found")
                return row
