from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from ..db import get_conn
from ..errors import NotFound

router = APIRouter(prefix="/products", tags=["products"])

PRODUCT_COLUMNS = "id, name, category, unit, opening_stock, opening_cost, current_stock, created_at"


class ProductIn(BaseModel):
    name: str
    category: Optional[str] = None
    unit: Optional[str] = None
    opening_stock: int = Field(default=0, ge=0)
    opening_cost: float = Field(default=0, ge=0)


class ProductUpdateIn(BaseModel):
    name: str
    category: Optional[str] = None
    unit: Optional[str] = None


@router.post("")
def create_product(data: ProductIn):
    name = (data.name or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="name is required")
    with get_conn() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                # current_stock starts at the opening stock; only finalizations and returns move it after that.
                cur.execute(
                    f"""
                    INSERT INTO products (name, category, unit, opening_stock, opening_cost, current_stock)
                    VALUES (%s, %s, %s, %s, %s, %s)
                    RETURNING {PRODUCT_COLUMNS}
                    """,
                    (name, data.category, data.unit, data.opening_stock, data.opening_cost, data.opening_stock),
                )
                return cur.fetchone()


@router.get("")
def list_products():
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(f"SELECT {PRODUCT_COLUMNS} FROM products ORDER BY id ASC")
            return cur.fetchall()


@router.get("/{product_id}")
def get_product(product_id: int):
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(f"SELECT {PRODUCT_COLUMNS} FROM products WHERE id = %s", (product_id,))
            row = cur.fetchone()
            if not row:
                raise NotFound("Product not found")
            return row


@router.put("/{product_id}")
def update_product(product_id: int, data: ProductUpdateIn):
    name = (data.name or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="name is required")
    with get_conn() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    UPDATE products
                    SET name = %s, category = %s, unit = %s
                    WHERE id = %s
                    RETURNING {PRODUCT_COLUMNS}
                    """,
                    (name, data.category, data.unit, product_id),
                )
                row = cur.fetchone()
                if not row:
                    raise NotFound("Product not found")
                return row


@router.delete("/{product_id}")
def delete_product(product_id: int):
    with get_conn() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                for table, label in (
                    ("import_items", "import invoices"),
                    ("sales_items", "sales invoices"),
                    ("stock_movements", "stock movements"),
                ):
                    cur.execute(f"SELECT COUNT(*) AS n FROM {table} WHERE product_id = %s", (product_id,))
                    if int(cur.fetchone()["n"] or 0) > 0:
                        raise HTTPException(status_code=400, detail=f"Cannot delete product: it is used in {label}")
                cur.execute("DELETE FROM products WHERE id = %s RETURNING id", (product_id,))
                if not cur.fetchone():
                    raise NotFound("Product not found")
    return {"ok": True}
