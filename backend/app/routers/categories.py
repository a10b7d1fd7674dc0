from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from ..db import get_conn
from ..errors import NotFound

router = APIRouter(prefix="/categories", tags=["categories"])


class CategoryIn(BaseModel):
    name: str


def _clean_name(raw: str) -> str:
    name = (raw or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="Category name is required")
    return name


@router.post("")
def create_category(data: CategoryIn):
    name = _clean_name(data.name)
    with get_conn() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                cur.execute("SELECT id FROM categories WHERE LOWER(name) = LOWER(%s)", (name,))
                if cur.fetchone():
                    raise HTTPException(status_code=400, detail="Category already exists")
                cur.execute(
                    """
                    INSERT INTO categories (name)
                    VALUES (%s)
                    RETURNING id, name, created_at
                    """,
                    (name,),
                )
                return cur.fetchone()


@router.get("")
def list_categories():
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT id, name, created_at FROM categories ORDER BY name ASC")
            return cur.fetchall()


@router.put("/{category_id}")
def rename_category(category_id: int, data: CategoryIn):
    name = _clean_name(data.name)
    with get_conn() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                cur.execute("SELECT name FROM categories WHERE id = %s FOR UPDATE", (category_id,))
                old = cur.fetchone()
                if not old:
                    raise NotFound("Category not found")
                cur.execute(
                    "SELECT id FROM categories WHERE LOWER(name) = LOWER(%s) AND id <> %s",
                    (name, category_id),
                )
                if cur.fetchone():
                    raise HTTPException(status_code=400, detail="Category already exists")
                cur.execute(
                    """
                    UPDATE categories
                    SET name = %s
                    WHERE id = %s
                    RETURNING id, name, created_at
                    """,
                    (name, category_id),
                )
                row = cur.fetchone()
                # Products store the category by name.
                cur.execute("UPDATE products SET category = %s WHERE category = %s", (name, old["name"]))
                return row


@router.delete("/{category_id}")
def delete_category(category_id: int):
    with get_conn() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                cur.execute("SELECT name FROM categories WHERE id = %s FOR UPDATE", (category_id,))
                row = cur.fetchone()
                if not row:
                    raise NotFound("Category not found")
                cur.execute("SELECT COUNT(*) AS n FROM products WHERE category = %s", (row["name"],))
                used = int(cur.fetchone()["n"] or 0)
                if used:
                    raise HTTPException(
                        status_code=400,
                        detail=f"Cannot delete category: {used} product(s) are using it",
                    )
                cur.execute("DELETE FROM categories WHERE id = %s", (category_id,))
    return {"ok": True}
