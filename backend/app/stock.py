from __future__ import annotations

from typing import Iterable, Optional

from fastapi import HTTPException

from .errors import InsufficientStock, NotFound


def sum_quantities(lines: Iterable[dict], key: str) -> dict[int, int]:
    out: dict[int, int] = {}
    for l in lines:
        k = l.get(key)
        if k is None:
            continue
        out[int(k)] = out.get(int(k), 0) + int(l["quantity"])
    return out


def lock_products(cur, product_ids: Iterable[int]) -> dict[int, dict]:
    # Always lock in id order; concurrent finalizations then queue instead of deadlocking.
    ids = sorted({int(p) for p in product_ids})
    if not ids:
        return {}
    cur.execute(
        """
        SELECT id, name, current_stock
        FROM products
        WHERE id = ANY(%s)
        ORDER BY id
        FOR UPDATE
        """,
        (ids,),
    )
    rows = {int(r["id"]): r for r in cur.fetchall()}
    missing = [i for i in ids if i not in rows]
    if missing:
        raise NotFound(f"product {missing[0]} not found")
    return rows


def assert_stock_available(products: dict[int, dict], required: dict[int, int]):
    for pid, qty in sorted(required.items()):
        row = products[pid]
        available = int(row.get("current_stock") or 0)
        if available < qty:
            raise InsufficientStock(
                f"Insufficient stock for {row.get('name') or pid}. Available: {available}, Required: {qty}"
            )


def lock_batches(cur, batch_ids: Iterable[int]) -> dict[int, dict]:
    ids = sorted({int(b) for b in batch_ids})
    if not ids:
        return {}
    cur.execute(
        """
        SELECT batch_id, product_id, batch_number, quantity
        FROM product_batches
        WHERE batch_id = ANY(%s)
        ORDER BY batch_id
        FOR UPDATE
        """,
        (ids,),
    )
    rows = {int(r["batch_id"]): r for r in cur.fetchall()}
    missing = [i for i in ids if i not in rows]
    if missing:
        raise NotFound(f"batch {missing[0]} not found")
    return rows


def assert_batches_available(batches: dict[int, dict], required: dict[int, int], lines: Iterable[dict]):
    for l in lines:
        bid = l.get("batch_id")
        if bid is None:
            continue
        if int(batches[int(bid)]["product_id"]) != int(l["product_id"]):
            raise HTTPException(status_code=400, detail=f"batch {bid} does not belong to product {l['product_id']}")
    for bid, qty in sorted(required.items()):
        b = batches[bid]
        available = int(b.get("quantity") or 0)
        if available < qty:
            raise InsufficientStock(
                f"Insufficient stock in batch {b.get('batch_number') or bid}. Available: {available}, Required: {qty}"
            )


def apply_stock_delta(
    cur,
    *,
    product_id: int,
    delta: int,
    movement_type: str,
    reference_type: str,
    reference_id: int,
    batch_id: Optional[int] = None,
):
    cur.execute(
        """
        UPDATE products
        SET current_stock = current_stock + %s
        WHERE id = %s
        """,
        (delta, product_id),
    )
    # Movement quantities are stored positive; the type carries the direction.
    cur.execute(
        """
        INSERT INTO stock_movements (product_id, batch_id, quantity, type, reference_type, reference_id)
        VALUES (%s, %s, %s, %s, %s, %s)
        """,
        (product_id, batch_id, abs(int(delta)), movement_type, reference_type, reference_id),
    )


def adjust_batch_quantity(cur, batch_id: int, delta: int):
    cur.execute(
        """
        UPDATE product_batches
        SET quantity = quantity + %s
        WHERE batch_id = %s
        """,
        (delta, batch_id),
    )


def get_or_create_batch(
    cur,
    *,
    product_id: int,
    batch_number: str,
    expiry_date=None,
    import_id: Optional[int] = None,
) -> int:
    cur.execute(
        """
        SELECT batch_id
        FROM product_batches
        WHERE product_id = %s AND batch_number = %s
        FOR UPDATE
        """,
        (product_id, batch_number),
    )
    row = cur.fetchone()
    if row:
        if expiry_date is not None:
            cur.execute(
                """
                UPDATE product_batches
                SET expiry_date = %s
                WHERE batch_id = %s
                """,
                (expiry_date, row["batch_id"]),
            )
        return int(row["batch_id"])
    cur.execute(
        """
        INSERT INTO product_batches (product_id, batch_number, expiry_date, quantity, import_id)
        VALUES (%s, %s, %s, 0, %s)
        RETURNING batch_id
        """,
        (product_id, batch_number, expiry_date, import_id),
    )
    return int(cur.fetchone()["batch_id"])
