from decimal import Decimal

import pytest
from fastapi import HTTPException

import backend.app.routers.sales as sales_router
from backend.app.routers.sales import CompleteSaleIn, SalesItemIn
from backend.tests.fake_store import FakeStore, patch_conn


def test_cash_sale_finalize_moves_stock_but_not_ledger(monkeypatch):
    store = FakeStore()
    p = store.add_product("Sprayer 16L", stock=10)
    c = store.add_customer(balance="250.00")
    inv = store.add_sales_invoice(customer_id=c["id"], type="cash", items=[(p["id"], 3, "50.00")])
    patch_conn(monkeypatch, sales_router, store)

    out = sales_router.finalize_sale(inv["id"])

    assert out["status"] == "finalized"
    assert out["total_amount"] == Decimal("150.00")
    assert out["customer_balance"] is None
    assert store.stock(p["id"]) == 7
    assert store.balance("customers", c["id"]) == Decimal("250.00")
    moves = store.rows("stock_movements")
    assert [(m["product_id"], m["quantity"], m["type"], m["reference_type"], m["reference_id"]) for m in moves] == [
        (p["id"], 3, "out", "sale", inv["id"])
    ]
    assert store.tables["sales_invoices"][inv["id"]]["status"] == "finalized"


def test_credit_sale_finalize_applies_discount_and_raises_receivable(monkeypatch):
    store = FakeStore()
    p = store.add_product("Nozzle", stock=20)
    c = store.add_customer(balance="50.00")
    inv = store.add_sales_invoice(
        customer_id=c["id"], type="credit", discount_percent=10, items=[(p["id"], 4, "50.00")]
    )
    patch_conn(monkeypatch, sales_router, store)

    out = sales_router.finalize_sale(inv["id"])

    assert out["subtotal"] == Decimal("200.00")
    assert out["discount_amount"] == Decimal("20.00")
    assert out["total_amount"] == Decimal("180.00")
    assert out["customer_balance"] == Decimal("230.00")
    assert store.balance("customers", c["id"]) == Decimal("230.00")
    row = store.tables["sales_invoices"][inv["id"]]
    assert row["total_amount"] == Decimal("180.00")
    assert row["discount_amount"] == Decimal("20.00")


def test_finalize_with_one_short_line_changes_nothing(monkeypatch):
    store = FakeStore()
    ok = store.add_product("Hose", stock=10)
    short = store.add_product("Sprayer", stock=1)
    c = store.add_customer()
    inv = store.add_sales_invoice(
        customer_id=c["id"], type="credit", items=[(ok["id"], 2, "10.00"), (short["id"], 2, "99.00")]
    )
    patch_conn(monkeypatch, sales_router, store)

    with pytest.raises(HTTPException) as e:
        sales_router.finalize_sale(inv["id"])
    assert e.value.status_code == 400
    assert e.value.detail == "Insufficient stock for Sprayer. Available: 1, Required: 2"

    assert store.stock(ok["id"]) == 10
    assert store.stock(short["id"]) == 1
    assert store.rows("stock_movements") == []
    assert store.balance("customers", c["id"]) == Decimal("0")
    assert store.tables["sales_invoices"][inv["id"]]["status"] == "draft"


def test_duplicate_lines_are_checked_against_combined_quantity(monkeypatch):
    store = FakeStore()
    p = store.add_product("Pump", stock=5)
    inv = store.add_sales_invoice(items=[(p["id"], 3, "1.00"), (p["id"], 3, "1.00")])
    patch_conn(monkeypatch, sales_router, store)

    with pytest.raises(HTTPException) as e:
        sales_router.finalize_sale(inv["id"])
    assert e.value.detail == "Insufficient stock for Pump. Available: 5, Required: 6"
    assert store.stock(p["id"]) == 5


def test_finalize_twice_is_rejected(monkeypatch):
    store = FakeStore()
    p = store.add_product(stock=5)
    inv = store.add_sales_invoice(items=[(p["id"], 1, "5.00")])
    patch_conn(monkeypatch, sales_router, store)

    sales_router.finalize_sale(inv["id"])
    with pytest.raises(HTTPException) as e:
        sales_router.finalize_sale(inv["id"])
    assert e.value.status_code == 400
    assert e.value.detail == "Invoice already finalized"
    assert store.stock(p["id"]) == 4
    assert len(store.rows("stock_movements")) == 1


def test_finalize_without_items_or_customer(monkeypatch):
    store = FakeStore()
    empty = store.add_sales_invoice()
    p = store.add_product(stock=5)
    credit = store.add_sales_invoice(type="credit", items=[(p["id"], 1, "5.00")])
    patch_conn(monkeypatch, sales_router, store)

    with pytest.raises(HTTPException) as e:
        sales_router.finalize_sale(empty["id"])
    assert e.value.detail == "Invoice has no items"

    with pytest.raises(HTTPException) as e:
        sales_router.finalize_sale(credit["id"])
    assert e.value.status_code == 400
    assert store.stock(p["id"]) == 5


def test_finalize_unknown_invoice_is_404(monkeypatch):
    store = FakeStore()
    patch_conn(monkeypatch, sales_router, store)
    with pytest.raises(HTTPException) as e:
        sales_router.finalize_sale(42)
    assert e.value.status_code == 404


def test_batch_lines_draw_down_the_batch(monkeypatch):
    store = FakeStore()
    p = store.add_product("Fungicide 1L", stock=8)
    b = store.add_batch(p["id"], "LOT-7", quantity=5)
    inv = store.add_sales_invoice(items=[(p["id"], 4, "12.50", b["batch_id"])])
    patch_conn(monkeypatch, sales_router, store)

    sales_router.finalize_sale(inv["id"])

    assert store.tables["product_batches"][b["batch_id"]]["quantity"] == 1
    assert store.stock(p["id"]) == 4
    assert store.rows("stock_movements")[0]["batch_id"] == b["batch_id"]


def test_batch_shortage_blocks_finalize(monkeypatch):
    store = FakeStore()
    p = store.add_product("Fungicide 1L", stock=50)
    b = store.add_batch(p["id"], "LOT-7", quantity=2)
    inv = store.add_sales_invoice(items=[(p["id"], 3, "12.50", b["batch_id"])])
    patch_conn(monkeypatch, sales_router, store)

    with pytest.raises(HTTPException) as e:
        sales_router.finalize_sale(inv["id"])
    assert e.value.detail == "Insufficient stock in batch LOT-7. Available: 2, Required: 3"
    assert store.stock(p["id"]) == 50
    assert store.tables["product_batches"][b["batch_id"]]["quantity"] == 2


def test_batch_of_another_product_is_rejected(monkeypatch):
    store = FakeStore()
    p1 = store.add_product("A", stock=5)
    p2 = store.add_product("B", stock=5)
    b = store.add_batch(p2["id"], "X", quantity=5)
    inv = store.add_sales_invoice(items=[(p1["id"], 1, "1.00", b["batch_id"])])
    patch_conn(monkeypatch, sales_router, store)

    with pytest.raises(HTTPException) as e:
        sales_router.finalize_sale(inv["id"])
    assert e.value.status_code == 400
    assert "does not belong" in e.value.detail


def test_create_complete_sale_posts_in_one_go(monkeypatch):
    store = FakeStore()
    p = store.add_product("Sprayer", stock=3)
    patch_conn(monkeypatch, sales_router, store)

    out = sales_router.create_complete_sale(
        CompleteSaleIn(items=[SalesItemIn(product_id=p["id"], quantity=2, unit_price=75)])
    )

    assert out["invoice_no"] == "INV-00001"
    assert out["total_amount"] == Decimal("150.00")
    assert store.stock(p["id"]) == 1


def test_create_complete_sale_rolls_back_on_shortage(monkeypatch):
    store = FakeStore()
    p = store.add_product("Sprayer", stock=1)
    patch_conn(monkeypatch, sales_router, store)

    with pytest.raises(HTTPException) as e:
        sales_router.create_complete_sale(
            CompleteSaleIn(items=[SalesItemIn(product_id=p["id"], quantity=2, unit_price=75)])
        )
    assert e.value.status_code == 400
    assert store.rows("sales_invoices") == []
    assert store.rows("sales_items") == []
    assert store.stock(p["id"]) == 1
