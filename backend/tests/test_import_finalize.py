from datetime import date
from decimal import Decimal

import pytest
from fastapi import HTTPException

import backend.app.routers.imports as imports_router
from backend.tests.fake_store import FakeStore, patch_conn


def test_credit_import_adds_stock_creates_batch_and_raises_payable(monkeypatch):
    store = FakeStore()
    p = store.add_product("Herbicide 5L", stock=2)
    s = store.add_supplier(balance="100.00")
    inv = store.add_import_invoice(
        supplier_id=s["id"], type="credit", items=[(p["id"], 10, "40.00", "H-2026-01")]
    )
    patch_conn(monkeypatch, imports_router, store)

    out = imports_router.finalize_import(inv["id"])

    assert out["total_amount"] == Decimal("400.00")
    assert out["supplier_balance"] == Decimal("500.00")
    assert store.stock(p["id"]) == 12
    batches = store.rows("product_batches")
    assert len(batches) == 1
    assert batches[0]["batch_number"] == "H-2026-01"
    assert batches[0]["quantity"] == 10
    assert batches[0]["import_id"] == inv["id"]
    item = store.rows("import_items")[0]
    assert item["batch_id"] == batches[0]["batch_id"]
    move = store.rows("stock_movements")[0]
    assert (move["type"], move["reference_type"], move["quantity"]) == ("in", "import", 10)
    assert store.tables["import_invoices"][inv["id"]]["status"] == "finalized"


def test_cash_import_leaves_supplier_balance(monkeypatch):
    store = FakeStore()
    p = store.add_product(stock=0)
    s = store.add_supplier(balance="75.00")
    inv = store.add_import_invoice(supplier_id=s["id"], type="cash", items=[(p["id"], 4, "2.50")])
    patch_conn(monkeypatch, imports_router, store)

    out = imports_router.finalize_import(inv["id"])

    assert out["supplier_balance"] is None
    assert store.balance("suppliers", s["id"]) == Decimal("75.00")
    assert store.stock(p["id"]) == 4
    assert store.rows("product_batches") == []


def test_import_into_existing_batch_accumulates(monkeypatch):
    store = FakeStore()
    p = store.add_product(stock=5)
    b = store.add_batch(p["id"], "LOT-1", quantity=5)
    inv = store.add_import_invoice(items=[(p["id"], 3, "1.00", "LOT-1")])
    store.tables["import_items"][1]["expiry_date"] = date(2027, 6, 30)
    patch_conn(monkeypatch, imports_router, store)

    imports_router.finalize_import(inv["id"])

    assert len(store.rows("product_batches")) == 1
    assert store.tables["product_batches"][b["batch_id"]]["quantity"] == 8
    assert store.tables["product_batches"][b["batch_id"]]["expiry_date"] == date(2027, 6, 30)
    assert store.stock(p["id"]) == 8


def test_import_finalize_twice_is_rejected(monkeypatch):
    store = FakeStore()
    p = store.add_product(stock=0)
    inv = store.add_import_invoice(items=[(p["id"], 1, "1.00")])
    patch_conn(monkeypatch, imports_router, store)

    imports_router.finalize_import(inv["id"])
    with pytest.raises(HTTPException) as e:
        imports_router.finalize_import(inv["id"])
    assert e.value.detail == "Invoice already finalized"
    assert store.stock(p["id"]) == 1


def test_import_with_unknown_product_rolls_back(monkeypatch):
    store = FakeStore()
    s = store.add_supplier()
    inv = store.add_import_invoice(supplier_id=s["id"], type="credit", items=[(99, 1, "1.00")])
    patch_conn(monkeypatch, imports_router, store)

    with pytest.raises(HTTPException) as e:
        imports_router.finalize_import(inv["id"])
    assert e.value.status_code == 404
    assert store.balance("suppliers", s["id"]) == Decimal("0")
    assert store.tables["import_invoices"][inv["id"]]["status"] == "draft"
