from decimal import Decimal

import pytest
from fastapi import HTTPException

import backend.app.routers.payments as payments_router
from backend.app.ledger import record_payment
from backend.app.routers.payments import CustomerPaymentIn, PaymentIn, SupplierPaymentIn
from backend.tests.fake_store import FakeCursor, FakeStore, patch_conn


def test_customer_payment_reduces_receivable(monkeypatch):
    store = FakeStore()
    c = store.add_customer(balance="1000.00")
    patch_conn(monkeypatch, payments_router, store)

    out = payments_router.create_payment(PaymentIn(type="customer", partner_id=c["id"], amount=300, method="Bank"))

    assert out["ledger_balance"] == Decimal("700.00")
    assert store.balance("customers", c["id"]) == Decimal("700.00")
    (pay,) = store.rows("payments")
    assert pay["type"] == "customer"
    assert pay["method"] == "bank"
    assert pay["amount"] == Decimal("300.00")


def test_overpayment_leaves_negative_balance(monkeypatch):
    store = FakeStore()
    s = store.add_supplier(balance="50.00")
    patch_conn(monkeypatch, payments_router, store)

    out = payments_router.create_supplier_payment(SupplierPaymentIn(supplier_id=s["id"], amount=80))

    assert out["ledger_balance"] == Decimal("-30.00")
    assert store.rows("payments")[0]["type"] == "supplier"
    assert store.rows("payments")[0]["method"] == "cash"


def test_unknown_partner_is_404_without_payment_row(monkeypatch):
    store = FakeStore()
    patch_conn(monkeypatch, payments_router, store)

    with pytest.raises(HTTPException) as e:
        payments_router.create_cash_received(CustomerPaymentIn(customer_id=7, amount=10))
    assert e.value.status_code == 404
    assert store.rows("payments") == []


def test_credit_voucher_uses_its_own_method(monkeypatch):
    store = FakeStore()
    c = store.add_customer(balance="20.00")
    patch_conn(monkeypatch, payments_router, store)

    payments_router.create_credit_voucher(CustomerPaymentIn(customer_id=c["id"], amount=5, notes="goodwill"))

    (pay,) = store.rows("payments")
    assert (pay["type"], pay["method"], pay["notes"]) == ("customer", "credit_voucher", "goodwill")
    assert store.balance("customers", c["id"]) == Decimal("15.00")


def test_record_payment_rejects_non_positive_amount():
    store = FakeStore()
    c = store.add_customer(balance="20.00")
    with pytest.raises(HTTPException) as e:
        record_payment(FakeCursor(store), party_type="customer", partner_id=c["id"], amount="0.001")
    assert e.value.status_code == 400
    assert store.executed == []


def test_payment_model_rejects_zero():
    with pytest.raises(Exception):
        PaymentIn(type="customer", partner_id=1, amount=0)
