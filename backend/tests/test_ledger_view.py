from decimal import Decimal

import pytest
from fastapi import HTTPException

import backend.app.routers.ledger as ledger_router


class _DummyCursor:
    def __init__(self, results):
        self.results = list(results)
        self.executed = []
        self._rows = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def execute(self, sql, params=None):
        self.executed.append((" ".join(sql.split()), params))
        self._rows = self.results.pop(0) if self.results else []

    def fetchone(self):
        return self._rows[0] if self._rows else None

    def fetchall(self):
        return list(self._rows)


class _DummyConn:
    def __init__(self, results):
        self.cur = _DummyCursor(results)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def cursor(self):
        return self.cur


def test_customer_ledger_summary_counts_finalized_only(monkeypatch):
    party = [{"id": 1, "name": "Ali", "phone": None, "ledger_balance": Decimal("120.00")}]
    invoices = [
        {"id": 1, "status": "finalized", "type": "credit", "total_amount": Decimal("200.00")},
        {"id": 2, "status": "finalized", "type": "cash", "total_amount": Decimal("50.00")},
        {"id": 3, "status": "draft", "type": "credit", "total_amount": Decimal("999.00")},
    ]
    payments = [
        {"id": 1, "type": "customer", "amount": Decimal("60.00")},
        {"id": 2, "type": "customer_refund", "amount": Decimal("10.00")},
    ]
    returns = [{"id": 1, "total_amount": Decimal("20.00")}]
    conn = _DummyConn([party, invoices, payments, returns])
    monkeypatch.setattr(ledger_router, "get_conn", lambda: conn)

    out = ledger_router.customer_ledger(1)

    assert out["customer"]["name"] == "Ali"
    assert out["summary"] == {
        "total_invoices": 2,
        "total_amount": Decimal("250.00"),
        "total_cash": Decimal("50.00"),
        "total_credit": Decimal("200.00"),
        "total_paid": Decimal("60.00"),
        "total_returns": Decimal("20.00"),
        "balance": Decimal("120.00"),
    }
    assert conn.cur.executed[2][1] == ("customer", "customer_refund", 1)


def test_supplier_ledger_missing_supplier(monkeypatch):
    conn = _DummyConn([[]])
    monkeypatch.setattr(ledger_router, "get_conn", lambda: conn)
    with pytest.raises(HTTPException) as e:
        ledger_router.supplier_ledger(9)
    assert e.value.status_code == 404
    assert e.value.detail == "Supplier not found"
    assert "FROM suppliers x" in conn.cur.executed[0][0]
