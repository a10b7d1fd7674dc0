from datetime import date

from backend.app.doc_numbers import (
    format_import_invoice_no,
    format_return_no,
    format_sales_invoice_no,
    next_import_invoice_no,
    next_return_no,
)


class _DummyCursor:
    def __init__(self, row):
        self.row = row
        self.executed = []

    def execute(self, sql, params=None):
        self.executed.append((sql, params))

    def fetchone(self):
        return self.row


def test_formats():
    assert format_sales_invoice_no(7) == "INV-00007"
    assert format_import_invoice_no(date(2026, 3, 14), 12) == "IMP-20260314-0012"
    assert format_return_no("customer", 3) == "CRET-00003"
    assert format_return_no("supplier", 123456) == "SRET-123456"


def test_import_number_continues_after_highest_of_the_day():
    cur = _DummyCursor({"invoice_no": "IMP-20260314-0007"})
    assert next_import_invoice_no(cur, date(2026, 3, 14)) == "IMP-20260314-0008"
    assert cur.executed[0][1] == ("IMP-20260314-%",)


def test_import_number_restarts_each_day():
    assert next_import_invoice_no(_DummyCursor(None), date(2026, 3, 15)) == "IMP-20260315-0001"


def test_return_numbers_are_per_type():
    cur = _DummyCursor({"return_no": "SRET-00041"})
    assert next_return_no(cur, "supplier") == "SRET-00042"
    assert cur.executed[0][1] == ("supplier",)
    assert next_return_no(_DummyCursor(None), "customer") == "CRET-00001"
