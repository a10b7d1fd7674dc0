from datetime import date
from typing import Optional

RETURN_PREFIXES = {"customer": "CRET", "supplier": "SRET"}


def format_sales_invoice_no(invoice_id: int) -> str:
    return f"INV-{int(invoice_id):05d}"


def format_import_invoice_no(day: date, seq: int) -> str:
    return f"IMP-{day.strftime('%Y%m%d')}-{int(seq):04d}"


def _trailing_seq(doc_no: Optional[str]) -> int:
    tail = (doc_no or "").rsplit("-", 1)[-1]
    return int(tail) if tail.isdigit() else 0


def next_import_invoice_no(cur, day: Optional[date] = None) -> str:
    # IMP-YYYYMMDD-NNNN; the counter restarts every day.
    day = day or date.today()
    prefix = format_import_invoice_no(day, 0)[:-4]
    cur.execute(
        """
        SELECT invoice_no
        FROM import_invoices
        WHERE invoice_no LIKE %s
        ORDER BY invoice_no DESC
        LIMIT 1
        """,
        (prefix + "%",),
    )
    row = cur.fetchone()
    return format_import_invoice_no(day, _trailing_seq(row["invoice_no"] if row else None) + 1)


def format_return_no(return_type: str, seq: int) -> str:
    return f"{RETURN_PREFIXES[return_type]}-{int(seq):05d}"


def next_return_no(cur, return_type: str) -> str:
    cur.execute(
        """
        SELECT return_no
        FROM returns
        WHERE return_type = %s
        ORDER BY id DESC
        LIMIT 1
        """,
        (return_type,),
    )
    row = cur.fetchone()
    return format_return_no(return_type, _trailing_seq(row["return_no"] if row else None) + 1)
