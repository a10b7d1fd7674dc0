from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BeforeValidator, StringConstraints


def _to_upper_str(v):
    if v is None:
        return v
    return str(v).strip().upper()


def _to_lower_str(v):
    if v is None:
        return v
    return str(v).strip().lower()


# Canonical codes mirror the CHECK constraints in `backend/db/migrations/001_init.sql`.
InvoiceType = Annotated[Literal["cash", "credit"], BeforeValidator(_to_lower_str)]
DocStatus = Annotated[Literal["draft", "finalized"], BeforeValidator(_to_lower_str)]
PartyType = Annotated[Literal["customer", "supplier"], BeforeValidator(_to_lower_str)]
RefundType = Annotated[Literal["credit", "cash", "exchange"], BeforeValidator(_to_lower_str)]
CurrencyCode = Annotated[str, BeforeValidator(_to_upper_str), StringConstraints(pattern=r"^[A-Z]{3}$")]


# Payment methods are free-form identifiers (cash, bank, credit_voucher, ...).
# Keep a tight, safe character set so methods are stable identifiers.
PaymentMethod = Annotated[
    str,
    BeforeValidator(_to_lower_str),
    StringConstraints(min_length=1, max_length=32, pattern=r"^[a-z0-9][a-z0-9_-]*$"),
]

ReturnReason = Annotated[
    str,
    BeforeValidator(_to_lower_str),
    StringConstraints(min_length=1, max_length=50),
]
