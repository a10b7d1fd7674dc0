from typing import Optional

import pytest
from pydantic import BaseModel, ValidationError

from backend.app.validation import (
    CurrencyCode,
    DocStatus,
    InvoiceType,
    PartyType,
    PaymentMethod,
    RefundType,
    ReturnReason,
)


class _M(BaseModel):
    type: InvoiceType
    status: DocStatus
    party: PartyType
    refund: RefundType
    currency: CurrencyCode
    method: PaymentMethod
    reason: Optional[ReturnReason] = None


def test_validation_types_normalize_case():
    m = _M(type="Credit", status="FINALIZED", party=" Supplier", refund="Exchange", currency="pkr", method=" Cash ", reason="Expired")
    assert m.type == "credit"
    assert m.status == "finalized"
    assert m.party == "supplier"
    assert m.refund == "exchange"
    assert m.currency == "PKR"
    assert m.method == "cash"
    assert m.reason == "expired"


def test_unknown_codes_are_rejected():
    base = dict(type="cash", status="draft", party="customer", refund="credit", currency="PKR", method="cash")
    for field, bad in [("type", "cheque"), ("status", "posted"), ("refund", "voucher"), ("currency", "RUPEE"), ("method", "cash money")]:
        with pytest.raises(ValidationError):
            _M(**{**base, field: bad})
