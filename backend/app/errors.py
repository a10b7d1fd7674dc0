from fastapi import HTTPException


class NotFound(HTTPException):
    def __init__(self, detail: str = "not found"):
        super().__init__(status_code=404, detail=detail)


class InsufficientStock(HTTPException):
    def __init__(self, detail: str = "Insufficient stock"):
        super().__init__(status_code=400, detail=detail)


class AlreadyFinalized(HTTPException):
    def __init__(self, detail: str = "Invoice already finalized"):
        super().__init__(status_code=400, detail=detail)


class InvoiceNotDraft(HTTPException):
    def __init__(self, detail: str = "Cannot modify finalized invoice"):
        super().__init__(status_code=400, detail=detail)


class ReturnQuantityExceeded(HTTPException):
    def __init__(self, detail: str = "Return quantity exceeds returnable quantity"):
        super().__init__(status_code=400, detail=detail)
