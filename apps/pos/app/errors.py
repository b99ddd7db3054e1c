"""
Billing errors surfaced to the till.

Every error carries a machine-readable ``kind`` next to a human message so
the UI can pick a translated string while logs keep the English one. They
are ``HTTPException`` subclasses, so service functions raise them directly
and FastAPI renders ``{"detail": {"kind": ..., "message": ...}}``.
"""
from fastapi import HTTPException


class PosError(HTTPException):
    kind = "PosError"
    status_code = 400

    def __init__(self, message: str = "", **context):
        self.message = message or self.kind
        self.context = context
        detail = {"kind": self.kind, "message": self.message}
        if context:
            detail.update(context)
        super().__init__(status_code=self.status_code, detail=detail)


# --- validation (rejected before touching state) ---
class ValidationFailed(PosError):
    kind = "InvalidInput"
    status_code = 400


class InvalidAmount(ValidationFailed):
    kind = "InvalidAmount"


class InvalidQuantity(ValidationFailed):
    kind = "InvalidQuantity"


class EmptySelection(ValidationFailed):
    kind = "EmptySelection"


# --- not found ---
class NotFound(PosError):
    kind = "NotFound"
    status_code = 404


class OrderNotFound(NotFound):
    kind = "OrderNotFound"


class ItemNotFound(NotFound):
    kind = "ItemNotFound"


class CustomerNotFound(NotFound):
    kind = "CustomerNotFound"


class ProductNotFound(NotFound):
    kind = "ProductNotFound"


# --- state conflicts (checked against freshly recalculated state) ---
class StateConflict(PosError):
    kind = "StateConflict"
    status_code = 409


class OrderClosed(StateConflict):
    kind = "OrderClosed"


class CreditInvoice(StateConflict):
    kind = "CreditInvoice"


class AlreadySettled(StateConflict):
    kind = "AlreadySettled"


class Overpayment(StateConflict):
    kind = "Overpayment"


class SplitAfterPaymentForbidden(StateConflict):
    kind = "SplitAfterPaymentForbidden"


class CancelAfterPaymentForbidden(StateConflict):
    kind = "CancelAfterPaymentForbidden"


class InvalidTransition(StateConflict):
    kind = "InvalidTransition"


class Forbidden(PosError):
    kind = "Forbidden"
    status_code = 403
