"""
Cash payments against an order's invoice.

Every check runs against a freshly recalculated invoice inside the order's
lock: a payment may never exceed what is still owed, an invoice settles at
most once, and credit-posted invoices are paid off through the customer
ledger instead. The payment that completes the invoice closes the order.
"""
import logging
import uuid
from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session

from .db import utcnow
from .errors import AlreadySettled, CreditInvoice, InvalidAmount, OrderClosed, Overpayment, ValidationFailed
from .events import append_event
from .invoice import CREDIT, close_if_settled, derive_status, recalculate, remaining_cents
from .locks import order_mutation
from .lookups import is_closed, require_order
from .models import Payment

logger = logging.getLogger("ahwa.pos.payments")


def _is_positive_amount(amount) -> bool:
    return not isinstance(amount, bool) and isinstance(amount, int) and amount > 0


def add_payment(s: Session, order_id: str, amount_cents: int, received_by: str) -> Payment:
    if not _is_positive_amount(amount_cents):
        raise InvalidAmount("amount must be a positive integer", amount_cents=amount_cents)
    if not received_by:
        raise ValidationFailed("received_by required")
    with order_mutation(s, order_id):
        od = require_order(s, order_id)
        inv = recalculate(s, order_id)
        # credit first: a posted order is also closed, but the till must
        # point the cashier at the customer ledger
        if inv.status == CREDIT:
            raise CreditInvoice("invoice is posted to credit; use customer ledger payment", order_id=order_id)
        if is_closed(od):
            raise OrderClosed("order is already closed", order_id=order_id, status=od.status)
        remaining = remaining_cents(inv)
        if remaining <= 0:
            raise AlreadySettled("invoice is already fully paid", order_id=order_id)
        if amount_cents > remaining:
            raise Overpayment(f"amount exceeds remaining ({remaining})", order_id=order_id, remaining_cents=remaining)

        pay = Payment(
            id=str(uuid.uuid4()),
            order_id=order_id,
            amount_cents=amount_cents,
            received_by=received_by,
            received_at=utcnow(),
        )
        s.add(pay)
        inv.paid_cents = int(inv.paid_cents or 0) + amount_cents
        inv.status = derive_status(inv.paid_cents, inv.total_cents, inv.status)
        inv.updated_at = utcnow()
        close_if_settled(od, inv)
        s.flush()
        append_event(
            s,
            "payment.added",
            received_by,
            order_id=order_id,
            payment_id=pay.id,
            amount_cents=amount_cents,
        )
    logger.info("payment recorded order=%s amount_cents=%s", order_id, amount_cents)
    return pay


def list_payments(s: Session, order_id: str) -> List[Payment]:
    stmt = select(Payment).where(Payment.order_id == order_id).order_by(Payment.received_at.desc())
    return list(s.execute(stmt).scalars().all())
