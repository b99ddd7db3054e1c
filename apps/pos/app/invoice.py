"""
Invoice recalculation.

An order's invoice is a cached projection over its items, its manual
discount and the payments recorded against it. ``recalculate`` rebuilds it
from those inputs and must run after every mutation that can change the
subtotal: item added, item cancelled, item moved between orders, discount
changed. It is idempotent.

Status is derived (``open``/``paid``) except for ``credit``: once an invoice
was posted to a customer account it keeps that status through every later
recalculation.
"""
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .db import utcnow
from .errors import CreditInvoice, InvalidAmount, OrderClosed, ValidationFailed
from .events import append_event
from .locks import order_mutation
from .lookups import is_closed, require_order
from .models import Invoice, Order, OrderItem

OPEN = "open"
PAID = "paid"
CREDIT = "credit"


def derive_status(paid_cents: int, total_cents: int, current: str = OPEN) -> str:
    if current == CREDIT:
        return CREDIT
    # A zero total is never "paid": there is nothing a payment settled.
    return PAID if paid_cents >= total_cents and total_cents > 0 else OPEN


def remaining_cents(inv: Invoice) -> int:
    """Amount still owed on the order itself (credit postings excluded)."""
    return max(int(inv.total_cents or 0) - int(inv.paid_cents or 0) - int(inv.credit_cents or 0), 0)


def subtotal_cents(s: Session, order_id: str) -> int:
    stmt = select(func.coalesce(func.sum(OrderItem.qty * OrderItem.unit_price_cents), 0)).where(
        OrderItem.order_id == order_id,
        OrderItem.status != "cancelled",
    )
    return int(s.execute(stmt).scalar() or 0)


def _load_or_create(s: Session, order_id: str) -> Invoice:
    inv = s.get(Invoice, order_id)
    if inv is None:
        inv = Invoice(
            order_id=order_id,
            subtotal_cents=0,
            discount_cents=0,
            total_cents=0,
            paid_cents=0,
            credit_cents=0,
            status=OPEN,
            updated_at=utcnow(),
        )
        s.add(inv)
    return inv


def recalculate(s: Session, order_id: str) -> Invoice:
    """
    Recompute subtotal, total and status from current state and persist the
    snapshot (flushed, not committed). Paid and discount are carried over.
    """
    inv = _load_or_create(s, order_id)
    subtotal = subtotal_cents(s, order_id)
    discount = max(int(inv.discount_cents or 0), 0)
    total = max(subtotal - discount, 0)
    status = derive_status(int(inv.paid_cents or 0), total, inv.status)
    if (inv.subtotal_cents, inv.discount_cents, inv.total_cents, inv.status) != (subtotal, discount, total, status):
        inv.subtotal_cents = subtotal
        inv.discount_cents = discount
        inv.total_cents = total
        inv.status = status
        inv.updated_at = utcnow()
    s.flush()
    return inv


def close_if_settled(od: Order, inv: Invoice) -> bool:
    """Close an active order once the money received covers its total."""
    if inv.status == PAID and int(inv.paid_cents or 0) > 0 and not is_closed(od):
        od.status = "closed"
        return True
    return False


def get_invoice(s: Session, order_id: str) -> Invoice:
    with order_mutation(s, order_id):
        require_order(s, order_id)
        inv = recalculate(s, order_id)
    return inv


def apply_discount(s: Session, order_id: str, discount_cents: int, actor_user_id: str) -> Invoice:
    if isinstance(discount_cents, bool) or not isinstance(discount_cents, int):
        raise InvalidAmount("discount must be an integer amount", discount_cents=discount_cents)
    if not actor_user_id:
        raise ValidationFailed("actor required")
    with order_mutation(s, order_id):
        od = require_order(s, order_id)
        inv = recalculate(s, order_id)
        if inv.status == CREDIT:
            raise CreditInvoice("invoice is posted to credit", order_id=order_id)
        if is_closed(od):
            raise OrderClosed("order is already closed", order_id=order_id, status=od.status)
        inv.discount_cents = max(discount_cents, 0)
        inv = recalculate(s, order_id)
        close_if_settled(od, inv)
        append_event(
            s,
            "invoice.discount_applied",
            actor_user_id,
            order_id=order_id,
            discount_cents=inv.discount_cents,
            total_cents=inv.total_cents,
        )
    return inv
