"""
Customer running accounts.

Append-only log of charges and payments per customer. The balance is
``sum(charges) - sum(payments)``; a positive balance means the customer owes
the café. Entries are never edited: a correction is a new entry of the
opposite kind.
"""
import uuid
from typing import List, Optional

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from .db import utcnow
from .errors import InvalidAmount, ValidationFailed
from .events import append_event
from .lookups import require_customer
from .models import LEDGER_KINDS, Customer, LedgerEntry


def create_customer(s: Session, name: str, actor_user_id: str, phone: Optional[str] = None) -> Customer:
    name = (name or "").strip()
    if len(name) < 2:
        raise ValidationFailed("customer name must have at least 2 characters")
    if not actor_user_id:
        raise ValidationFailed("actor required")
    c = Customer(id=str(uuid.uuid4()), name=name, phone=(phone or "").strip() or None)
    s.add(c)
    s.flush()
    append_event(s, "customer.created", actor_user_id, customer_id=c.id, name=c.name, phone=c.phone)
    s.commit()
    s.refresh(c)
    return c


def list_customers(s: Session) -> List[Customer]:
    return list(s.execute(select(Customer).order_by(Customer.name.asc())).scalars().all())


def _append(
    s: Session,
    kind: str,
    customer_id: str,
    amount_cents: int,
    order_id: Optional[str] = None,
    actor_user_id: Optional[str] = None,
    note: Optional[str] = None,
) -> LedgerEntry:
    if kind not in LEDGER_KINDS:
        raise ValidationFailed(f"unknown ledger kind {kind!r}")
    e = LedgerEntry(
        id=str(uuid.uuid4()),
        customer_id=customer_id,
        kind=kind,
        # negative input is not a reversal; clamp it
        amount_cents=max(int(amount_cents or 0), 0),
        order_id=order_id,
        actor_user_id=actor_user_id,
        note=(note or "").strip() or None,
        at=utcnow(),
    )
    s.add(e)
    s.flush()
    return e


def add_charge(s: Session, customer_id: str, amount_cents: int, **extra) -> LedgerEntry:
    """Append a charge entry. Runs inside the caller's transaction."""
    return _append(s, "charge", customer_id, amount_cents, **extra)


def add_payment(s: Session, customer_id: str, amount_cents: int, **extra) -> LedgerEntry:
    """Append a payment entry. Runs inside the caller's transaction."""
    return _append(s, "payment", customer_id, amount_cents, **extra)


def list_by_customer(s: Session, customer_id: str) -> List[LedgerEntry]:
    stmt = select(LedgerEntry).where(LedgerEntry.customer_id == customer_id).order_by(LedgerEntry.at.desc())
    return list(s.execute(stmt).scalars().all())


def get_balance(s: Session, customer_id: str) -> int:
    signed = case((LedgerEntry.kind == "charge", LedgerEntry.amount_cents), else_=-LedgerEntry.amount_cents)
    stmt = select(func.coalesce(func.sum(signed), 0)).where(LedgerEntry.customer_id == customer_id)
    return int(s.execute(stmt).scalar() or 0)


def _record(s: Session, kind: str, customer_id: str, amount_cents: int, actor_user_id: str, note=None, order_id=None):
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise InvalidAmount("amount must be a positive integer", amount_cents=amount_cents)
    if not actor_user_id:
        raise ValidationFailed("actor required")
    require_customer(s, customer_id)
    try:
        e = _append(s, kind, customer_id, amount_cents, order_id=order_id, actor_user_id=actor_user_id, note=note)
        append_event(
            s,
            f"ledger.{kind}",
            actor_user_id,
            customer_id=customer_id,
            entry_id=e.id,
            amount_cents=amount_cents,
            note=e.note,
            order_id=order_id,
        )
        s.commit()
    except Exception:
        s.rollback()
        raise
    return e


def record_charge(s: Session, customer_id: str, amount_cents: int, actor_user_id: str, note=None, order_id=None) -> LedgerEntry:
    """Manual charge to a customer account (e.g. a tab opened outside the till)."""
    return _record(s, "charge", customer_id, amount_cents, actor_user_id, note=note, order_id=order_id)


def record_payment(s: Session, customer_id: str, amount_cents: int, actor_user_id: str, note=None, order_id=None) -> LedgerEntry:
    """Customer pays down their balance; this is how credit-posted orders get settled."""
    return _record(s, "payment", customer_id, amount_cents, actor_user_id, note=note, order_id=order_id)
