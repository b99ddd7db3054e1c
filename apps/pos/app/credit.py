from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from .db import utcnow
from .errors import OrderClosed, ValidationFailed
from .events import append_event
from .invoice import CREDIT, PAID, recalculate, remaining_cents
from .ledger import add_charge
from .locks import order_mutation
from .lookups import require_customer, require_order


@dataclass(frozen=True)
class CreditPosting:
    order_id: str
    customer_id: str
    entry_id: str
    amount_cents: int


def post_to_credit(
    s: Session,
    order_id: str,
    customer_id: str,
    actor_user_id: str,
    note: Optional[str] = None,
) -> CreditPosting:
    """
    Defer what is still owed on an order to the customer's account.

    The charge is computed once, from a fresh recalculation, and never
    adjusted afterwards. Posting an order with nothing left to pay, or
    posting the same order twice, records no charge and returns an empty
    entry id.
    """
    if not customer_id:
        raise ValidationFailed("customer_id required")
    if not actor_user_id:
        raise ValidationFailed("actor required")
    with order_mutation(s, order_id):
        od = require_order(s, order_id)
        require_customer(s, customer_id)
        inv = recalculate(s, order_id)
        remaining = remaining_cents(inv)
        # a closed check can only be re-posted as a no-op; cancelled checks never
        if od.status == "cancelled" or (od.status == "closed" and remaining > 0):
            raise OrderClosed("order is already closed", order_id=order_id, status=od.status)
        if remaining <= 0:
            if inv.status != CREDIT:
                inv.status = PAID
                inv.updated_at = utcnow()
            entry_id = ""
        else:
            inv.status = CREDIT
            inv.credit_cents = int(inv.credit_cents or 0) + remaining
            inv.updated_at = utcnow()
            od.customer_id = customer_id
            od.status = "closed"
            entry = add_charge(s, customer_id, remaining, order_id=order_id, actor_user_id=actor_user_id, note=note)
            entry_id = entry.id
        s.flush()
        append_event(
            s,
            "invoice.posted_to_credit",
            actor_user_id,
            order_id=order_id,
            customer_id=customer_id,
            ledger_entry_id=entry_id,
            amount_cents=remaining,
        )
    return CreditPosting(order_id=order_id, customer_id=customer_id, entry_id=entry_id, amount_cents=remaining)
