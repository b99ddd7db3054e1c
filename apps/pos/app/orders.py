import uuid
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .db import utcnow
from .errors import CancelAfterPaymentForbidden, OrderClosed, ValidationFailed
from .events import append_event
from .invoice import recalculate
from .locks import order_mutation
from .lookups import is_closed, require_customer, require_order
from .models import ORDER_STATUSES, Order, OrderItem


def new_order(s: Session, created_by: str, table_label: Optional[str] = None) -> Order:
    """Insert an open order with its empty invoice. Caller commits."""
    od = Order(
        id=str(uuid.uuid4()),
        table_label=(table_label or "").strip() or None,
        created_by=created_by,
        created_at=utcnow(),
        status="open",
        customer_id=None,
    )
    s.add(od)
    s.flush()
    recalculate(s, od.id)
    return od


def create_order(s: Session, created_by: str, table_label: Optional[str] = None) -> Order:
    if not created_by:
        raise ValidationFailed("created_by required")
    od = new_order(s, created_by, table_label)
    append_event(s, "order.created", created_by, order_id=od.id, table=od.table_label)
    s.commit()
    s.refresh(od)
    return od


def get_order(s: Session, order_id: str) -> Order:
    return require_order(s, order_id)


def list_open(s: Session, limit: int = 200) -> List[Order]:
    stmt = (
        select(Order)
        .where(Order.status.not_in(("closed", "cancelled")))
        .order_by(Order.created_at.desc())
        .limit(max(1, min(limit, 500)))
    )
    return list(s.execute(stmt).scalars().all())


def list_all(s: Session, limit: int = 200) -> List[Order]:
    # Closed checks stay visible so billing can show who paid what per table.
    stmt = select(Order).where(Order.status != "cancelled").order_by(Order.created_at.desc()).limit(max(1, min(limit, 500)))
    return list(s.execute(stmt).scalars().all())


def set_order_status(s: Session, order_id: str, status: str) -> Order:
    if status not in ORDER_STATUSES:
        raise ValidationFailed(f"unknown order status {status!r}")
    with order_mutation(s, order_id):
        od = require_order(s, order_id)
        od.status = status
    return od


def set_order_customer(s: Session, order_id: str, customer_id: Optional[str]) -> Order:
    with order_mutation(s, order_id):
        od = require_order(s, order_id)
        if customer_id:
            require_customer(s, customer_id)
        od.customer_id = customer_id or None
    return od


def sync_progress(s: Session, od: Order) -> None:
    """
    Move an active order between open/in_progress/ready from its kitchen
    items. Closed and cancelled orders are left alone.
    """
    if is_closed(od):
        return
    statuses = [
        st
        for st in s.execute(
            select(OrderItem.status).where(OrderItem.order_id == od.id, OrderItem.status != "cancelled")
        ).scalars()
    ]
    if statuses and all(st in ("ready", "served") for st in statuses):
        od.status = "ready"
    elif any(st != "new" for st in statuses):
        od.status = "in_progress"
    else:
        od.status = "open"


def cancel_order(s: Session, order_id: str, actor_user_id: str) -> Order:
    if not actor_user_id:
        raise ValidationFailed("actor required")
    with order_mutation(s, order_id):
        od = require_order(s, order_id)
        if is_closed(od):
            raise OrderClosed("order is already closed", order_id=order_id, status=od.status)
        inv = recalculate(s, order_id)
        if inv.paid_cents > 0:
            raise CancelAfterPaymentForbidden("order has recorded payments", order_id=order_id, paid_cents=inv.paid_cents)
        od.status = "cancelled"
        append_event(s, "order.cancelled", actor_user_id, order_id=order_id, table=od.table_label)
    return od
