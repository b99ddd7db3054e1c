import uuid
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from .db import utcnow
from .errors import CreditInvoice, InvalidAmount, InvalidQuantity, InvalidTransition, OrderClosed, ValidationFailed
from .events import append_event
from .invoice import CREDIT, close_if_settled, recalculate
from .locks import order_mutation
from .lookups import is_closed, require_item, require_order, require_product
from .models import ITEM_STATUSES, STATIONS, OrderItem
from .orders import sync_progress

# Kitchen flow: each status only moves forward; cancellation is possible
# until the item was served.
ITEM_TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    "new": ("sent", "cancelled"),
    "sent": ("in_progress", "cancelled"),
    "in_progress": ("ready", "cancelled"),
    "ready": ("served", "cancelled"),
    "served": (),
    "cancelled": (),
}


def can_set_item_status(frm: str, to: str) -> bool:
    return to in ITEM_TRANSITIONS.get(frm, ())


def add_item(
    s: Session,
    order_id: str,
    product_id: str,
    qty: int,
    actor_user_id: str,
    unit_price_cents: Optional[int] = None,
    station: Optional[str] = None,
    notes: Optional[str] = None,
) -> OrderItem:
    if isinstance(qty, bool) or not isinstance(qty, int) or qty < 1:
        raise InvalidQuantity("qty must be a positive integer", qty=qty)
    if unit_price_cents is not None and (
        isinstance(unit_price_cents, bool) or not isinstance(unit_price_cents, int) or unit_price_cents < 0
    ):
        raise InvalidAmount("unit price must be a non-negative integer", unit_price_cents=unit_price_cents)
    if station is not None and station not in STATIONS:
        raise ValidationFailed(f"unknown station {station!r}")
    if not actor_user_id:
        raise ValidationFailed("actor required")
    with order_mutation(s, order_id):
        od = require_order(s, order_id)
        inv = recalculate(s, order_id)
        if inv.status == CREDIT:
            raise CreditInvoice("invoice is posted to credit", order_id=order_id)
        if is_closed(od):
            raise OrderClosed("order is already closed", order_id=order_id, status=od.status)
        product = require_product(s, product_id)
        it = OrderItem(
            id=str(uuid.uuid4()),
            order_id=order_id,
            product_id=product.id,
            qty=qty,
            unit_price_cents=product.price_cents if unit_price_cents is None else unit_price_cents,
            notes=(notes or "").strip() or None,
            station=station or product.station,
            status="new",
            created_at=utcnow(),
        )
        s.add(it)
        s.flush()
        recalculate(s, order_id)
        append_event(
            s,
            "order.item_added",
            actor_user_id,
            order_id=order_id,
            item_id=it.id,
            product_id=product.id,
            qty=qty,
        )
    return it


def get_item(s: Session, item_id: str) -> OrderItem:
    return require_item(s, item_id)


def list_by_order(s: Session, order_id: str) -> List[OrderItem]:
    stmt = select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.created_at.asc())
    return list(s.execute(stmt).scalars().all())


def list_by_station(s: Session, station: str) -> List[OrderItem]:
    """Kitchen queue for one station: everything not yet served or cancelled, oldest first."""
    if station not in STATIONS:
        raise ValidationFailed(f"unknown station {station!r}")
    stmt = (
        select(OrderItem)
        .where(OrderItem.station == station, OrderItem.status.not_in(("served", "cancelled")))
        .order_by(OrderItem.created_at.asc())
    )
    return list(s.execute(stmt).scalars().all())


def set_item_status(s: Session, item_id: str, to: str, actor_user_id: str) -> OrderItem:
    if to not in ITEM_STATUSES or to == "new":
        raise ValidationFailed(f"unknown target status {to!r}")
    if not actor_user_id:
        raise ValidationFailed("actor required")
    it = require_item(s, item_id)
    order_id = it.order_id
    with order_mutation(s, order_id):
        s.refresh(it)
        if it.order_id != order_id:
            # moved by a split while we waited for the lock
            order_id = None
        else:
            frm = it.status
            if not can_set_item_status(frm, to):
                raise InvalidTransition(f"invalid transition: {frm} -> {to}", item_id=item_id, from_status=frm, to_status=to)
            it.status = to
            s.flush()
            # cancellation changes the subtotal
            inv = recalculate(s, order_id)
            od = require_order(s, order_id)
            close_if_settled(od, inv)
            sync_progress(s, od)
            append_event(
                s,
                "item.status_changed",
                actor_user_id,
                order_id=order_id,
                item_id=item_id,
                from_status=frm,
                to_status=to,
            )
    if order_id is None:
        return set_item_status(s, item_id, to, actor_user_id)
    return it


def send_items(s: Session, order_id: str, item_ids: Iterable[str], actor_user_id: str) -> List[str]:
    """Route new items to their stations. Unknown ids and items past ``new`` are skipped."""
    if not actor_user_id:
        raise ValidationFailed("actor required")
    wanted = list(dict.fromkeys(item_ids or []))
    sent: List[str] = []
    with order_mutation(s, order_id):
        od = require_order(s, order_id)
        for it in list_by_order(s, order_id):
            if it.id in wanted and can_set_item_status(it.status, "sent"):
                it.status = "sent"
                sent.append(it.id)
        s.flush()
        sync_progress(s, od)
        append_event(s, "order.items_sent", actor_user_id, order_id=order_id, item_ids=sent)
    return sent


def move_to_order(s: Session, it: OrderItem, to_order_id: str) -> bool:
    """
    Reassign an item to another order and recalculate both invoices. Identity,
    status and price snapshot are kept. Runs inside the caller's mutation.
    """
    from_order_id = it.order_id
    if from_order_id == to_order_id:
        return False
    require_order(s, to_order_id)
    it.order_id = to_order_id
    s.flush()
    recalculate(s, from_order_id)
    recalculate(s, to_order_id)
    return True
