"""
Bill splitting: move some items of a check onto a new check at the same
table so one guest can pay on their own.

A split is a move, not a copy, so the value on the table is conserved.
Checks with recorded payments cannot be split because it would no longer be
clear which guest paid for what.
"""
from typing import Iterable

from sqlalchemy.orm import Session

from .errors import CreditInvoice, EmptySelection, OrderClosed, SplitAfterPaymentForbidden, ValidationFailed
from .events import append_event
from .invoice import CREDIT, recalculate
from .items import list_by_order, move_to_order
from .locks import order_mutation
from .lookups import is_closed, require_order
from .models import Order, OrderItem
from .orders import new_order, sync_progress


def split_order(s: Session, order_id: str, item_ids: Iterable[str], created_by: str) -> Order:
    wanted = list(dict.fromkeys(item_ids or []))
    if not created_by:
        raise ValidationFailed("created_by required")
    with order_mutation(s, order_id):
        src = require_order(s, order_id)
        if not wanted:
            raise EmptySelection("select at least one item to split")
        inv = recalculate(s, order_id)
        if inv.paid_cents > 0:
            raise SplitAfterPaymentForbidden(
                "order has recorded payments; split before taking payment",
                order_id=order_id,
                paid_cents=inv.paid_cents,
            )
        if inv.status == CREDIT:
            raise CreditInvoice("invoice is posted to credit", order_id=order_id)
        if is_closed(src):
            raise OrderClosed("order is already closed", order_id=order_id, status=src.status)

        dst = new_order(s, created_by, src.table_label)
        moved = 0
        for item_id in wanted:
            it = s.get(OrderItem, item_id)
            # stale selections from the till are skipped, not rejected
            if it is None or it.order_id != src.id:
                continue
            if move_to_order(s, it, dst.id):
                moved += 1

        src_inv = recalculate(s, src.id)
        has_real_items = any(it.status != "cancelled" for it in list_by_order(s, src.id))
        if not has_real_items or src_inv.total_cents <= 0:
            src.status = "closed"
        else:
            sync_progress(s, src)
        sync_progress(s, dst)
        append_event(
            s,
            "order.created",
            created_by,
            order_id=dst.id,
            table=src.table_label,
            split_from=src.id,
            item_count=moved,
        )
    return dst
