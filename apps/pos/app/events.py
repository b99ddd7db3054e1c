import json
import logging
import uuid
from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .db import utcnow
from .models import ActivityEvent

_audit_logger = logging.getLogger("ahwa.audit")

EVENT_TYPES = (
    "order.created",
    "order.cancelled",
    "order.item_added",
    "order.items_sent",
    "item.status_changed",
    "invoice.discount_applied",
    "payment.added",
    "invoice.posted_to_credit",
    "customer.created",
    "product.created",
    "ledger.charge",
    "ledger.payment",
)


def _build_event(event_type: str, actor_user_id: Optional[str], payload: dict[str, Any]) -> ActivityEvent:
    return ActivityEvent(
        id=str(uuid.uuid4()),
        at=utcnow(),
        actor_user_id=actor_user_id,
        type=event_type,
        payload_json=json.dumps(payload, default=str, ensure_ascii=False),
    )


def append_event(s: Session, event_type: str, actor_user_id: Optional[str] = None, **payload: Any) -> Optional[ActivityEvent]:
    """
    Best-effort audit append.

    The row is written inside a SAVEPOINT so a failing insert only discards
    the event, never the billing mutation it describes. Failures are logged
    for alerting and otherwise swallowed.
    """
    if event_type not in EVENT_TYPES:
        raise ValueError(f"unknown event type {event_type!r}")
    try:
        ev = _build_event(event_type, actor_user_id, payload)
        with s.begin_nested():
            s.add(ev)
    except Exception:
        _audit_logger.exception("audit append failed type=%s", event_type)
        return None
    _audit_logger.info({"event": "audit", "type": event_type, "actor_user_id": actor_user_id, **payload})
    return ev


def list_recent(s: Session, limit: int = 100) -> List[ActivityEvent]:
    stmt = select(ActivityEvent).order_by(ActivityEvent.at.desc()).limit(max(1, min(limit, 500)))
    return list(s.execute(stmt).scalars().all())


def event_payload(ev: ActivityEvent) -> dict[str, Any]:
    return json.loads(ev.payload_json or "{}")
