"""
Per-order mutual exclusion.

Recalculation reads the item rows and writes a whole invoice snapshot, so two
concurrent mutations on one order would lose an update. Every mutating
operation therefore runs inside ``order_lock`` for the orders it touches.
Locks for several orders are always taken in sorted id order so that two
splits over overlapping order pairs cannot deadlock.
"""
import threading
from contextlib import contextmanager
from typing import Dict, Iterator

from sqlalchemy import select
from sqlalchemy.orm import Session

from .db import supports_row_locks
from .models import Order

_registry_guard = threading.Lock()
# order id -> [lock, number of holders and waiters]
_order_locks: Dict[str, list] = {}


def _checkout(order_id: str) -> threading.Lock:
    with _registry_guard:
        entry = _order_locks.get(order_id)
        if entry is None:
            entry = [threading.Lock(), 0]
            _order_locks[order_id] = entry
        entry[1] += 1
        return entry[0]


def _checkin(order_id: str) -> None:
    with _registry_guard:
        entry = _order_locks.get(order_id)
        if entry is None:
            return
        entry[1] -= 1
        if entry[1] <= 0:
            del _order_locks[order_id]


def lock_order_ids(*order_ids: str) -> list[str]:
    """Deduplicated ids in the order their locks must be acquired."""
    return sorted({oid for oid in order_ids if oid})


@contextmanager
def order_lock(*order_ids: str) -> Iterator[None]:
    acquired: list[tuple[str, threading.Lock]] = []
    try:
        for oid in lock_order_ids(*order_ids):
            lk = _checkout(oid)
            try:
                lk.acquire()
            except BaseException:
                _checkin(oid)
                raise
            acquired.append((oid, lk))
        yield
    finally:
        for oid, lk in reversed(acquired):
            lk.release()
            _checkin(oid)


def lock_order_rows(s: Session, *order_ids: str) -> None:
    """
    Take row locks on the orders in the current transaction when the
    database supports them (Postgres); SQLite serialises writers anyway.
    """
    if not supports_row_locks(s):
        return
    ids = lock_order_ids(*order_ids)
    if ids:
        s.execute(select(Order.id).where(Order.id.in_(ids)).order_by(Order.id).with_for_update()).all()


@contextmanager
def order_mutation(s: Session, *order_ids: str) -> Iterator[None]:
    """
    Run one billing mutation: serialise on the orders, validate and write
    inside the block, then commit once. Any error rolls the whole unit back.
    """
    with order_lock(*order_ids):
        try:
            lock_order_rows(s, *order_ids)
            yield
            s.commit()
        except Exception:
            s.rollback()
            raise
