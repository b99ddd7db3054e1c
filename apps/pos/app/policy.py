from dataclasses import dataclass
from typing import Optional

from fastapi import Header

from .errors import Forbidden

BASE_ROLES = ("owner", "staff")
SHIFT_ROLES = ("supervisor", "waiter", "barista", "shisha")


@dataclass(frozen=True)
class SessionContext:
    user_id: str
    base_role: str = "staff"
    # effective role inside the currently open shift
    shift_role: Optional[str] = None


def can_take_payment(ctx: SessionContext) -> bool:
    return ctx.base_role == "owner" or ctx.shift_role == "supervisor"


def can_apply_discount(ctx: SessionContext) -> bool:
    return can_take_payment(ctx)


def can_update_kitchen_item(ctx: SessionContext, station: str) -> bool:
    return ctx.base_role == "owner" or ctx.shift_role == station


def can_view_reports(ctx: SessionContext) -> bool:
    return ctx.base_role == "owner"


def can_manage_menu(ctx: SessionContext) -> bool:
    return ctx.base_role == "owner"


def require(allowed: bool, message: str) -> None:
    if not allowed:
        raise Forbidden(message)


def actor_context(
    x_actor_id: Optional[str] = Header(default=None, alias="X-Actor-Id"),
    x_actor_role: Optional[str] = Header(default=None, alias="X-Actor-Role"),
    x_shift_role: Optional[str] = Header(default=None, alias="X-Shift-Role"),
) -> SessionContext:
    """
    Resolve the acting staff member from headers set by the session layer
    in front of this service (PIN login and cookie signing live there).
    """
    user_id = (x_actor_id or "").strip()
    if not user_id:
        raise Forbidden("actor required")
    base_role = (x_actor_role or "staff").strip().lower()
    if base_role not in BASE_ROLES:
        raise Forbidden(f"unknown role {base_role!r}")
    shift_role = (x_shift_role or "").strip().lower() or None
    if shift_role is not None and shift_role not in SHIFT_ROLES:
        raise Forbidden(f"unknown shift role {shift_role!r}")
    return SessionContext(user_id=user_id, base_role=base_role, shift_role=shift_role)
