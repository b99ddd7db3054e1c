import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

_rid_ctx: ContextVar[str] = ContextVar("request_id", default="")
_actor_ctx: ContextVar[str] = ContextVar("actor_id", default="")


def get_request_id() -> str:
    rid = _rid_ctx.get()
    if not rid:
        rid = uuid.uuid4().hex
        _rid_ctx.set(rid)
    return rid


def get_actor_id() -> str:
    return _actor_ctx.get()


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Tag every request with an id (propagated from the header when present)
    and remember the acting staff member so log lines can carry both.
    """

    def __init__(self, app, header_name: str = "X-Request-ID", actor_header: str = "X-Actor-Id"):
        super().__init__(app)
        self.header_name = header_name
        self.actor_header = actor_header

    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get(self.header_name) or uuid.uuid4().hex
        rid_token = _rid_ctx.set(rid)
        actor_token = _actor_ctx.set(request.headers.get(self.actor_header) or "")
        try:
            response: Response = await call_next(request)
        finally:
            _rid_ctx.reset(rid_token)
            _actor_ctx.reset(actor_token)
        response.headers.setdefault(self.header_name, rid)
        return response
