# backend/vhc_engine/middleware/request_id.py
from __future__ import annotations

import re
import uuid
from contextvars import ContextVar
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

# ids are echoed into response headers and log lines, so only accept plain tokens
_SAFE_ID = re.compile(r"^[A-Za-z0-9._:-]{1,64}$")

request_id_ctx: ContextVar[Optional[str]] = ContextVar("vhc_request_id", default=None)


def get_request_id() -> Optional[str]:
    return request_id_ctx.get()


def _incoming_id(request: Request) -> Optional[str]:
    # starlette headers are case-insensitive, so X-Request-Id matches too
    rid = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
    return rid if _SAFE_ID.match(rid) else None


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Tags each request with an id for log correlation.

    A well-formed id from the gateway is kept so a portal approval can be
    followed from the edge into the workflow logs; anything else is replaced
    with a fresh UUID4.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        rid = _incoming_id(request) or uuid.uuid4().hex
        token = request_id_ctx.set(rid)
        request.state.request_id = rid
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)
        response.headers[REQUEST_ID_HEADER] = rid
        return response
