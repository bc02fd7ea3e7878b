# backend/vhc_engine/middleware/structured_logging.py
from __future__ import annotations

import logging
import re
import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

log = logging.getLogger("vhc_engine.request")

# The portal token is the customer's only credential; it never reaches the logs.
_PORTAL_TOKEN = re.compile(r"(/public/vhc/)[^/]+")


def redact_path(path: str) -> str:
    return _PORTAL_TOKEN.sub(r"\1<token>", path)


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """
    One "http_request" line per request (method, redacted path, status_code,
    latency_ms, org_slug, user_email). request_id is added by the formatter.
    Server errors are logged at ERROR so they stand out from 4xx noise.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            log.log(
                logging.ERROR if status_code >= 500 else logging.INFO,
                "http_request",
                extra={
                    "method": request.method,
                    "path": redact_path(request.url.path),
                    "status_code": status_code,
                    "latency_ms": round((time.perf_counter() - started) * 1000, 1),
                    # staff calls only; portal calls carry no principal headers
                    "org_slug": request.headers.get("X-Org-Slug"),
                    "user_email": request.headers.get("X-User-Email"),
                },
            )
