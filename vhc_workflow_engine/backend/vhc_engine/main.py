# backend/vhc_engine/main.py
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .exceptions import EngineError
from .logging_config import configure_logging
from .middleware.request_id import RequestIdMiddleware
from .middleware.structured_logging import StructuredLoggingMiddleware, redact_path

from .routers.meta import router as meta_router
from .routers.health_checks import router as health_checks_router
from .routers.repair_items import router as repair_items_router
from .routers.public import router as public_router

API_PREFIX = "/api"

log = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    val = getattr(settings, "cors_allow_origins", ["*"])
    if isinstance(val, str):
        v = val.strip()
        return ["*"] if v == "*" else [x.strip() for x in v.split(",") if x.strip()]
    if isinstance(val, list) and val:
        return val
    return ["*"]


async def _engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    level = logging.INFO if exc.status_code == 404 else logging.WARNING
    log.log(
        level,
        "%s: %s",
        type(exc).__name__,
        exc,
        extra={"path": redact_path(request.url.path), "status_code": exc.status_code},
    )
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_payload()))


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title="VHC Workflow Engine",
        version=getattr(settings, "engine_version", "dev"),
    )

    # last added runs first: request id must wrap the request log line
    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(RequestIdMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(EngineError, _engine_error_handler)

    app.include_router(meta_router, prefix=API_PREFIX)
    app.include_router(health_checks_router, prefix=API_PREFIX)
    app.include_router(repair_items_router, prefix=API_PREFIX)
    app.include_router(public_router, prefix=API_PREFIX)

    return app


app = create_app()
