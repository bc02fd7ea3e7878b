# backend/vhc_engine/routers/meta.py
from __future__ import annotations

from fastapi import APIRouter

from ..config import settings
from ..domain.transitions import TRANSITIONS

router = APIRouter(tags=["meta"])


@router.get("/health", response_model=dict)
def health():
    return {"ok": True, "engine_version": settings.engine_version}


@router.get("/meta/transitions", response_model=dict)
def transitions():
    """The status graph as plain lists, for UIs that grey out impossible moves."""
    return {k: sorted(v) for k, v in TRANSITIONS.items()}
