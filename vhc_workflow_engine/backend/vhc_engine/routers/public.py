# backend/vhc_engine/routers/public.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..schemas import DecisionOut, PortalApproveIn, PortalDeclineIn, PortalSignIn, PortalSignOut
from ..services import portal

# No principal here: the token in the path is the customer's only credential.
router = APIRouter(prefix="/public/vhc/{token}", tags=["public"])


@router.get("", response_model=dict)
def get_vhc(token: str, db: Session = Depends(get_db)):
    return portal.view_health_check(db, token=token)


@router.post("/repair-items/approve-all", response_model=DecisionOut)
def post_approve_all(token: str, db: Session = Depends(get_db)):
    return portal.approve_all(db, token=token).as_dict()


@router.post("/repair-items/decline-all", response_model=DecisionOut)
def post_decline_all(
    token: str,
    payload: Optional[PortalDeclineIn] = Body(default=None),
    db: Session = Depends(get_db),
):
    payload = payload or PortalDeclineIn()
    return portal.decline_all(db, token=token, reason=payload.reason, notes=payload.notes).as_dict()


@router.post("/repair-items/sign", response_model=PortalSignOut)
def post_sign(token: str, payload: PortalSignIn, db: Session = Depends(get_db)):
    n = portal.sign(db, token=token, signature_data=payload.signature_data)
    return PortalSignOut(signed_items=n)


@router.post("/repair-items/{repair_item_id}/approve", response_model=DecisionOut)
def post_approve(
    token: str,
    repair_item_id: int,
    payload: Optional[PortalApproveIn] = Body(default=None),
    db: Session = Depends(get_db),
):
    payload = payload or PortalApproveIn()
    r = portal.approve_item(
        db,
        token=token,
        repair_item_id=repair_item_id,
        selected_option_id=payload.selected_option_id,
        notes=payload.notes,
    )
    return r.as_dict()


@router.post("/repair-items/{repair_item_id}/decline", response_model=DecisionOut)
def post_decline(
    token: str,
    repair_item_id: int,
    payload: Optional[PortalDeclineIn] = Body(default=None),
    db: Session = Depends(get_db),
):
    payload = payload or PortalDeclineIn()
    r = portal.decline_item(db, token=token, repair_item_id=repair_item_id, reason=payload.reason, notes=payload.notes)
    return r.as_dict()
