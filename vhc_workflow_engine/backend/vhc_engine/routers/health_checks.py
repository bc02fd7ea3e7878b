# backend/vhc_engine/routers/health_checks.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import Principal, get_principal
from ..db import get_db
from ..schemas import (
    AdvisorAuthorizeIn,
    HealthCheckOut,
    StatusChangeIn,
    StatusHistoryOut,
    TransitionOut,
)
from ..services.authorization_workflow import (
    Actor,
    advisor_authorize,
    compute_totals,
    recompute_and_maybe_transition,
)
from ..services.health_check_status import change_status, list_history, mark_arrived, mark_no_show
from ..services.ownership import must_get_health_check

router = APIRouter(prefix="/health-checks", tags=["health-checks"])


@router.get("/{health_check_id}", response_model=HealthCheckOut)
def get_health_check(health_check_id: int, db: Session = Depends(get_db), p: Principal = Depends(get_principal)):
    return must_get_health_check(db, org_id=p.org_id, health_check_id=health_check_id)


@router.post("/{health_check_id}/status", response_model=TransitionOut)
def post_status(
    health_check_id: int,
    payload: StatusChangeIn,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    r = change_status(
        db,
        org_id=p.org_id,
        health_check_id=health_check_id,
        to_status=payload.status,
        actor=Actor.staff(p.user_id),
        notes=payload.notes,
    )
    return r.as_dict()


@router.post("/{health_check_id}/mark-arrived", response_model=TransitionOut)
def post_mark_arrived(health_check_id: int, db: Session = Depends(get_db), p: Principal = Depends(get_principal)):
    return mark_arrived(db, org_id=p.org_id, health_check_id=health_check_id, actor=Actor.staff(p.user_id)).as_dict()


@router.post("/{health_check_id}/mark-no-show", response_model=TransitionOut)
def post_mark_no_show(health_check_id: int, db: Session = Depends(get_db), p: Principal = Depends(get_principal)):
    return mark_no_show(db, org_id=p.org_id, health_check_id=health_check_id, actor=Actor.staff(p.user_id)).as_dict()


@router.post("/{health_check_id}/authorize", response_model=TransitionOut)
def post_advisor_authorize(
    health_check_id: int,
    payload: AdvisorAuthorizeIn,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    r = advisor_authorize(
        db,
        org_id=p.org_id,
        health_check_id=health_check_id,
        actor=Actor.staff(p.user_id),
        authorization_method=payload.authorization_method,
        notes=payload.notes,
    )
    return r.as_dict()


@router.post("/{health_check_id}/recompute", response_model=TransitionOut)
def post_recompute(health_check_id: int, db: Session = Depends(get_db), p: Principal = Depends(get_principal)):
    r = recompute_and_maybe_transition(
        db,
        org_id=p.org_id,
        health_check_id=health_check_id,
        actor=Actor.staff(p.user_id),
    )
    return r.as_dict()


@router.get("/{health_check_id}/totals", response_model=dict)
def get_totals(health_check_id: int, db: Session = Depends(get_db), p: Principal = Depends(get_principal)):
    return compute_totals(db, org_id=p.org_id, health_check_id=health_check_id).as_dict()


@router.get("/{health_check_id}/history", response_model=list[StatusHistoryOut])
def get_history(health_check_id: int, db: Session = Depends(get_db), p: Principal = Depends(get_principal)):
    return list_history(db, org_id=p.org_id, health_check_id=health_check_id)
