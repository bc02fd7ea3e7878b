# backend/vhc_engine/services/health_check_status.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..config import settings
from ..domain.audit import ENTITY_HEALTH_CHECK, audit_write, health_check_snapshot
from ..domain.transitions import allowed_next, arrival_target, is_valid_transition
from ..exceptions import InvalidStatusError
from ..models import HealthCheck, Organization, StatusHistory
from .authorization_workflow import Actor, TransitionResult, apply_transition
from .ownership import must_get_health_check


def _checkin_enabled(db: Session, org_id: int) -> bool:
    org = db.scalar(select(Organization).where(Organization.id == org_id))
    if org is not None and org.checkin_enabled is not None:
        return bool(org.checkin_enabled)
    return bool(settings.checkin_enabled_default)


def _move(
    db: Session,
    hc: HealthCheck,
    *,
    to_status: str,
    actor: Actor,
    notes: Optional[str],
) -> TransitionResult:
    before = health_check_snapshot(hc)
    previous = str(hc.status)
    if not is_valid_transition(previous, to_status):
        raise InvalidStatusError(
            f"Invalid status transition from {previous} to {to_status}",
            current_status=previous,
            allowed=allowed_next(previous),
        )

    now = datetime.utcnow()
    if to_status == "completed":
        hc.completed_at = now
    elif to_status == "in_progress" and hc.tech_started_at is None:
        hc.tech_started_at = now
    elif to_status == "tech_completed":
        hc.tech_completed_at = now
    elif to_status == "sent":
        hc.sent_at = now

    apply_transition(db, hc, to_status=to_status, actor=actor, notes=notes, now=now)
    audit_write(
        db,
        org_id=int(hc.org_id),
        actor_user_id=actor.user_id,
        action="health_check.status_change",
        entity_type=ENTITY_HEALTH_CHECK,
        entity_id=str(hc.id),
        before=before,
        after={**health_check_snapshot(hc), "notes": notes},
    )
    return TransitionResult(previous_status=previous, new_status=to_status, implied_status=to_status)


def change_status(
    db: Session,
    *,
    org_id: int,
    health_check_id: int,
    to_status: str,
    actor: Actor,
    notes: Optional[str] = None,
) -> TransitionResult:
    """
    Explicit staff status change. Unlike recompute this is a direct request,
    so a move the graph does not allow is reported as InvalidStatusError.
    """
    hc = must_get_health_check(db, org_id=org_id, health_check_id=health_check_id, lock=True)
    result = _move(db, hc, to_status=(to_status or "").strip().lower(), actor=actor, notes=notes)
    db.commit()
    return result


def mark_arrived(db: Session, *, org_id: int, health_check_id: int, actor: Actor) -> TransitionResult:
    hc = must_get_health_check(db, org_id=org_id, health_check_id=health_check_id, lock=True)
    if hc.status != "awaiting_arrival":
        raise InvalidStatusError(
            f"Can only mark arrived from awaiting_arrival status, current status is {hc.status}",
            current_status=str(hc.status),
            allowed=["awaiting_arrival"],
        )

    target = arrival_target(checkin_enabled=_checkin_enabled(db, org_id))
    hc.arrived_at = datetime.utcnow()
    result = _move(db, hc, to_status=target, actor=actor, notes="Vehicle arrived")
    db.commit()
    return result


def mark_no_show(db: Session, *, org_id: int, health_check_id: int, actor: Actor) -> TransitionResult:
    hc = must_get_health_check(db, org_id=org_id, health_check_id=health_check_id, lock=True)
    if hc.status != "awaiting_arrival":
        raise InvalidStatusError(
            f"Can only mark no-show from awaiting_arrival status, current status is {hc.status}",
            current_status=str(hc.status),
            allowed=["awaiting_arrival"],
        )

    result = _move(db, hc, to_status="no_show", actor=actor, notes="Customer did not arrive")
    db.commit()
    return result


def list_history(db: Session, *, org_id: int, health_check_id: int) -> list[StatusHistory]:
    must_get_health_check(db, org_id=org_id, health_check_id=health_check_id)
    return list(
        db.scalars(
            select(StatusHistory)
            .where(StatusHistory.health_check_id == health_check_id)
            .order_by(StatusHistory.created_at, StatusHistory.id)
        ).all()
    )
