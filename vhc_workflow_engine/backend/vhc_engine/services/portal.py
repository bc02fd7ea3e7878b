# backend/vhc_engine/services/portal.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..config import settings
from ..domain.aggregate import RepairItemNode
from ..domain.audit import ENTITY_HEALTH_CHECK, audit_write
from ..domain.outcomes import effective_total, item_severity, resolve_item, summarize
from ..domain.transitions import is_valid_transition
from ..exceptions import LinkExpiredError, ValidationError
from ..models import HealthCheck, RepairItem
from .authorization_workflow import (
    Actor,
    DecisionResult,
    apply_bulk_decision,
    apply_decision,
    apply_transition,
)
from .ownership import must_get_health_check_by_token
from .repository import build_aggregate

# -----------------------------------------------------------------------------
# Customer portal
# -----------------------------------------------------------------------------
# Token-scoped entry points. The token resolves the health check (and with it
# the org scope); every decision then goes through the same workflow calls
# staff use, with Actor.portal() so outcome_source is "online" and history
# rows are tagged customer_portal.
# -----------------------------------------------------------------------------


def _resolve(db: Session, token: str, *, lock: bool = False) -> HealthCheck:
    hc = must_get_health_check_by_token(db, token=token, lock=lock)
    if hc.token_expires_at is not None and hc.token_expires_at < datetime.utcnow():
        raise LinkExpiredError(hc.token_expires_at)
    return hc


def _node_view(node: RepairItemNode) -> dict[str, Any]:
    vat = settings.vat_rate
    # a group shows what its items add up to, not its stored total
    if node.is_group:
        total = resolve_item(node, vat_rate=vat).identified_value
    else:
        total = effective_total(node, vat_rate=vat)
    return {
        "id": node.id,
        "name": node.name,
        "is_group": node.is_group,
        "outcome_status": node.outcome_status,
        "customer_approved": node.customer_approved,
        "selected_option_id": node.selected_option_id,
        "severity": item_severity(node),
        "total_inc_vat": round(total, 2),
        "options": [
            {
                "id": o.id,
                "name": o.name,
                "is_recommended": o.is_recommended,
                "sort_order": o.sort_order,
                "total_inc_vat": round(o.total_inc_vat, 2),
            }
            for o in sorted(node.options, key=lambda x: (x.sort_order, x.id))
        ],
        "children": [_node_view(c) for c in node.live_children],
    }


def view_health_check(db: Session, *, token: str) -> dict[str, Any]:
    """
    Customer opens the link. Counts the view; the first view stamps
    first_opened_at and moves the document to "opened" when the graph allows.
    """
    hc = _resolve(db, token, lock=True)
    now = datetime.utcnow()

    hc.customer_view_count = int(hc.customer_view_count or 0) + 1
    hc.customer_last_viewed_at = now
    if hc.first_opened_at is None:
        hc.first_opened_at = now
        if is_valid_transition(str(hc.status), "opened"):
            apply_transition(
                db,
                hc,
                to_status="opened",
                actor=Actor.portal(),
                notes="Customer opened health check",
                now=now,
            )
    db.add(hc)
    db.commit()

    agg = build_aggregate(db, hc)
    summary = summarize(agg, vat_rate=settings.vat_rate)
    return {
        "id": int(hc.id),
        "status": str(hc.status),
        "vehicle_reg": hc.vehicle_reg,
        "expires_at": hc.token_expires_at,
        "view_count": int(hc.customer_view_count),
        "items": [_node_view(n) for n in agg.live_items],
        "totals": summary.as_dict(),
    }


def approve_item(
    db: Session,
    *,
    token: str,
    repair_item_id: int,
    selected_option_id: Optional[int] = None,
    notes: Optional[str] = None,
) -> DecisionResult:
    hc = _resolve(db, token)
    return apply_decision(
        db,
        org_id=int(hc.org_id),
        health_check_id=int(hc.id),
        repair_item_id=repair_item_id,
        decision="authorised",
        actor=Actor.portal(),
        selected_option_id=selected_option_id,
        notes=notes,
    )


def decline_item(
    db: Session,
    *,
    token: str,
    repair_item_id: int,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
) -> DecisionResult:
    hc = _resolve(db, token)
    return apply_decision(
        db,
        org_id=int(hc.org_id),
        health_check_id=int(hc.id),
        repair_item_id=repair_item_id,
        decision="declined",
        actor=Actor.portal(),
        reason=reason,
        notes=notes,
    )


def approve_all(db: Session, *, token: str) -> DecisionResult:
    """Authorise every still-pending item; options default to the recommended one."""
    hc = _resolve(db, token)
    return apply_bulk_decision(
        db,
        org_id=int(hc.org_id),
        health_check_id=int(hc.id),
        repair_item_ids=None,
        decision="authorised",
        actor=Actor.portal(),
        only_pending=True,
    )


def decline_all(db: Session, *, token: str, reason: Optional[str] = None, notes: Optional[str] = None) -> DecisionResult:
    hc = _resolve(db, token)
    return apply_bulk_decision(
        db,
        org_id=int(hc.org_id),
        health_check_id=int(hc.id),
        repair_item_ids=None,
        decision="declined",
        actor=Actor.portal(),
        reason=reason or "Declined all",
        notes=notes,
        only_pending=True,
    )


def sign(db: Session, *, token: str, signature_data: str) -> int:
    """Store the customer's signature on every item they approved. Returns the count signed."""
    if not (signature_data or "").strip():
        raise ValidationError("Signature data is required", details={"signature_data": "required"})

    hc = _resolve(db, token, lock=True)
    items = list(
        db.scalars(
            select(RepairItem).where(
                RepairItem.health_check_id == hc.id,
                RepairItem.customer_approved.is_(True),
                RepairItem.deleted_at.is_(None),
            )
        ).all()
    )
    if not items:
        raise ValidationError("There are no approved repair items to sign for")

    now = datetime.utcnow()
    for item in items:
        item.customer_signature_data = signature_data
        item.updated_at = now
        db.add(item)

    audit_write(
        db,
        org_id=int(hc.org_id),
        actor_user_id=None,
        action="health_check.customer_signed",
        entity_type=ENTITY_HEALTH_CHECK,
        entity_id=str(hc.id),
        after={"signed_item_ids": [int(i.id) for i in items]},
    )
    db.commit()
    return len(items)
