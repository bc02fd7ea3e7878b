# backend/vhc_engine/domain/audit.py
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..models import AuditEvent, HealthCheck, RepairItem

ENTITY_HEALTH_CHECK = "HealthCheck"
ENTITY_REPAIR_ITEM = "RepairItem"


def _to_json(v: Optional[dict[str, Any]]) -> Optional[str]:
    # dates/datetimes in snapshots serialize via str()
    return None if v is None else json.dumps(v, sort_keys=True, default=str)


def audit_write(
    db: Session,
    *,
    org_id: int,
    actor_user_id: Optional[int],
    action: str,
    entity_type: str,
    entity_id: int | str,
    before: Optional[dict[str, Any]] = None,
    after: Optional[dict[str, Any]] = None,
) -> AuditEvent:
    """
    Stage one AuditEvent row in the caller's transaction. Never commits, so
    the row lands (or rolls back) together with the change it describes.
    """
    row = AuditEvent(
        org_id=int(org_id),
        actor_user_id=actor_user_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        before_json=_to_json(before),
        after_json=_to_json(after),
        created_at=datetime.utcnow(),
    )
    db.add(row)
    return row


def repair_item_snapshot(item: RepairItem) -> dict[str, Any]:
    return {
        "outcome_status": item.outcome_status,
        "outcome_source": item.outcome_source,
        "customer_approved": item.customer_approved,
        "selected_option_id": item.selected_option_id,
        "declined_reason": item.declined_reason,
        "deferred_until": item.deferred_until,
        "parent_repair_item_id": item.parent_repair_item_id,
        "deleted_at": item.deleted_at,
    }


def health_check_snapshot(hc: HealthCheck) -> dict[str, Any]:
    return {
        "status": hc.status,
        "authorization_method": hc.authorization_method,
        "total_authorized": hc.total_authorized,
        "total_declined": hc.total_declined,
    }
