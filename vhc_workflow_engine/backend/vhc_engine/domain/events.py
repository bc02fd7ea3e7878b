# events.py - append-only status history. Downstream notification/email/SMS dispatch reads these rows.
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..models import StatusHistory

log = logging.getLogger(__name__)

CHANGE_SOURCES = ("user", "system", "customer_portal")


def record_status_change(
    db: Session,
    *,
    health_check_id: int,
    from_status: Optional[str],
    to_status: str,
    changed_by: Optional[int],
    change_source: str,
    notes: Optional[str] = None,
) -> StatusHistory:
    """
    Append one StatusHistory row.

    NOTE:
    - Does NOT commit. Adds + flushes only.
    - Callers write exactly one row per accepted transition.
    """
    if change_source not in CHANGE_SOURCES:
        raise ValueError(f"unknown change_source {change_source!r}")

    row = StatusHistory(
        health_check_id=int(health_check_id),
        from_status=from_status,
        to_status=str(to_status),
        changed_by=int(changed_by) if changed_by is not None else None,
        change_source=change_source,
        notes=notes,
        created_at=datetime.utcnow(),
    )
    db.add(row)
    db.flush()

    log.info(
        "health_check_status_changed",
        extra={"health_check_id": int(health_check_id), "from_status": from_status, "to_status": to_status},
    )
    return row
