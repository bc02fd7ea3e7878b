# backend/vhc_engine/services/ownership.py
from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db import supports_row_locks
from ..exceptions import NotFoundError
from ..models import HealthCheck, RepairItem


def must_get_health_check(db: Session, *, org_id: int, health_check_id: int, lock: bool = False) -> HealthCheck:
    stmt = select(HealthCheck).where(HealthCheck.id == health_check_id, HealthCheck.org_id == org_id)
    if lock and supports_row_locks():
        stmt = stmt.with_for_update()
    row = db.scalar(stmt)
    if not row:
        raise NotFoundError("health check", health_check_id, org_id)
    return row


def must_get_health_check_by_token(db: Session, *, token: str, lock: bool = False) -> HealthCheck:
    stmt = select(HealthCheck).where(HealthCheck.public_token == token)
    if lock and supports_row_locks():
        stmt = stmt.with_for_update()
    row = db.scalar(stmt) if token else None
    if not row:
        raise NotFoundError("health check")
    return row


def must_get_repair_item(
    db: Session,
    *,
    org_id: int,
    health_check_id: int,
    repair_item_id: int,
    include_deleted: bool = False,
) -> RepairItem:
    row: Optional[RepairItem] = db.scalar(
        select(RepairItem).where(
            RepairItem.id == repair_item_id,
            RepairItem.health_check_id == health_check_id,
            RepairItem.org_id == org_id,
        )
    )
    if not row or (row.deleted_at is not None and not include_deleted):
        raise NotFoundError("repair item", repair_item_id, org_id)
    return row
