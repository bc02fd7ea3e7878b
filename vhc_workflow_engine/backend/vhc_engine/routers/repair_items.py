# backend/vhc_engine/routers/repair_items.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import Principal, get_principal
from ..db import get_db
from ..schemas import (
    BulkOutcomeIn,
    DecisionOut,
    DeleteItemIn,
    GroupCreateIn,
    GroupOut,
    OutcomeIn,
    TransitionOut,
    UngroupOut,
)
from ..services.authorization_workflow import (
    Actor,
    apply_bulk_decision,
    apply_decision,
    create_group_from_items,
    soft_delete_repair_item,
    ungroup_repair_group,
)

router = APIRouter(prefix="/health-checks/{health_check_id}/repair-items", tags=["repair-items"])


@router.post("/bulk-outcome", response_model=DecisionOut)
def post_bulk_outcome(
    health_check_id: int,
    payload: BulkOutcomeIn,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    r = apply_bulk_decision(
        db,
        org_id=p.org_id,
        health_check_id=health_check_id,
        repair_item_ids=payload.repair_item_ids,
        decision=payload.decision,
        actor=Actor.staff(p.user_id),
        selections=payload.selections,
        reason=payload.reason,
        notes=payload.notes,
        deferred_until=payload.deferred_until,
    )
    return r.as_dict()


@router.post("/groups", response_model=GroupOut)
def post_group(
    health_check_id: int,
    payload: GroupCreateIn,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    r = create_group_from_items(
        db,
        org_id=p.org_id,
        health_check_id=health_check_id,
        name=payload.name,
        description=payload.description,
        member_item_ids=payload.repair_item_ids,
        actor=Actor.staff(p.user_id),
    )
    return GroupOut(
        group_id=r.group_id,
        member_ids=list(r.member_ids),
        migrated_option_id=r.migrated_option_id,
        migrated_labour=r.migrated_labour,
        migrated_parts=r.migrated_parts,
        new_status=r.transition.new_status,
    )


@router.post("/{repair_item_id}/outcome", response_model=DecisionOut)
def post_outcome(
    health_check_id: int,
    repair_item_id: int,
    payload: OutcomeIn,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    r = apply_decision(
        db,
        org_id=p.org_id,
        health_check_id=health_check_id,
        repair_item_id=repair_item_id,
        decision=payload.decision,
        actor=Actor.staff(p.user_id),
        selected_option_id=payload.selected_option_id,
        reason=payload.reason,
        notes=payload.notes,
        deferred_until=payload.deferred_until,
    )
    return r.as_dict()


@router.post("/{repair_item_id}/ungroup", response_model=UngroupOut)
def post_ungroup(
    health_check_id: int,
    repair_item_id: int,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    r = ungroup_repair_group(
        db,
        org_id=p.org_id,
        health_check_id=health_check_id,
        group_id=repair_item_id,
        actor=Actor.staff(p.user_id),
    )
    return UngroupOut(
        group_id=r.group_id,
        child_ids=list(r.child_ids),
        group_deleted=r.group_deleted,
        restored_lines=r.restored_lines,
        new_status=r.transition.new_status,
    )


# DELETE with a body: the deletion reason is mandatory
@router.delete("/{repair_item_id}", response_model=TransitionOut)
def delete_repair_item(
    health_check_id: int,
    repair_item_id: int,
    payload: DeleteItemIn,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    r = soft_delete_repair_item(
        db,
        org_id=p.org_id,
        health_check_id=health_check_id,
        repair_item_id=repair_item_id,
        actor=Actor.staff(p.user_id),
        reason=payload.reason,
        notes=payload.notes,
    )
    return r.as_dict()
