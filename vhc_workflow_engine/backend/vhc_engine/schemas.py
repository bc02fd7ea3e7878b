# backend/vhc_engine/schemas.py
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# -------------------- Health checks --------------------

class HealthCheckOut(BaseModel):
    id: int
    status: str
    vehicle_reg: Optional[str] = None
    red_count: int
    amber_count: int
    green_count: int
    total_identified: float
    total_authorized: float
    total_declined: float
    total_deferred: float
    first_response_at: Optional[datetime] = None
    fully_responded_at: Optional[datetime] = None
    authorization_method: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class StatusChangeIn(BaseModel):
    status: str
    notes: Optional[str] = None


class AdvisorAuthorizeIn(BaseModel):
    authorization_method: str
    notes: Optional[str] = None


class StatusHistoryOut(BaseModel):
    id: int
    health_check_id: int
    from_status: Optional[str] = None
    to_status: str
    changed_by: Optional[int] = None
    change_source: str
    notes: Optional[str] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class TransitionOut(BaseModel):
    previous_status: str
    new_status: Optional[str] = None
    implied_status: Optional[str] = None
    skipped: bool = False
    totals: Optional[dict[str, Any]] = None


# -------------------- Repair item decisions --------------------

class OutcomeIn(BaseModel):
    decision: str  # authorised|declined|deferred|pending
    selected_option_id: Optional[int] = None
    reason: Optional[str] = None
    notes: Optional[str] = None
    deferred_until: Optional[date] = None


class BulkOutcomeIn(BaseModel):
    # omitted: every decidable item on the health check
    repair_item_ids: Optional[list[int]] = None
    decision: str
    # explicit option per item; items with options and no entry get the recommended one
    selections: dict[int, int] = Field(default_factory=dict)
    reason: Optional[str] = None
    notes: Optional[str] = None
    deferred_until: Optional[date] = None


class DecisionOut(TransitionOut):
    repair_item_ids: list[int]
    decision: str


class DeleteItemIn(BaseModel):
    reason: str
    notes: Optional[str] = None


# -------------------- Grouping --------------------

class GroupCreateIn(BaseModel):
    name: str
    description: Optional[str] = None
    repair_item_ids: list[int] = Field(default_factory=list)


class UngroupOut(BaseModel):
    group_id: int
    child_ids: list[int]
    group_deleted: bool
    restored_lines: int = 0
    new_status: Optional[str] = None


class GroupOut(BaseModel):
    group_id: int
    member_ids: list[int]
    migrated_option_id: Optional[int] = None
    migrated_labour: int = 0
    migrated_parts: int = 0
    new_status: Optional[str] = None


# -------------------- Customer portal --------------------

class PortalApproveIn(BaseModel):
    selected_option_id: Optional[int] = None
    notes: Optional[str] = None


class PortalDeclineIn(BaseModel):
    reason: Optional[str] = None
    notes: Optional[str] = None


class PortalSignIn(BaseModel):
    signature_data: str


class PortalSignOut(BaseModel):
    success: bool = True
    signed_items: int
