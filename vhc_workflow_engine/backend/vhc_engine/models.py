# backend/vhc_engine/models.py
from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


# -----------------------------
# Tenancy
# -----------------------------
class Organization(Base):
    __tablename__ = "organizations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    slug: Mapped[str] = mapped_column(String(80), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(160), nullable=False)

    # None -> settings.checkin_enabled_default
    checkin_enabled: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class AppUser(Base):
    __tablename__ = "app_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(200), nullable=False, unique=True, index=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(160), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class AuditEvent(Base):
    __tablename__ = "audit_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    org_id: Mapped[int] = mapped_column(Integer, ForeignKey("organizations.id"), index=True, nullable=False)
    actor_user_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)

    action: Mapped[str] = mapped_column(String(80), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(80), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(80), nullable=False)

    before_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    after_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


# -----------------------------
# Health check aggregate
# -----------------------------
class HealthCheck(Base):
    __tablename__ = "health_checks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    org_id: Mapped[int] = mapped_column(Integer, ForeignKey("organizations.id"), index=True, nullable=False)
    site_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    vehicle_reg: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    status: Mapped[str] = mapped_column(String(40), nullable=False, default="created", index=True)

    technician_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)
    advisor_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)

    arrived_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    tech_started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    tech_completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # RAG counts + money, refreshed by every recompute
    red_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    amber_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    green_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_identified: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_authorized: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_declined: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_deferred: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    # Customer portal
    public_token: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, unique=True, index=True)
    token_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    first_opened_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    customer_view_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    customer_last_viewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    first_response_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    fully_responded_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    authorization_method: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)  # customer_portal|advisor
    authorized_by: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)
    authorized_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    check_results: Mapped[List["CheckResult"]] = relationship(
        back_populates="health_check", cascade="all, delete-orphan"
    )
    repair_items: Mapped[List["RepairItem"]] = relationship(
        back_populates="health_check", cascade="all, delete-orphan"
    )
    status_history: Mapped[List["StatusHistory"]] = relationship(back_populates="health_check")


class CheckResult(Base):
    __tablename__ = "check_results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    health_check_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("health_checks.id", ondelete="CASCADE"), index=True, nullable=False
    )
    template_item_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    rag_status: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)  # red|amber|green|None
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    health_check: Mapped["HealthCheck"] = relationship(back_populates="check_results")


class RepairItem(Base):
    __tablename__ = "repair_items"
    __table_args__ = (Index("ix_repair_items_hc_parent", "health_check_id", "parent_repair_item_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    health_check_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("health_checks.id", ondelete="CASCADE"), index=True, nullable=False
    )
    org_id: Mapped[int] = mapped_column(Integer, ForeignKey("organizations.id"), index=True, nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    is_group: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    parent_repair_item_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("repair_items.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # direct override, e.g. manufacturer-recommended (MRI) scans
    rag_status: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    source: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)  # check_result|mri_scan|manual

    labour_total: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    parts_total: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    subtotal: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    vat_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_inc_vat: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    # Decision
    outcome_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    outcome_set_by: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)
    outcome_set_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    outcome_source: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)  # manual|online|bulk
    declined_reason: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    declined_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    deferred_until: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    deferred_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Portal mirror of outcome_status: True=authorised, False=declined, None=otherwise
    customer_approved: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    customer_approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    customer_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    customer_signature_data: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # validated against the item's own options by the workflow, not by an FK
    selected_option_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    deleted_by: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)
    deleted_reason: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    health_check: Mapped["HealthCheck"] = relationship(back_populates="repair_items")
    options: Mapped[List["RepairOption"]] = relationship(
        back_populates="repair_item",
        cascade="all, delete-orphan",
        foreign_keys="RepairOption.repair_item_id",
    )


class RepairOption(Base):
    __tablename__ = "repair_options"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    repair_item_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("repair_items.id", ondelete="CASCADE"), index=True, nullable=False
    )

    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_recommended: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    labour_total: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    parts_total: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    subtotal: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    vat_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_inc_vat: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    repair_item: Mapped["RepairItem"] = relationship(back_populates="options", foreign_keys=[repair_item_id])


class RepairLabour(Base):
    """A labour line owned by exactly one of repair_item_id / repair_option_id."""

    __tablename__ = "repair_labour"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    repair_item_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("repair_items.id", ondelete="CASCADE"), index=True, nullable=True
    )
    repair_option_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("repair_options.id", ondelete="CASCADE"), index=True, nullable=True
    )
    # set while the line sits on a group option after regrouping its item
    source_repair_item_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("repair_items.id", ondelete="SET NULL"), index=True, nullable=True
    )

    description: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class RepairPart(Base):
    """A parts line owned by exactly one of repair_item_id / repair_option_id."""

    __tablename__ = "repair_parts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    repair_item_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("repair_items.id", ondelete="CASCADE"), index=True, nullable=True
    )
    repair_option_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("repair_options.id", ondelete="CASCADE"), index=True, nullable=True
    )
    # set while the line sits on a group option after regrouping its item
    source_repair_item_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("repair_items.id", ondelete="SET NULL"), index=True, nullable=True
    )

    description: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    part_number: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    quantity: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    unit_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class RepairItemCheckResult(Base):
    __tablename__ = "repair_item_check_results"
    __table_args__ = (UniqueConstraint("repair_item_id", "check_result_id", name="uq_repair_item_check_result"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    repair_item_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("repair_items.id", ondelete="CASCADE"), index=True, nullable=False
    )
    check_result_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("check_results.id", ondelete="CASCADE"), index=True, nullable=False
    )

    check_result: Mapped["CheckResult"] = relationship()


class StatusHistory(Base):
    """Append-only. One row per accepted transition; never updated."""

    __tablename__ = "health_check_status_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # no FK cascade: history outlives the health check for audit
    health_check_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("health_checks.id"), index=True, nullable=False
    )
    from_status: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    to_status: Mapped[str] = mapped_column(String(40), nullable=False)
    changed_by: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)
    change_source: Mapped[str] = mapped_column(String(20), nullable=False)  # user|system|customer_portal
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    health_check: Mapped["HealthCheck"] = relationship(back_populates="status_history")
