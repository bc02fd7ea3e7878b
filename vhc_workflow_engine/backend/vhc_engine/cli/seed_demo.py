# backend/vhc_engine/cli/seed_demo.py
from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from vhc_engine.config import settings
from vhc_engine.db import SessionLocal
from vhc_engine.models import (
    AppUser,
    CheckResult,
    HealthCheck,
    Organization,
    RepairItem,
    RepairItemCheckResult,
    RepairLabour,
    RepairOption,
    RepairPart,
)


@dataclass(frozen=True)
class SeedResult:
    org_slug: str
    user_email: str
    health_check_id: int
    public_token: str
    repair_item_ids: dict[str, int]


def _get_or_create_org(db: Session, slug: str, name: str) -> Organization:
    row = db.query(Organization).filter(Organization.slug == slug).one_or_none()
    if row:
        return row
    row = Organization(slug=slug, name=name)
    db.add(row)
    db.flush()
    return row


def _get_or_create_user(db: Session, email: str, display_name: str) -> AppUser:
    row = db.query(AppUser).filter(AppUser.email == email).one_or_none()
    if row:
        return row
    row = AppUser(email=email, display_name=display_name)
    db.add(row)
    db.flush()
    return row


def _finding(db: Session, hc: HealthCheck, name: str, rag: str) -> CheckResult:
    row = CheckResult(health_check_id=int(hc.id), name=name, rag_status=rag)
    db.add(row)
    db.flush()
    return row


def _item(db: Session, hc: HealthCheck, name: str, *, links: list[CheckResult] = (), **kw) -> RepairItem:
    row = RepairItem(health_check_id=int(hc.id), org_id=int(hc.org_id), name=name, source="check_result", **kw)
    db.add(row)
    db.flush()
    for cr in links:
        db.add(RepairItemCheckResult(repair_item_id=int(row.id), check_result_id=int(cr.id)))
    return row


def seed_demo(
    *,
    org_slug: str = "demo",
    org_name: str = "Demo Motors",
    user_email: str = "advisor@demo.local",
    user_name: str = "Advisor",
    status: str = "opened",
) -> SeedResult:
    """
    One health check with the shapes the workflow has to handle: a leaf with
    two priced options, a leaf priced only through labour/parts lines, and a
    group of two children.
    """
    db = SessionLocal()
    try:
        org = _get_or_create_org(db, org_slug, org_name)
        user = _get_or_create_user(db, user_email, user_name)

        token = secrets.token_urlsafe(24)
        hc = HealthCheck(
            org_id=int(org.id),
            advisor_id=int(user.id),
            vehicle_reg="AB12 CDE",
            status=status,
            public_token=token,
            token_expires_at=datetime.utcnow() + timedelta(hours=settings.portal_token_ttl_hours),
        )
        db.add(hc)
        db.flush()

        pads = _finding(db, hc, "Front brake pads", "red")
        wipers = _finding(db, hc, "Wiper blades", "amber")
        shock_l = _finding(db, hc, "Front left shock absorber", "amber")
        shock_r = _finding(db, hc, "Front right shock absorber", "red")
        _finding(db, hc, "Tyre tread", "green")

        brakes = _item(db, hc, "Front brake pads", links=[pads])
        db.add_all(
            [
                RepairOption(
                    repair_item_id=int(brakes.id),
                    name="Pads only",
                    sort_order=1,
                    is_recommended=True,
                    labour_total=60.0,
                    parts_total=40.0,
                    subtotal=100.0,
                    vat_amount=20.0,
                    total_inc_vat=120.0,
                ),
                RepairOption(
                    repair_item_id=int(brakes.id),
                    name="Pads and discs",
                    sort_order=2,
                    labour_total=90.0,
                    parts_total=110.0,
                    subtotal=200.0,
                    vat_amount=40.0,
                    total_inc_vat=240.0,
                ),
            ]
        )

        wiper_item = _item(db, hc, "Wiper blades", links=[wipers], labour_total=50.0, parts_total=30.0)
        db.add(RepairLabour(repair_item_id=int(wiper_item.id), description="Fit blades", hours=0.5, rate=100.0, total=50.0))
        db.add(RepairPart(repair_item_id=int(wiper_item.id), description="Blade set", quantity=1, unit_price=30.0, total=30.0))

        group = _item(db, hc, "Suspension", is_group=True)
        left = _item(
            db,
            hc,
            "Front left shock absorber",
            links=[shock_l],
            parent_repair_item_id=int(group.id),
            total_inc_vat=180.0,
        )
        right = _item(
            db,
            hc,
            "Front right shock absorber",
            links=[shock_r],
            parent_repair_item_id=int(group.id),
            total_inc_vat=180.0,
        )

        db.commit()
        return SeedResult(
            org_slug=str(org.slug),
            user_email=str(user.email),
            health_check_id=int(hc.id),
            public_token=token,
            repair_item_ids={
                "brakes": int(brakes.id),
                "wipers": int(wiper_item.id),
                "suspension": int(group.id),
                "shock_left": int(left.id),
                "shock_right": int(right.id),
            },
        )
    finally:
        db.close()
