# backend/tests/test_repair_grouping.py
from __future__ import annotations

import pytest
from sqlalchemy import select

from vhc_engine.cli.seed_demo import seed_demo
from vhc_engine.db import SessionLocal
from vhc_engine.exceptions import ValidationError
from vhc_engine.models import (
    HealthCheck,
    RepairItem,
    RepairItemCheckResult,
    RepairLabour,
    RepairOption,
    RepairPart,
)
from vhc_engine.services.authorization_workflow import (
    Actor,
    apply_decision,
    compute_totals,
    create_group_from_items,
    regroup_existing_items,
    ungroup_repair_group,
)


def _ctx(db, seed) -> dict:
    hc = db.get(HealthCheck, seed.health_check_id)
    return {"org_id": int(hc.org_id), "health_check_id": int(hc.id), "actor": Actor.staff(1)}


def test_ungroup_deletes_plain_container_and_keeps_totals():
    seed = seed_demo()
    db = SessionLocal()
    try:
        ctx = _ctx(db, seed)
        apply_decision(db, repair_item_id=seed.repair_item_ids["shock_left"], decision="authorised", **ctx)
        before = compute_totals(db, org_id=ctx["org_id"], health_check_id=ctx["health_check_id"])

        r = ungroup_repair_group(db, group_id=seed.repair_item_ids["suspension"], **ctx)
        assert r.group_deleted is True
        assert set(r.child_ids) == {seed.repair_item_ids["shock_left"], seed.repair_item_ids["shock_right"]}

        db.expire_all()
        assert db.get(RepairItem, seed.repair_item_ids["suspension"]) is None
        left = db.get(RepairItem, seed.repair_item_ids["shock_left"])
        assert left.parent_repair_item_id is None
        assert left.outcome_status == "authorised"
        # children keep their own finding links
        links = db.scalars(
            select(RepairItemCheckResult).where(RepairItemCheckResult.repair_item_id == left.id)
        ).all()
        assert len(links) == 1

        after = compute_totals(db, org_id=ctx["org_id"], health_check_id=ctx["health_check_id"])
        assert after.total_identified == before.total_identified
        assert after.total_authorized == before.total_authorized == 180.0
    finally:
        db.close()


def test_ungroup_keeps_group_that_carries_its_own_pricing():
    seed = seed_demo()
    db = SessionLocal()
    try:
        ctx = _ctx(db, seed)
        group = db.get(RepairItem, seed.repair_item_ids["suspension"])
        group.total_inc_vat = 60.0
        db.commit()
        before = compute_totals(db, org_id=ctx["org_id"], health_check_id=ctx["health_check_id"])

        r = ungroup_repair_group(db, group_id=seed.repair_item_ids["suspension"], **ctx)
        assert r.group_deleted is False

        db.expire_all()
        kept = db.get(RepairItem, seed.repair_item_ids["suspension"])
        assert kept is not None
        assert kept.is_group is False
        after = compute_totals(db, org_id=ctx["org_id"], health_check_id=ctx["health_check_id"])
        assert after.total_identified == before.total_identified == 516.0
    finally:
        db.close()


def test_ungroup_rejects_leaves_and_drops_empty_groups():
    seed = seed_demo()
    db = SessionLocal()
    try:
        ctx = _ctx(db, seed)
        with pytest.raises(ValidationError):
            ungroup_repair_group(db, group_id=seed.repair_item_ids["wipers"], **ctx)
        db.rollback()

        empty = RepairItem(
            health_check_id=ctx["health_check_id"],
            org_id=ctx["org_id"],
            name="Empty",
            is_group=True,
        )
        db.add(empty)
        db.commit()
        empty_id = int(empty.id)

        r = ungroup_repair_group(db, group_id=empty_id, **ctx)
        assert r.child_ids == ()
        assert r.group_deleted is True
        db.expire_all()
        assert db.get(RepairItem, empty_id) is None
    finally:
        db.close()


def test_create_group_migrates_pricing_lines_onto_standard_option():
    seed = seed_demo()
    db = SessionLocal()
    try:
        ctx = _ctx(db, seed)
        before = compute_totals(db, org_id=ctx["org_id"], health_check_id=ctx["health_check_id"])

        r = create_group_from_items(
            db,
            name="Visibility",
            member_item_ids=[seed.repair_item_ids["wipers"]],
            **ctx,
        )
        assert r.migrated_labour == 1
        assert r.migrated_parts == 1
        assert r.migrated_option_id is not None

        db.expire_all()
        opt = db.get(RepairOption, r.migrated_option_id)
        assert opt.name == "Standard"
        assert opt.repair_item_id == r.group_id
        assert opt.is_recommended is True
        assert opt.total_inc_vat == pytest.approx(96.0)

        labour = db.scalars(select(RepairLabour).where(RepairLabour.repair_option_id == opt.id)).all()
        parts = db.scalars(select(RepairPart).where(RepairPart.repair_option_id == opt.id)).all()
        assert [row.notes for row in labour] == ["[From: Wiper blades]"]
        assert [row.source_repair_item_id for row in labour] == [seed.repair_item_ids["wipers"]]
        assert [row.repair_item_id for row in parts] == [None]

        wipers = db.get(RepairItem, seed.repair_item_ids["wipers"])
        assert wipers.parent_repair_item_id == r.group_id
        assert wipers.labour_total == 0.0
        assert wipers.parts_total == 0.0

        group = db.get(RepairItem, r.group_id)
        assert group.is_group is True
        assert group.total_inc_vat == pytest.approx(96.0)

        after = compute_totals(db, org_id=ctx["org_id"], health_check_id=ctx["health_check_id"])
        assert after.total_identified == before.total_identified
    finally:
        db.close()


def test_regroup_keeps_existing_notes_and_unpriced_members():
    seed = seed_demo()
    db = SessionLocal()
    try:
        ctx = _ctx(db, seed)
        labour = db.scalar(
            select(RepairLabour).where(RepairLabour.repair_item_id == seed.repair_item_ids["wipers"])
        )
        labour.notes = "Both sides"
        db.commit()

        r = regroup_existing_items(
            db,
            group_id=seed.repair_item_ids["suspension"],
            member_item_ids=[seed.repair_item_ids["wipers"]],
            **ctx,
        )
        assert seed.repair_item_ids["wipers"] in r.member_ids

        db.expire_all()
        assert db.get(RepairLabour, labour.id).notes == "[From: Wiper blades] Both sides"
        group = db.get(RepairItem, seed.repair_item_ids["suspension"])
        kids = db.scalars(select(RepairItem).where(RepairItem.parent_repair_item_id == group.id)).all()
        assert len(kids) == 3
    finally:
        db.close()


def test_regrouped_member_money_follows_its_own_decision():
    seed = seed_demo()
    db = SessionLocal()
    try:
        ctx = _ctx(db, seed)
        ids = seed.repair_item_ids
        regroup_existing_items(db, group_id=ids["suspension"], member_item_ids=[ids["wipers"]], **ctx)

        apply_decision(db, repair_item_id=ids["shock_left"], decision="authorised", **ctx)
        apply_decision(db, repair_item_id=ids["shock_right"], decision="declined", **ctx)
        apply_decision(db, repair_item_id=ids["wipers"], decision="declined", **ctx)

        totals = compute_totals(db, org_id=ctx["org_id"], health_check_id=ctx["health_check_id"])
        assert totals.total_identified == 456.0
        # only the approved shock absorber is authorised; the wipers' moved lines stay with the wipers
        assert totals.total_authorized == 180.0
        assert totals.total_declined == 0.0

        apply_decision(db, repair_item_id=ids["shock_left"], decision="declined", **ctx)
        totals = compute_totals(db, org_id=ctx["org_id"], health_check_id=ctx["health_check_id"])
        assert totals.total_authorized == 0.0
        assert totals.total_declined == 456.0

        db.expire_all()
        hc = db.get(HealthCheck, ctx["health_check_id"])
        assert hc.total_declined == 456.0
    finally:
        db.close()


def test_ungroup_hands_moved_lines_back_to_their_items():
    seed = seed_demo()
    db = SessionLocal()
    try:
        ctx = _ctx(db, seed)
        ids = seed.repair_item_ids
        rg = regroup_existing_items(db, group_id=ids["suspension"], member_item_ids=[ids["wipers"]], **ctx)
        apply_decision(db, repair_item_id=ids["wipers"], decision="authorised", **ctx)
        before = compute_totals(db, org_id=ctx["org_id"], health_check_id=ctx["health_check_id"])
        assert before.total_authorized == 96.0

        r = ungroup_repair_group(db, group_id=ids["suspension"], **ctx)
        assert r.restored_lines == 2
        assert r.group_deleted is True

        db.expire_all()
        assert db.get(RepairOption, rg.migrated_option_id) is None
        wipers = db.get(RepairItem, ids["wipers"])
        assert wipers.parent_repair_item_id is None
        assert wipers.outcome_status == "authorised"
        assert wipers.labour_total == 50.0
        assert wipers.parts_total == 30.0
        assert wipers.total_inc_vat == pytest.approx(96.0)

        labour = db.scalars(select(RepairLabour).where(RepairLabour.repair_item_id == wipers.id)).all()
        assert [(row.repair_option_id, row.source_repair_item_id, row.notes) for row in labour] == [(None, None, None)]

        after = compute_totals(db, org_id=ctx["org_id"], health_check_id=ctx["health_check_id"])
        assert after.total_identified == before.total_identified == 456.0
        assert after.total_authorized == 96.0
    finally:
        db.close()


def test_regroup_refuses_nesting():
    seed = seed_demo()
    db = SessionLocal()
    try:
        ctx = _ctx(db, seed)
        other_group = RepairItem(
            health_check_id=ctx["health_check_id"],
            org_id=ctx["org_id"],
            name="Tyres",
            is_group=True,
        )
        db.add(other_group)
        db.commit()

        with pytest.raises(ValidationError):
            regroup_existing_items(
                db,
                group_id=int(other_group.id),
                member_item_ids=[seed.repair_item_ids["suspension"]],
                **ctx,
            )
        db.rollback()
        with pytest.raises(ValidationError, match="another group"):
            regroup_existing_items(
                db,
                group_id=int(other_group.id),
                member_item_ids=[seed.repair_item_ids["shock_left"]],
                **ctx,
            )
        db.rollback()
        with pytest.raises(ValidationError):
            regroup_existing_items(
                db,
                group_id=seed.repair_item_ids["wipers"],
                member_item_ids=[seed.repair_item_ids["brakes"]],
                **ctx,
            )
    finally:
        db.close()


def test_create_group_needs_name_and_members():
    seed = seed_demo()
    db = SessionLocal()
    try:
        ctx = _ctx(db, seed)
        with pytest.raises(ValidationError):
            create_group_from_items(db, name=" ", member_item_ids=[seed.repair_item_ids["wipers"]], **ctx)
        with pytest.raises(ValidationError):
            create_group_from_items(db, name="Misc", member_item_ids=[], **ctx)
    finally:
        db.close()
