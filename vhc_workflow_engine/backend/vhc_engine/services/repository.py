# backend/vhc_engine/services/repository.py
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..domain.aggregate import HealthCheckAggregate, OptionNode, RepairItemNode, normalize_decision
from ..models import (
    CheckResult,
    HealthCheck,
    RepairItem,
    RepairItemCheckResult,
    RepairLabour,
    RepairOption,
    RepairPart,
)
from .ownership import must_get_health_check

log = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Repository boundary
# -----------------------------------------------------------------------------
# Flat rows in, one typed HealthCheckAggregate out. Items with a null parent
# are top-level; items whose parent is top-level become that parent's
# children. Anything nested deeper is dropped from the aggregate (and
# logged) since a group's children never own children of their own.
# -----------------------------------------------------------------------------


def _priced_owner_ids(db: Session, item_ids: list[int], option_ids: list[int]) -> tuple[set[int], set[int]]:
    items_with_lines: set[int] = set()
    options_with_lines: set[int] = set()
    for model in (RepairLabour, RepairPart):
        if item_ids:
            items_with_lines.update(
                db.scalars(select(model.repair_item_id).where(model.repair_item_id.in_(item_ids))).all()
            )
        if option_ids:
            options_with_lines.update(
                db.scalars(select(model.repair_option_id).where(model.repair_option_id.in_(option_ids))).all()
            )
    return items_with_lines, options_with_lines


def _moved_subtotals(
    db: Session,
    rows: list[RepairItem],
    option_owner: dict[int, int],
) -> dict[int, float]:
    """
    Per grouped child, the labour/parts it moved onto an option of its
    current group. Lines sitting on any other item's option are not counted.
    """
    parent_of = {int(r.id): r.parent_repair_item_id for r in rows}
    if not parent_of or not option_owner:
        return {}
    moved: dict[int, float] = defaultdict(float)
    for model in (RepairLabour, RepairPart):
        for source_id, option_id, total in db.execute(
            select(model.source_repair_item_id, model.repair_option_id, model.total).where(
                model.source_repair_item_id.in_(list(parent_of)),
                model.repair_option_id.in_(list(option_owner)),
            )
        ).all():
            parent = parent_of.get(int(source_id))
            if parent is not None and int(parent) == option_owner.get(int(option_id)):
                moved[int(source_id)] += float(total or 0.0)
    return moved


def _option_node(o: RepairOption, priced: set[int]) -> OptionNode:
    return OptionNode(
        id=int(o.id),
        name=str(o.name),
        is_recommended=bool(o.is_recommended),
        sort_order=int(o.sort_order or 0),
        labour_total=float(o.labour_total or 0.0),
        parts_total=float(o.parts_total or 0.0),
        total_inc_vat=float(o.total_inc_vat or 0.0),
        has_pricing_lines=int(o.id) in priced,
    )


def _item_node(
    r: RepairItem,
    *,
    options: tuple[OptionNode, ...],
    links: tuple[Optional[str], ...],
    priced: set[int],
    children: tuple[RepairItemNode, ...] = (),
    moved_subtotal: float = 0.0,
) -> RepairItemNode:
    return RepairItemNode(
        id=int(r.id),
        name=str(r.name),
        is_group=bool(r.is_group),
        parent_id=int(r.parent_repair_item_id) if r.parent_repair_item_id is not None else None,
        outcome_status=normalize_decision(r.outcome_status),
        selected_option_id=int(r.selected_option_id) if r.selected_option_id is not None else None,
        customer_approved=r.customer_approved,
        labour_total=float(r.labour_total or 0.0),
        parts_total=float(r.parts_total or 0.0),
        total_inc_vat=float(r.total_inc_vat or 0.0),
        rag_override=r.rag_status,
        link_severities=links,
        options=options,
        children=children,
        deleted=r.deleted_at is not None,
        has_pricing_lines=int(r.id) in priced,
        moved_subtotal=moved_subtotal,
    )


def build_aggregate(db: Session, hc: HealthCheck) -> HealthCheckAggregate:
    rows = db.scalars(
        select(RepairItem).where(RepairItem.health_check_id == hc.id).order_by(RepairItem.id)
    ).all()
    item_ids = [int(r.id) for r in rows]

    opts_by_item: dict[int, list[RepairOption]] = defaultdict(list)
    if item_ids:
        for o in db.scalars(
            select(RepairOption)
            .where(RepairOption.repair_item_id.in_(item_ids))
            .order_by(RepairOption.sort_order, RepairOption.id)
        ).all():
            opts_by_item[int(o.repair_item_id)].append(o)
    option_ids = [int(o.id) for opts in opts_by_item.values() for o in opts]

    links_by_item: dict[int, list[Optional[str]]] = defaultdict(list)
    if item_ids:
        for item_id, rag in db.execute(
            select(RepairItemCheckResult.repair_item_id, CheckResult.rag_status)
            .join(CheckResult, CheckResult.id == RepairItemCheckResult.check_result_id)
            .where(RepairItemCheckResult.repair_item_id.in_(item_ids))
        ).all():
            links_by_item[int(item_id)].append(rag)

    priced_items, priced_options = _priced_owner_ids(db, item_ids, option_ids)
    moved = _moved_subtotals(
        db, list(rows), {int(o.id): item_id for item_id, opts in opts_by_item.items() for o in opts}
    )

    def node(r: RepairItem, children: tuple[RepairItemNode, ...] = ()) -> RepairItemNode:
        return _item_node(
            r,
            options=tuple(_option_node(o, priced_options) for o in opts_by_item.get(int(r.id), [])),
            links=tuple(links_by_item.get(int(r.id), [])),
            priced=priced_items,
            children=children,
            moved_subtotal=moved.get(int(r.id), 0.0),
        )

    by_id = {int(r.id): r for r in rows}
    top_level = [r for r in rows if r.parent_repair_item_id is None or int(r.parent_repair_item_id) not in by_id]
    top_ids = {int(r.id) for r in top_level}

    children_of: dict[int, list[RepairItem]] = defaultdict(list)
    for r in rows:
        pid = r.parent_repair_item_id
        if pid is None or int(r.id) in top_ids:
            continue
        if int(pid) in top_ids:
            children_of[int(pid)].append(r)
        else:
            log.warning(
                "repair item nested below a child; ignored",
                extra={"health_check_id": int(hc.id), "repair_item_id": int(r.id)},
            )

    items = tuple(
        node(r, tuple(node(c) for c in children_of.get(int(r.id), [])))
        for r in top_level
    )

    findings = tuple(
        db.scalars(select(CheckResult.rag_status).where(CheckResult.health_check_id == hc.id)).all()
    )

    return HealthCheckAggregate(
        id=int(hc.id),
        org_id=int(hc.org_id),
        status=str(hc.status),
        items=items,
        finding_severities=findings,
    )


def load_aggregate(
    db: Session,
    *,
    org_id: int,
    health_check_id: int,
    lock: bool = True,
) -> tuple[HealthCheck, HealthCheckAggregate]:
    """
    Lock the health check row (the aggregate's serialization point) and read
    every repair item, option and finding link under that lock.
    """
    hc = must_get_health_check(db, org_id=org_id, health_check_id=health_check_id, lock=lock)
    return hc, build_aggregate(db, hc)
