# backend/vhc_engine/services/authorization_workflow.py
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from ..config import settings
from ..domain.aggregate import (
    AUTHORISED,
    DECISIONS,
    DECLINED,
    DEFERRED,
    PENDING,
    HealthCheckAggregate,
)
from ..domain.audit import (
    ENTITY_HEALTH_CHECK,
    ENTITY_REPAIR_ITEM,
    audit_write,
    health_check_snapshot,
    repair_item_snapshot,
)
from ..domain.events import record_status_change
from ..domain.outcomes import OutcomeSummary, summarize
from ..domain.transitions import (
    ADVISOR_AUTHORIZE_FROM,
    SILENT_TRANSITION_SKIP,
    is_valid_transition,
)
from ..exceptions import ForbiddenActionError, InvalidStatusError, ValidationError
from ..models import (
    HealthCheck,
    RepairItem,
    RepairItemCheckResult,
    RepairLabour,
    RepairOption,
    RepairPart,
)
from .ownership import must_get_health_check, must_get_repair_item
from .repository import build_aggregate, load_aggregate

log = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Authorization workflow
# -----------------------------------------------------------------------------
# The only code that writes repair item decisions or moves a health check
# between customer-response statuses. Every public operation:
#   1) locks the health check row (serializes the whole aggregate)
#   2) validates, then writes item fields + audit rows
#   3) re-runs outcome aggregation and, if the graph allows, transitions
#   4) commits once
# -----------------------------------------------------------------------------

ADVISOR_AUTHORIZATION_METHODS = ("in_person", "phone", "not_sent")

_AUDIT_VERB = {
    AUTHORISED: "authorise",
    DECLINED: "decline",
    DEFERRED: "defer",
    PENDING: "reset",
}

# prefix regrouping puts on a moved line's notes
_FROM_NOTE = re.compile(r"^\[From: [^\]]*\] ?")


def _utcnow() -> datetime:
    return datetime.utcnow()


@dataclass(frozen=True)
class Actor:
    """Who is acting and through which channel."""

    user_id: Optional[int]
    channel: str = "staff"  # staff|customer_portal|system

    @classmethod
    def staff(cls, user_id: int) -> "Actor":
        return cls(user_id=int(user_id), channel="staff")

    @classmethod
    def portal(cls) -> "Actor":
        return cls(user_id=None, channel="customer_portal")

    @classmethod
    def system(cls) -> "Actor":
        return cls(user_id=None, channel="system")

    @property
    def is_portal(self) -> bool:
        return self.channel == "customer_portal"

    @property
    def history_source(self) -> str:
        return {"staff": "user", "customer_portal": "customer_portal"}.get(self.channel, "system")

    def outcome_source(self, *, bulk: bool = False) -> str:
        if self.is_portal:
            return "online"
        return "bulk" if bulk else "manual"


@dataclass(frozen=True)
class TransitionResult:
    previous_status: str
    new_status: Optional[str]
    implied_status: Optional[str] = None
    skipped: bool = False
    summary: Optional[OutcomeSummary] = field(default=None, compare=False)

    def as_dict(self) -> dict:
        return {
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "implied_status": self.implied_status,
            "skipped": self.skipped,
            "totals": self.summary.as_dict() if self.summary is not None else None,
        }


@dataclass(frozen=True)
class DecisionResult:
    repair_item_ids: tuple[int, ...]
    decision: str
    transition: TransitionResult

    def as_dict(self) -> dict:
        return {
            "repair_item_ids": list(self.repair_item_ids),
            "decision": self.decision,
            **self.transition.as_dict(),
        }


@dataclass(frozen=True)
class UngroupResult:
    group_id: int
    child_ids: tuple[int, ...]
    group_deleted: bool
    restored_lines: int
    transition: TransitionResult


@dataclass(frozen=True)
class RegroupResult:
    group_id: int
    member_ids: tuple[int, ...]
    migrated_option_id: Optional[int]
    migrated_labour: int
    migrated_parts: int
    transition: TransitionResult


# -----------------------------
# Validation
# -----------------------------
def _clean_decision(decision: Optional[str]) -> str:
    d = (decision or "").strip().lower()
    if d == "authorized":
        d = AUTHORISED
    if d not in DECISIONS:
        raise ValidationError(
            "Invalid decision",
            details={"decision": f"must be one of {', '.join(DECISIONS)}"},
        )
    return d


def _options_for(db: Session, item_id: int) -> list[RepairOption]:
    return list(
        db.scalars(
            select(RepairOption)
            .where(RepairOption.repair_item_id == item_id)
            .order_by(RepairOption.sort_order, RepairOption.id)
        ).all()
    )


def _live_child_count(db: Session, item_id: int) -> int:
    return int(
        db.scalar(
            select(func.count(RepairItem.id)).where(
                RepairItem.parent_repair_item_id == item_id,
                RepairItem.deleted_at.is_(None),
            )
        )
        or 0
    )


def _default_option(options: list[RepairOption]) -> Optional[RepairOption]:
    for o in options:
        if o.is_recommended:
            return o
    return options[0] if options else None


def _validate_decision(
    db: Session,
    item: RepairItem,
    *,
    decision: str,
    selected_option_id: Optional[int],
    deferred_until: Optional[date],
    auto_select: bool = False,
) -> Optional[int]:
    """
    Raises ValidationError for anything that cannot be written; returns the
    option id that should end up on the item.
    """
    if item.is_group:
        if _live_child_count(db, int(item.id)) > 0:
            raise ValidationError(
                "A group's decision is derived from its items; decide on the items instead",
                details={"repair_item_id": int(item.id)},
            )
        raise ValidationError(
            "Group has no items, so no decision is possible",
            details={"repair_item_id": int(item.id)},
        )

    options = _options_for(db, int(item.id))

    if decision == AUTHORISED:
        if options:
            if selected_option_id is None and auto_select:
                return int(_default_option(options).id)
            if selected_option_id is None:
                raise ValidationError(
                    "Please select an option before approving",
                    details={"repair_item_id": int(item.id)},
                )
            if int(selected_option_id) not in {int(o.id) for o in options}:
                raise ValidationError(
                    "Invalid option selected",
                    details={"repair_item_id": int(item.id), "selected_option_id": selected_option_id},
                )
            return int(selected_option_id)
        if selected_option_id is not None:
            raise ValidationError(
                "Invalid option selected",
                details={"repair_item_id": int(item.id), "selected_option_id": selected_option_id},
            )
        return None

    if decision == DEFERRED:
        if deferred_until is None:
            raise ValidationError("deferred_until is required", details={"repair_item_id": int(item.id)})
        if deferred_until <= date.today():
            raise ValidationError(
                "deferred_until must be a future date",
                details={"repair_item_id": int(item.id), "deferred_until": deferred_until.isoformat()},
            )

    return None


# -----------------------------
# Writes
# -----------------------------
def _write_decision(
    db: Session,
    item: RepairItem,
    *,
    decision: str,
    option_id: Optional[int],
    actor: Actor,
    reason: Optional[str],
    notes: Optional[str],
    deferred_until: Optional[date],
    bulk: bool,
    now: datetime,
) -> None:
    before = repair_item_snapshot(item)

    item.outcome_status = decision
    item.selected_option_id = option_id if decision == AUTHORISED else None
    item.declined_reason = reason if decision == DECLINED else None
    item.declined_notes = notes if decision == DECLINED else None
    item.deferred_until = deferred_until if decision == DEFERRED else None
    item.deferred_notes = notes if decision == DEFERRED else None

    if decision == PENDING:
        item.outcome_set_by = None
        item.outcome_set_at = None
        item.outcome_source = None
        item.customer_approved = None
        item.customer_approved_at = None
        item.customer_notes = None
    else:
        item.outcome_set_by = actor.user_id
        item.outcome_set_at = now
        item.outcome_source = actor.outcome_source(bulk=bulk)
        item.customer_approved = {AUTHORISED: True, DECLINED: False}.get(decision)
        if actor.is_portal:
            item.customer_approved_at = now
            item.customer_notes = notes

    item.updated_at = now
    db.add(item)

    verb = _AUDIT_VERB[decision]
    audit_write(
        db,
        org_id=int(item.org_id),
        actor_user_id=actor.user_id,
        action=f"repair_item.{'bulk_' if bulk else ''}{verb}",
        entity_type=ENTITY_REPAIR_ITEM,
        entity_id=str(item.id),
        before=before,
        after={**repair_item_snapshot(item), "channel": actor.channel},
    )


def _persist_totals(hc: HealthCheck, summary: OutcomeSummary) -> None:
    hc.red_count = int(summary.rag_counts.get("red", 0))
    hc.amber_count = int(summary.rag_counts.get("amber", 0))
    hc.green_count = int(summary.rag_counts.get("green", 0))
    hc.total_identified = summary.total_identified
    hc.total_authorized = summary.total_authorized
    hc.total_declined = summary.total_declined
    hc.total_deferred = summary.total_deferred


def apply_transition(
    db: Session,
    hc: HealthCheck,
    *,
    to_status: str,
    actor: Actor,
    notes: Optional[str],
    now: datetime,
) -> None:
    from_status = str(hc.status)
    hc.status = to_status
    hc.updated_at = now

    if to_status == "partial_response" and hc.first_response_at is None:
        hc.first_response_at = now
    if to_status in ("authorized", "declined"):
        if hc.first_response_at is None:
            hc.first_response_at = now
        hc.fully_responded_at = now
        if actor.is_portal and hc.authorization_method is None:
            hc.authorization_method = "online"

    db.add(hc)
    record_status_change(
        db,
        health_check_id=int(hc.id),
        from_status=from_status,
        to_status=to_status,
        changed_by=actor.user_id,
        change_source=actor.history_source,
        notes=notes,
    )


# -----------------------------
# Recompute
# -----------------------------
def _recompute_locked(
    db: Session,
    hc: HealthCheck,
    *,
    actor: Actor,
    agg: Optional[HealthCheckAggregate] = None,
) -> TransitionResult:
    db.flush()
    agg = agg or build_aggregate(db, hc)
    summary = summarize(agg, vat_rate=settings.vat_rate)
    _persist_totals(hc, summary)
    db.add(hc)

    previous = str(hc.status)
    implied = summary.implied_status

    if implied is None or implied == previous:
        return TransitionResult(previous_status=previous, new_status=None, implied_status=implied, summary=summary)

    if not is_valid_transition(previous, implied):
        if not SILENT_TRANSITION_SKIP:
            raise InvalidStatusError(
                f"Invalid status transition from {previous} to {implied}",
                current_status=previous,
                allowed=[implied],
            )
        log.info(
            "implied status not reachable; status unchanged",
            extra={"health_check_id": int(hc.id), "from_status": previous, "to_status": implied},
        )
        return TransitionResult(
            previous_status=previous,
            new_status=None,
            implied_status=implied,
            skipped=True,
            summary=summary,
        )

    apply_transition(
        db,
        hc,
        to_status=implied,
        actor=actor,
        notes="Status derived from repair item outcomes",
        now=_utcnow(),
    )
    return TransitionResult(previous_status=previous, new_status=implied, implied_status=implied, summary=summary)


def recompute_and_maybe_transition(
    db: Session,
    *,
    org_id: int,
    health_check_id: int,
    actor: Optional[Actor] = None,
    commit: bool = True,
) -> TransitionResult:
    """
    Re-run aggregation and move the health check to the status it implies.

    A transition missing from the graph is skipped, not raised: the status
    stays put and new_status is None. Re-running with nothing changed writes
    no history row.
    """
    hc, agg = load_aggregate(db, org_id=org_id, health_check_id=health_check_id, lock=True)
    result = _recompute_locked(db, hc, actor=actor or Actor.system(), agg=agg)
    if commit:
        db.commit()
    return result


def compute_totals(db: Session, *, org_id: int, health_check_id: int) -> OutcomeSummary:
    """Read-only aggregation for reports and the totals endpoint; writes nothing."""
    _, agg = load_aggregate(db, org_id=org_id, health_check_id=health_check_id, lock=False)
    return summarize(agg, vat_rate=settings.vat_rate)


# -----------------------------
# Decisions
# -----------------------------
def apply_decision(
    db: Session,
    *,
    org_id: int,
    health_check_id: int,
    repair_item_id: int,
    decision: str,
    actor: Actor,
    selected_option_id: Optional[int] = None,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
    deferred_until: Optional[date] = None,
) -> DecisionResult:
    """
    Record one decision on one repair item (last write wins), then recompute.

    Only the named item is touched; a child's decision never spills onto its
    group or siblings.
    """
    d = _clean_decision(decision)
    hc = must_get_health_check(db, org_id=org_id, health_check_id=health_check_id, lock=True)
    item = must_get_repair_item(db, org_id=org_id, health_check_id=int(hc.id), repair_item_id=repair_item_id)

    option_id = _validate_decision(
        db,
        item,
        decision=d,
        selected_option_id=selected_option_id,
        deferred_until=deferred_until,
    )
    _write_decision(
        db,
        item,
        decision=d,
        option_id=option_id,
        actor=actor,
        reason=reason,
        notes=notes,
        deferred_until=deferred_until,
        bulk=False,
        now=_utcnow(),
    )

    transition = _recompute_locked(db, hc, actor=actor)
    db.commit()
    return DecisionResult(repair_item_ids=(int(item.id),), decision=d, transition=transition)


def apply_bulk_decision(
    db: Session,
    *,
    org_id: int,
    health_check_id: int,
    repair_item_ids: Optional[Iterable[int]],
    decision: str,
    actor: Actor,
    selections: Optional[dict[int, int]] = None,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
    deferred_until: Optional[date] = None,
    only_pending: bool = False,
) -> DecisionResult:
    """
    Apply one decision to many items as a single transaction.

    repair_item_ids=None targets every decidable item on the health check
    (leaves and group children). The whole batch is validated before the
    first write, so one bad item rejects the batch. Authorised items that
    carry options but no explicit selection get the recommended option, or
    the first by sort order.
    """
    d = _clean_decision(decision)
    selections = {int(k): int(v) for k, v in (selections or {}).items()}

    hc, agg = load_aggregate(db, org_id=org_id, health_check_id=health_check_id, lock=True)

    if repair_item_ids is None:
        ids: list[int] = []
        for top in agg.live_items:
            if top.is_group:
                ids.extend(c.id for c in top.live_children)
            else:
                ids.append(top.id)
    else:
        ids = list(dict.fromkeys(int(i) for i in repair_item_ids))
        if not ids:
            raise ValidationError("No repair items supplied", details={"repair_item_ids": "must not be empty"})

    items = [
        must_get_repair_item(db, org_id=org_id, health_check_id=int(hc.id), repair_item_id=i) for i in ids
    ]
    if only_pending:
        items = [i for i in items if (i.outcome_status or PENDING) == PENDING]

    planned: list[tuple[RepairItem, Optional[int]]] = []
    for item in items:
        option_id = _validate_decision(
            db,
            item,
            decision=d,
            selected_option_id=selections.get(int(item.id)),
            deferred_until=deferred_until,
            auto_select=True,
        )
        planned.append((item, option_id))

    now = _utcnow()
    for item, option_id in planned:
        _write_decision(
            db,
            item,
            decision=d,
            option_id=option_id,
            actor=actor,
            reason=reason,
            notes=notes,
            deferred_until=deferred_until,
            bulk=True,
            now=now,
        )

    transition = _recompute_locked(db, hc, actor=actor)
    db.commit()
    return DecisionResult(repair_item_ids=tuple(int(i.id) for i, _ in planned), decision=d, transition=transition)


def soft_delete_repair_item(
    db: Session,
    *,
    org_id: int,
    health_check_id: int,
    repair_item_id: int,
    actor: Actor,
    reason: str,
    notes: Optional[str] = None,
) -> TransitionResult:
    if not (reason or "").strip():
        raise ValidationError("A deletion reason is required", details={"reason": "required"})

    hc = must_get_health_check(db, org_id=org_id, health_check_id=health_check_id, lock=True)
    item = must_get_repair_item(db, org_id=org_id, health_check_id=int(hc.id), repair_item_id=repair_item_id)

    if item.customer_approved is True:
        raise ForbiddenActionError("Cannot delete a repair item the customer has approved")

    before = repair_item_snapshot(item)
    now = _utcnow()
    item.deleted_at = now
    item.deleted_by = actor.user_id
    item.deleted_reason = reason.strip()
    item.updated_at = now
    db.add(item)

    audit_write(
        db,
        org_id=org_id,
        actor_user_id=actor.user_id,
        action="repair_item.delete",
        entity_type=ENTITY_REPAIR_ITEM,
        entity_id=str(item.id),
        before=before,
        after={**repair_item_snapshot(item), "reason": item.deleted_reason, "notes": notes},
    )

    result = _recompute_locked(db, hc, actor=actor)
    db.commit()
    return result


def advisor_authorize(
    db: Session,
    *,
    org_id: int,
    health_check_id: int,
    actor: Actor,
    authorization_method: str,
    notes: Optional[str] = None,
) -> TransitionResult:
    """
    Advisor records the customer's answer taken in person or by phone.

    Every live top-level item must already carry an outcome. The status moves
    to authorized (any authorised) or declined only where the graph allows;
    the authorization method is recorded either way.
    """
    if authorization_method not in ADVISOR_AUTHORIZATION_METHODS:
        raise ValidationError(
            f"authorization_method must be one of: {', '.join(ADVISOR_AUTHORIZATION_METHODS)}",
            details={"authorization_method": authorization_method},
        )

    hc, agg = load_aggregate(db, org_id=org_id, health_check_id=health_check_id, lock=True)
    before = health_check_snapshot(hc)
    previous = str(hc.status)
    if previous not in ADVISOR_AUTHORIZE_FROM:
        raise InvalidStatusError(
            f'Cannot record authorization when status is "{previous}"',
            current_status=previous,
            allowed=ADVISOR_AUTHORIZE_FROM,
        )

    summary = summarize(agg, vat_rate=settings.vat_rate)
    undecided = [r.item_id for r in summary.items if r.decision == PENDING]
    if undecided:
        raise ValidationError(
            "All repair items must have an outcome before recording authorization",
            details={"pending_item_ids": undecided},
        )

    now = _utcnow()
    hc.authorization_method = authorization_method
    hc.updated_at = now
    _persist_totals(hc, summary)
    db.add(hc)

    target = "authorized" if summary.authorised_count > 0 else "declined"
    new_status: Optional[str] = None
    if is_valid_transition(previous, target):
        hc.authorized_by = actor.user_id
        hc.authorized_at = now
        msg = f"Advisor recorded authorization ({authorization_method})"
        apply_transition(
            db,
            hc,
            to_status=target,
            actor=actor,
            notes=f"{msg}: {notes}" if notes else msg,
            now=now,
        )
        new_status = target
    else:
        log.info(
            "advisor authorization recorded without status change",
            extra={"health_check_id": int(hc.id), "from_status": previous, "to_status": target},
        )

    audit_write(
        db,
        org_id=org_id,
        actor_user_id=actor.user_id,
        action="health_check.advisor_authorize",
        entity_type=ENTITY_HEALTH_CHECK,
        entity_id=str(hc.id),
        before=before,
        after=health_check_snapshot(hc),
    )
    db.commit()
    return TransitionResult(
        previous_status=previous,
        new_status=new_status,
        implied_status=target,
        skipped=new_status is None,
        summary=summary,
    )


# -----------------------------
# Grouping
# -----------------------------
def _restore_moved_lines(db: Session, group: RepairItem, children: list[RepairItem], *, now: datetime) -> int:
    """
    Hand lines that regrouping moved onto the group's options back to the
    children they came from, and take their money off the option and the
    group. Options left with no lines at all are dropped.
    """
    options = {int(o.id): o for o in _options_for(db, int(group.id))}
    by_child = {int(c.id): c for c in children}
    if not options or not by_child:
        return 0

    moved: list = []
    for model in (RepairLabour, RepairPart):
        moved.extend(
            db.scalars(
                select(model).where(
                    model.repair_option_id.in_(list(options)),
                    model.source_repair_item_id.in_(list(by_child)),
                )
            ).all()
        )
    if not moved:
        return 0

    vat_rate = float(settings.vat_rate)
    touched: set[int] = set()
    for row in moved:
        child = by_child[int(row.source_repair_item_id)]
        opt = options[int(row.repair_option_id)]
        amount = _line_total(row)
        is_labour = isinstance(row, RepairLabour)

        for target, sign in ((child, 1.0), (opt, -1.0), (group, -1.0)):
            if is_labour:
                target.labour_total = round(float(target.labour_total or 0.0) + sign * amount, 2)
            else:
                target.parts_total = round(float(target.parts_total or 0.0) + sign * amount, 2)
            target.subtotal = round(float(target.subtotal or 0.0) + sign * amount, 2)
            target.vat_amount = round(float(target.vat_amount or 0.0) + sign * amount * vat_rate, 2)
            target.total_inc_vat = round(float(target.total_inc_vat or 0.0) + sign * amount * (1.0 + vat_rate), 2)
            db.add(target)

        row.notes = _FROM_NOTE.sub("", row.notes or "") or None
        row.repair_item_id = int(child.id)
        row.repair_option_id = None
        row.source_repair_item_id = None
        db.add(row)
        child.updated_at = now
        touched.add(int(opt.id))
    db.flush()

    for option_id in touched:
        left = sum(
            int(db.scalar(select(func.count(model.id)).where(model.repair_option_id == option_id)) or 0)
            for model in (RepairLabour, RepairPart)
        )
        if left == 0:
            if group.selected_option_id == option_id:
                group.selected_option_id = None
            db.delete(options[option_id])
    db.flush()
    return len(moved)


def ungroup_repair_group(
    db: Session,
    *,
    org_id: int,
    health_check_id: int,
    group_id: int,
    actor: Actor,
) -> UngroupResult:
    """
    Detach every child, drop the group's own finding links, then delete the
    group, or keep it as a plain item when it carries pricing of its own.
    Children keep their links and decisions, and get back any labour/parts
    lines that regrouping had moved onto the group.
    """
    hc = must_get_health_check(db, org_id=org_id, health_check_id=health_check_id, lock=True)
    group = must_get_repair_item(db, org_id=org_id, health_check_id=int(hc.id), repair_item_id=group_id)
    if not group.is_group:
        raise ValidationError("Repair item is not a group", details={"repair_item_id": group_id})

    children = list(
        db.scalars(select(RepairItem).where(RepairItem.parent_repair_item_id == group.id)).all()
    )

    now = _utcnow()
    restored = _restore_moved_lines(db, group, children, now=now)
    for c in children:
        c.parent_repair_item_id = None
        c.updated_at = now
        db.add(c)

    db.execute(delete(RepairItemCheckResult).where(RepairItemCheckResult.repair_item_id == group.id))
    db.flush()

    node = build_aggregate(db, hc).find(int(group.id))
    keep_as_item = bool(node is not None and node.carries_own_pricing)

    child_ids = tuple(int(c.id) for c in children)
    audit_write(
        db,
        org_id=org_id,
        actor_user_id=actor.user_id,
        action="repair_item.ungroup",
        entity_type=ENTITY_REPAIR_ITEM,
        entity_id=str(group.id),
        before={"is_group": True, "child_ids": list(child_ids)},
        after={"is_group": False, "deleted": not keep_as_item, "restored_lines": restored},
    )

    if keep_as_item:
        group.is_group = False
        group.updated_at = now
        db.add(group)
    else:
        db.delete(group)

    transition = _recompute_locked(db, hc, actor=actor)
    db.commit()
    return UngroupResult(
        group_id=int(group_id),
        child_ids=child_ids,
        group_deleted=not keep_as_item,
        restored_lines=restored,
        transition=transition,
    )


def _line_total(row) -> float:
    return float(row.total or 0.0)


def regroup_existing_items(
    db: Session,
    *,
    org_id: int,
    health_check_id: int,
    group_id: int,
    member_item_ids: Iterable[int],
    actor: Actor,
) -> RegroupResult:
    """
    Move standalone items under a group.

    Labour/parts lines already on the members are re-homed (not copied) onto
    a "Standard" option on the group, and the members' own money fields are
    zeroed, so each line is counted once. The group's own totals take the
    migrated amount so its value is unchanged until an option is chosen.
    """
    hc = must_get_health_check(db, org_id=org_id, health_check_id=health_check_id, lock=True)
    group = must_get_repair_item(db, org_id=org_id, health_check_id=int(hc.id), repair_item_id=group_id)
    if not group.is_group:
        raise ValidationError("Target repair item is not a group", details={"repair_item_id": group_id})
    if group.parent_repair_item_id is not None:
        raise ValidationError("Groups cannot be nested", details={"repair_item_id": group_id})

    ids = [int(i) for i in dict.fromkeys(member_item_ids) if int(i) != int(group.id)]
    if not ids:
        raise ValidationError("No repair items supplied", details={"member_item_ids": "must not be empty"})

    members = [
        must_get_repair_item(db, org_id=org_id, health_check_id=int(hc.id), repair_item_id=i) for i in ids
    ]
    for m in members:
        if m.is_group:
            raise ValidationError("Groups cannot be nested", details={"repair_item_id": int(m.id)})
        if m.parent_repair_item_id is not None and int(m.parent_repair_item_id) != int(group.id):
            raise ValidationError(
                "Repair item already belongs to another group",
                details={"repair_item_id": int(m.id)},
            )

    by_id = {int(m.id): m for m in members}
    labour = list(db.scalars(select(RepairLabour).where(RepairLabour.repair_item_id.in_(ids))).all())
    parts = list(db.scalars(select(RepairPart).where(RepairPart.repair_item_id.in_(ids))).all())

    now = _utcnow()
    option_id: Optional[int] = None
    if labour or parts:
        existing = _options_for(db, int(group.id))
        opt = RepairOption(
            repair_item_id=int(group.id),
            name="Standard",
            description="Migrated from individual items",
            is_recommended=not any(o.is_recommended for o in existing),
            sort_order=max([int(o.sort_order or 0) for o in existing], default=0) + 1,
            created_at=now,
        )
        db.add(opt)
        db.flush()
        option_id = int(opt.id)
        priced_ids = {int(r.repair_item_id) for r in [*labour, *parts]}

        for row in [*labour, *parts]:
            src = by_id[int(row.repair_item_id)]
            row.notes = f"[From: {src.name}] {row.notes}" if row.notes else f"[From: {src.name}]"
            row.source_repair_item_id = int(src.id)
            row.repair_item_id = None
            row.repair_option_id = option_id
            db.add(row)

        labour_total = sum(_line_total(r) for r in labour)
        parts_total = sum(_line_total(r) for r in parts)
        subtotal = labour_total + parts_total
        vat = subtotal * float(settings.vat_rate)

        opt.labour_total = labour_total
        opt.parts_total = parts_total
        opt.subtotal = subtotal
        opt.vat_amount = vat
        opt.total_inc_vat = subtotal + vat
        db.add(opt)

        group.labour_total = float(group.labour_total or 0.0) + labour_total
        group.parts_total = float(group.parts_total or 0.0) + parts_total
        group.subtotal = float(group.subtotal or 0.0) + subtotal
        group.vat_amount = float(group.vat_amount or 0.0) + vat
        group.total_inc_vat = float(group.total_inc_vat or 0.0) + subtotal + vat

        for m in members:
            if int(m.id) in priced_ids:
                m.labour_total = 0.0
                m.parts_total = 0.0
                m.subtotal = 0.0
                m.vat_amount = 0.0
                m.total_inc_vat = 0.0

    for m in members:
        m.parent_repair_item_id = int(group.id)
        m.updated_at = now
        db.add(m)

    # groups never own finding links; children keep theirs
    db.execute(delete(RepairItemCheckResult).where(RepairItemCheckResult.repair_item_id == group.id))

    group.updated_at = now
    db.add(group)

    audit_write(
        db,
        org_id=org_id,
        actor_user_id=actor.user_id,
        action="repair_item.regroup",
        entity_type=ENTITY_REPAIR_ITEM,
        entity_id=str(group.id),
        before=None,
        after={
            "member_ids": ids,
            "migrated_option_id": option_id,
            "migrated_labour": len(labour),
            "migrated_parts": len(parts),
        },
    )

    transition = _recompute_locked(db, hc, actor=actor)
    db.commit()
    return RegroupResult(
        group_id=int(group.id),
        member_ids=tuple(ids),
        migrated_option_id=option_id,
        migrated_labour=len(labour),
        migrated_parts=len(parts),
        transition=transition,
    )


def create_group_from_items(
    db: Session,
    *,
    org_id: int,
    health_check_id: int,
    name: str,
    member_item_ids: Iterable[int],
    actor: Actor,
    description: Optional[str] = None,
) -> RegroupResult:
    if not (name or "").strip():
        raise ValidationError("Group name is required", details={"name": "required"})
    member_item_ids = list(member_item_ids)
    if not member_item_ids:
        raise ValidationError("No repair items supplied", details={"member_item_ids": "must not be empty"})

    hc = must_get_health_check(db, org_id=org_id, health_check_id=health_check_id, lock=True)
    now = _utcnow()
    group = RepairItem(
        health_check_id=int(hc.id),
        org_id=int(hc.org_id),
        name=name.strip(),
        description=description,
        is_group=True,
        source="manual",
        outcome_status=PENDING,
        created_at=now,
        updated_at=now,
    )
    db.add(group)
    db.flush()

    return regroup_existing_items(
        db,
        org_id=org_id,
        health_check_id=int(hc.id),
        group_id=int(group.id),
        member_item_ids=member_item_ids,
        actor=actor,
    )
