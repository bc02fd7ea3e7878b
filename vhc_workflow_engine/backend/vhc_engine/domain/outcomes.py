# backend/vhc_engine/domain/outcomes.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

from .aggregate import (
    AUTHORISED,
    DECLINED,
    DEFERRED,
    PENDING,
    HealthCheckAggregate,
    RepairItemNode,
    normalize_decision,
)
from .severity import (
    SEVERITIES,
    rag_counts,
    resolve_group_severity,
    resolve_item_severity,
)

# -----------------------------------------------------------------------------
# Outcome aggregation
# -----------------------------------------------------------------------------
# Rolls per-item decisions up into:
#   - the document status they imply (authorized / declined / partial_response)
#   - decision-weighted money buckets, each split by RAG severity
#
# Only top-level items are walked; a group stands in for its children.
# Money is accumulated as raw floats and rounded only in as_dict().
# -----------------------------------------------------------------------------


def _r2(x: float) -> float:
    return round(float(x), 2)


def effective_total(item: RepairItemNode, *, vat_rate: float) -> float:
    """
    Money a single node contributes, before any decision weighting.

    A selected option replaces the item's own pricing. When the chosen source
    has no precomputed total but does carry labour/parts, the VAT-inclusive
    total is synthesized from them. A grouped child also carries the lines it
    moved onto its group, unless an option of its own has been chosen.
    """
    src = item.selected_option or item
    total = float(src.total_inc_vat or 0.0)
    if total == 0.0:
        subtotal = float(src.labour_total or 0.0) + float(src.parts_total or 0.0)
        if subtotal > 0:
            total = subtotal * (1.0 + float(vat_rate))
    if src is item and item.moved_subtotal:
        total += float(item.moved_subtotal) * (1.0 + float(vat_rate))
    return total


def unattributed_group_total(group: RepairItemNode, *, vat_rate: float) -> float:
    """
    The part of a group's own pricing that no child accounts for.

    Lines moved in by regrouping are already carried by their children
    (deleted ones included, so a deleted child's share drops out entirely).
    """
    own = effective_total(group, vat_rate=vat_rate)
    moved = sum(float(c.moved_subtotal) for c in group.children) * (1.0 + float(vat_rate))
    return max(own - moved, 0.0)


def item_severity(item: RepairItemNode) -> Optional[str]:
    if item.is_group:
        return resolve_group_severity(item_severity(c) for c in item.live_children)
    return resolve_item_severity(item.link_severities, item.rag_override)


def fold_group_decision(child_decisions: Iterable[str]) -> Optional[str]:
    """
    Derived decision of a group.

    any authorised -> authorised; else any pending -> pending;
    else all declined -> declined; else (declined/deferred mix) -> deferred.
    No children means no decision is possible (None).
    """
    ds = [normalize_decision(d) for d in child_decisions]
    if not ds:
        return None
    if AUTHORISED in ds:
        return AUTHORISED
    if PENDING in ds:
        return PENDING
    if all(d == DECLINED for d in ds):
        return DECLINED
    return DEFERRED


@dataclass(frozen=True)
class ResolvedItem:
    """One top-level item after group folding."""

    item_id: int
    is_group: bool
    decision: Optional[str]
    severity: Optional[str]
    identified_value: float
    decided_value: float

    def as_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "is_group": self.is_group,
            "decision": self.decision,
            "severity": self.severity,
            "identified_value": _r2(self.identified_value),
            "decided_value": _r2(self.decided_value),
        }


def resolve_item(item: RepairItemNode, *, vat_rate: float) -> ResolvedItem:
    """
    Resolve a top-level item.

    Leaves: their own decision, their effective total for both values.
    Groups: decision folded from live children. The decided value is the sum
    of the children sharing the group's decision (all of them while pending).
    Pricing the group holds beyond its children's shares is identified only.
    A group with no live children has no decision but is still identified.
    """
    severity = item_severity(item)

    if not item.is_group:
        value = effective_total(item, vat_rate=vat_rate)
        return ResolvedItem(
            item_id=item.id,
            is_group=item.is_group,
            decision=normalize_decision(item.outcome_status),
            severity=severity,
            identified_value=value,
            decided_value=value,
        )

    kids = item.live_children
    own = unattributed_group_total(item, vat_rate=vat_rate)
    decision = fold_group_decision(c.outcome_status for c in kids)
    if decision is None:
        return ResolvedItem(
            item_id=item.id,
            is_group=True,
            decision=None,
            severity=severity,
            identified_value=own,
            decided_value=0.0,
        )

    identified = own + sum(effective_total(c, vat_rate=vat_rate) for c in kids)
    if decision == PENDING:
        decided = identified
    else:
        # declined/deferred mixes fold to deferred; only deferred children count there
        decided = sum(
            effective_total(c, vat_rate=vat_rate)
            for c in kids
            if normalize_decision(c.outcome_status) == decision
        )

    return ResolvedItem(
        item_id=item.id,
        is_group=True,
        decision=decision,
        severity=severity,
        identified_value=identified,
        decided_value=decided,
    )


# -----------------------------
# Buckets
# -----------------------------
@dataclass
class Bucket:
    count: int = 0
    value: float = 0.0

    def add(self, value: float) -> None:
        self.count += 1
        self.value += float(value)

    def as_dict(self) -> dict:
        return {"count": self.count, "value": _r2(self.value)}


def _rag_buckets() -> dict[str, Bucket]:
    return {s: Bucket() for s in SEVERITIES}


@dataclass
class DecisionBuckets:
    total: Bucket = field(default_factory=Bucket)
    by_rag: dict[str, Bucket] = field(default_factory=_rag_buckets)

    def add(self, value: float, severity: Optional[str]) -> None:
        self.total.add(value)
        if severity in self.by_rag:
            self.by_rag[severity].add(value)

    def as_dict(self) -> dict:
        return {
            **self.total.as_dict(),
            "by_rag": {k: b.as_dict() for k, b in self.by_rag.items()},
        }


@dataclass(frozen=True)
class OutcomeSummary:
    implied_status: Optional[str]
    all_have_outcomes: bool
    considered_count: int
    authorised_count: int
    decided_count: int
    identified: DecisionBuckets
    authorized: DecisionBuckets
    declined: DecisionBuckets
    deferred: DecisionBuckets
    pending: DecisionBuckets
    rag_counts: dict[str, int]
    items: tuple[ResolvedItem, ...]

    @property
    def total_identified(self) -> float:
        return _r2(self.identified.total.value)

    @property
    def total_authorized(self) -> float:
        return _r2(self.authorized.total.value)

    @property
    def total_declined(self) -> float:
        return _r2(self.declined.total.value)

    @property
    def total_deferred(self) -> float:
        return _r2(self.deferred.total.value)

    def as_dict(self) -> dict:
        return {
            "implied_status": self.implied_status,
            "all_have_outcomes": self.all_have_outcomes,
            "considered_count": self.considered_count,
            "authorised_count": self.authorised_count,
            "decided_count": self.decided_count,
            "identified": self.identified.as_dict(),
            "authorized": self.authorized.as_dict(),
            "declined": self.declined.as_dict(),
            "deferred": self.deferred.as_dict(),
            "pending": self.pending.as_dict(),
            "rag_counts": dict(self.rag_counts),
            "items": [i.as_dict() for i in self.items],
        }


def implied_status(decisions: Iterable[Optional[str]]) -> Optional[str]:
    """
    Document status implied by the resolved top-level decisions.

    None entries (groups without live children) are ignored. Returns None
    while nothing has been decided.
    """
    ds = [d for d in decisions if d is not None]
    if not ds:
        return None
    all_have = all(d != PENDING for d in ds)
    any_auth = any(d == AUTHORISED for d in ds)
    if all_have:
        return "authorized" if any_auth else "declined"
    if any(d != PENDING for d in ds):
        return "partial_response"
    return None


def summarize(agg: HealthCheckAggregate, *, vat_rate: float) -> OutcomeSummary:
    identified = DecisionBuckets()
    authorized = DecisionBuckets()
    declined = DecisionBuckets()
    deferred = DecisionBuckets()
    pending = DecisionBuckets()

    resolved: list[ResolvedItem] = []
    for item in agg.live_items:
        r = resolve_item(item, vat_rate=vat_rate)
        resolved.append(r)

        identified.add(r.identified_value, r.severity)
        if r.decision is None:
            continue
        if r.decision == AUTHORISED:
            authorized.add(r.decided_value, r.severity)
        elif r.decision == DECLINED:
            declined.add(r.decided_value, r.severity)
        elif r.decision == DEFERRED:
            deferred.add(r.decided_value, r.severity)
        else:
            pending.add(r.decided_value, r.severity)

    decisions = [r.decision for r in resolved if r.decision is not None]
    status = implied_status(decisions)

    return OutcomeSummary(
        implied_status=status,
        all_have_outcomes=bool(decisions) and all(d != PENDING for d in decisions),
        considered_count=len(decisions),
        authorised_count=sum(1 for d in decisions if d == AUTHORISED),
        decided_count=sum(1 for d in decisions if d != PENDING),
        identified=identified,
        authorized=authorized,
        declined=declined,
        deferred=deferred,
        pending=pending,
        rag_counts=rag_counts(agg.finding_severities),
        items=tuple(resolved),
    )
