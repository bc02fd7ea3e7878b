# backend/vhc_engine/domain/aggregate.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

# -----------------------------------------------------------------------------
# Normalized, read-only shape of one health check.
#
# The repository builds these from ORM rows; the rules in severity.py and
# outcomes.py only ever see this shape. Repair items form a one-level tree:
# top-level items (groups or leaves) and, under a group, its children.
# -----------------------------------------------------------------------------

PENDING = "pending"
AUTHORISED = "authorised"
DECLINED = "declined"
DEFERRED = "deferred"

DECISIONS: tuple[str, ...] = (PENDING, AUTHORISED, DECLINED, DEFERRED)


def normalize_decision(value: Optional[str]) -> str:
    v = (value or "").strip().lower()
    if v == "authorized":
        return AUTHORISED
    return v if v in DECISIONS else PENDING


@dataclass(frozen=True)
class OptionNode:
    id: int
    name: str
    is_recommended: bool = False
    sort_order: int = 0
    labour_total: float = 0.0
    parts_total: float = 0.0
    total_inc_vat: float = 0.0
    has_pricing_lines: bool = False

    @property
    def is_priced(self) -> bool:
        return self.has_pricing_lines or self.total_inc_vat > 0 or (self.labour_total + self.parts_total) > 0


@dataclass(frozen=True)
class RepairItemNode:
    id: int
    name: str
    is_group: bool = False
    parent_id: Optional[int] = None
    outcome_status: str = PENDING
    selected_option_id: Optional[int] = None
    customer_approved: Optional[bool] = None
    labour_total: float = 0.0
    parts_total: float = 0.0
    total_inc_vat: float = 0.0
    rag_override: Optional[str] = None
    link_severities: tuple[Optional[str], ...] = ()
    options: tuple[OptionNode, ...] = ()
    children: tuple["RepairItemNode", ...] = ()
    deleted: bool = False
    has_pricing_lines: bool = False
    # ex-VAT labour/parts this child moved onto its group's option when regrouped
    moved_subtotal: float = 0.0

    @property
    def live_children(self) -> tuple["RepairItemNode", ...]:
        return tuple(c for c in self.children if not c.deleted)

    @property
    def selected_option(self) -> Optional[OptionNode]:
        if self.selected_option_id is None:
            return None
        for o in self.options:
            if o.id == self.selected_option_id:
                return o
        return None

    @property
    def carries_own_pricing(self) -> bool:
        if self.has_pricing_lines or self.total_inc_vat > 0 or (self.labour_total + self.parts_total) > 0:
            return True
        return any(o.is_priced for o in self.options)


@dataclass(frozen=True)
class HealthCheckAggregate:
    id: int
    org_id: int
    status: str
    items: tuple[RepairItemNode, ...] = ()
    finding_severities: tuple[Optional[str], ...] = field(default=())

    @property
    def live_items(self) -> tuple[RepairItemNode, ...]:
        return tuple(i for i in self.items if not i.deleted)

    def find(self, item_id: int) -> Optional[RepairItemNode]:
        for i in self.items:
            if i.id == item_id:
                return i
            for c in i.children:
                if c.id == item_id:
                    return c
        return None
