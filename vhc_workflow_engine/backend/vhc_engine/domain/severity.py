# backend/vhc_engine/domain/severity.py
from __future__ import annotations

from typing import Iterable, Optional

RED = "red"
AMBER = "amber"
GREEN = "green"

SEVERITY_RANK: dict[str, int] = {RED: 3, AMBER: 2, GREEN: 1}
SEVERITIES: tuple[str, ...] = (RED, AMBER, GREEN)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    v = str(value).strip().lower()
    return v if v in SEVERITY_RANK else None


def resolve_severity(findings: Iterable[Optional[str]]) -> Optional[str]:
    """
    Fold severities with red > amber > green > None.

    Order independent: the result only depends on the set of values seen.
    Unknown strings are treated like missing data.
    """
    best: Optional[str] = None
    for f in findings:
        s = _clean(f)
        if s is None:
            continue
        if best is None or SEVERITY_RANK[s] > SEVERITY_RANK[best]:
            best = s
    return best


def resolve_item_severity(link_severities: Iterable[Optional[str]], override: Optional[str] = None) -> Optional[str]:
    """
    Severity of a leaf repair item.

    Linked check results are folded first. A direct override (MRI scans and
    other non-link sources) wins unless the links produce something stronger,
    which is the same as folding the override in with the links.
    """
    return resolve_severity([*link_severities, override])


def resolve_group_severity(child_severities: Iterable[Optional[str]]) -> Optional[str]:
    """A group's severity comes only from its children's resolved severities."""
    return resolve_severity(child_severities)


def rag_counts(severities: Iterable[Optional[str]]) -> dict[str, int]:
    counts = {RED: 0, AMBER: 0, GREEN: 0}
    for s in severities:
        c = _clean(s)
        if c is not None:
            counts[c] += 1
    return counts
