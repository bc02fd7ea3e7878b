# backend/vhc_engine/domain/transitions.py
from __future__ import annotations

from typing import Mapping, Optional

# -----------------------------------------------------------------------------
# Health check status graph
# -----------------------------------------------------------------------------
# Two intake paths (arrival only / arrival + check-in) converge on "created"
# and from there share the repair -> quote -> send -> respond pipeline.
# completed and cancelled are terminal.
# -----------------------------------------------------------------------------

TRANSITIONS: Mapping[str, frozenset[str]] = {
    "awaiting_arrival": frozenset({"awaiting_checkin", "created", "no_show", "cancelled"}),
    "awaiting_checkin": frozenset({"created", "cancelled"}),
    "no_show": frozenset({"awaiting_arrival", "cancelled"}),
    "created": frozenset({"assigned", "cancelled"}),
    "assigned": frozenset({"in_progress", "cancelled"}),
    "in_progress": frozenset({"paused", "tech_completed", "cancelled"}),
    "paused": frozenset({"in_progress", "cancelled"}),
    "tech_completed": frozenset({"awaiting_review", "awaiting_pricing"}),
    "awaiting_review": frozenset({"awaiting_pricing", "ready_to_send"}),
    "awaiting_pricing": frozenset({"awaiting_parts", "ready_to_send"}),
    "awaiting_parts": frozenset({"ready_to_send"}),
    "ready_to_send": frozenset({"sent"}),
    "sent": frozenset({"delivered", "expired"}),
    "delivered": frozenset({"opened", "expired"}),
    "opened": frozenset({"partial_response", "authorized", "declined", "expired"}),
    "partial_response": frozenset({"authorized", "declined", "expired"}),
    "authorized": frozenset({"completed"}),
    "declined": frozenset({"completed"}),
    "expired": frozenset({"completed"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
}

ALL_STATUSES: frozenset[str] = frozenset(TRANSITIONS)
TERMINAL_STATUSES: frozenset[str] = frozenset(s for s, nxt in TRANSITIONS.items() if not nxt)

# Statuses from which an advisor may record the customer's answer in person.
ADVISOR_AUTHORIZE_FROM: frozenset[str] = frozenset(
    {"ready_to_send", "sent", "delivered", "opened", "partial_response", "expired"}
)

# Recompute never raises on a transition missing from the graph: the decision
# write stands and the document simply keeps its current status. Explicit
# staff status changes (change_status) do not use this policy; they raise.
SILENT_TRANSITION_SKIP: bool = True


def is_valid_transition(from_status: Optional[str], to_status: Optional[str]) -> bool:
    """Pure lookup. Unknown or missing statuses are simply not valid."""
    if not from_status or not to_status:
        return False
    return to_status in TRANSITIONS.get(from_status, frozenset())


def allowed_next(from_status: Optional[str]) -> frozenset[str]:
    return TRANSITIONS.get(from_status or "", frozenset())


def is_terminal(status: Optional[str]) -> bool:
    return status in TERMINAL_STATUSES


def arrival_target(*, checkin_enabled: bool) -> str:
    return "awaiting_checkin" if checkin_enabled else "created"
