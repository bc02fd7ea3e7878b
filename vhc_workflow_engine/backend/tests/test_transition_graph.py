# backend/tests/test_transition_graph.py
from __future__ import annotations

from vhc_engine.domain.transitions import (
    ALL_STATUSES,
    TERMINAL_STATUSES,
    allowed_next,
    arrival_target,
    is_terminal,
    is_valid_transition,
)

# Written out by hand so a wrong or missing edge in the graph shows up here.
EXPECTED_EDGES = {
    ("awaiting_arrival", "awaiting_checkin"),
    ("awaiting_arrival", "created"),
    ("awaiting_arrival", "no_show"),
    ("awaiting_arrival", "cancelled"),
    ("awaiting_checkin", "created"),
    ("awaiting_checkin", "cancelled"),
    ("no_show", "awaiting_arrival"),
    ("no_show", "cancelled"),
    ("created", "assigned"),
    ("created", "cancelled"),
    ("assigned", "in_progress"),
    ("assigned", "cancelled"),
    ("in_progress", "paused"),
    ("in_progress", "tech_completed"),
    ("in_progress", "cancelled"),
    ("paused", "in_progress"),
    ("paused", "cancelled"),
    ("tech_completed", "awaiting_review"),
    ("tech_completed", "awaiting_pricing"),
    ("awaiting_review", "awaiting_pricing"),
    ("awaiting_review", "ready_to_send"),
    ("awaiting_pricing", "awaiting_parts"),
    ("awaiting_pricing", "ready_to_send"),
    ("awaiting_parts", "ready_to_send"),
    ("ready_to_send", "sent"),
    ("sent", "delivered"),
    ("sent", "expired"),
    ("delivered", "opened"),
    ("delivered", "expired"),
    ("opened", "partial_response"),
    ("opened", "authorized"),
    ("opened", "declined"),
    ("opened", "expired"),
    ("partial_response", "authorized"),
    ("partial_response", "declined"),
    ("partial_response", "expired"),
    ("authorized", "completed"),
    ("declined", "completed"),
    ("expired", "completed"),
}

EXPECTED_STATUSES = {s for edge in EXPECTED_EDGES for s in edge}


def test_graph_has_exactly_the_expected_statuses():
    assert ALL_STATUSES == EXPECTED_STATUSES


def test_exactly_the_expected_edges_are_valid():
    for src in EXPECTED_STATUSES:
        for dst in EXPECTED_STATUSES:
            assert is_valid_transition(src, dst) is ((src, dst) in EXPECTED_EDGES), (src, dst)


def test_allowed_next_matches_expected_edges():
    for src in EXPECTED_STATUSES:
        assert allowed_next(src) == {dst for s, dst in EXPECTED_EDGES if s == src}, src


def test_terminal_statuses_are_the_ones_without_exits():
    sources = {src for src, _ in EXPECTED_EDGES}
    for s in EXPECTED_STATUSES:
        assert is_terminal(s) is (s not in sources), s
    assert TERMINAL_STATUSES == {"completed", "cancelled"}
    assert not is_terminal("bogus")
    assert not is_terminal(None)


def test_unknown_or_missing_statuses_are_not_valid():
    assert is_valid_transition("bogus", "created") is False
    assert is_valid_transition("created", "bogus") is False
    assert is_valid_transition(None, "created") is False
    assert is_valid_transition("opened", None) is False
    assert allowed_next("bogus") == frozenset()


def test_no_way_back_from_a_full_response():
    assert not is_valid_transition("authorized", "partial_response")
    assert not is_valid_transition("declined", "authorized")


def test_arrival_target_follows_checkin_setting():
    assert arrival_target(checkin_enabled=True) == "awaiting_checkin"
    assert arrival_target(checkin_enabled=False) == "created"
