# backend/tests/test_staff_api.py
from __future__ import annotations

from fastapi.testclient import TestClient

from vhc_engine.cli.seed_demo import seed_demo
from vhc_engine.main import create_app


def _headers(org_slug: str = "demo", email: str = "advisor@demo.local") -> dict[str, str]:
    return {"X-Org-Slug": org_slug, "X-User-Email": email}


def _client() -> TestClient:
    return TestClient(create_app())


def test_health_and_transition_graph():
    client = _client()
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json()["ok"] is True
    assert "x-request-id" in {k.lower() for k in r.headers.keys()}

    graph = client.get("/api/meta/transitions").json()
    assert graph["completed"] == []
    assert graph["opened"] == ["authorized", "declined", "expired", "partial_response"]


def test_missing_org_header_is_401():
    seed = seed_demo()
    r = _client().get(f"/api/health-checks/{seed.health_check_id}")
    assert r.status_code == 401


def test_cross_org_health_check_is_hidden():
    seed = seed_demo()
    client = _client()

    r1 = client.get(f"/api/health-checks/{seed.health_check_id}", headers=_headers())
    assert r1.status_code == 200
    assert r1.json()["status"] == "opened"

    r2 = client.get(f"/api/health-checks/{seed.health_check_id}", headers=_headers("intruder", "x@intruder.local"))
    assert r2.status_code == 404

    r3 = client.post(
        f"/api/health-checks/{seed.health_check_id}/repair-items/{seed.repair_item_ids['wipers']}/outcome",
        json={"decision": "declined"},
        headers=_headers("intruder", "x@intruder.local"),
    )
    assert r3.status_code == 404


def test_outcome_totals_and_history_round_trip():
    seed = seed_demo()
    client = _client()
    base = f"/api/health-checks/{seed.health_check_id}"

    r = client.post(
        f"{base}/repair-items/{seed.repair_item_ids['wipers']}/outcome",
        json={"decision": "authorised"},
        headers=_headers(),
    )
    assert r.status_code == 200
    assert r.json()["new_status"] == "partial_response"

    totals = client.get(f"{base}/totals", headers=_headers()).json()
    assert totals["authorized"]["value"] == 96.0
    assert totals["implied_status"] == "partial_response"

    history = client.get(f"{base}/history", headers=_headers()).json()
    assert [(h["from_status"], h["to_status"], h["change_source"]) for h in history] == [
        ("opened", "partial_response", "user")
    ]

    hc = client.get(base, headers=_headers()).json()
    assert hc["total_authorized"] == 96.0
    assert hc["red_count"] == 2


def test_validation_and_status_errors_map_to_http_codes():
    seed = seed_demo()
    client = _client()
    base = f"/api/health-checks/{seed.health_check_id}"

    r = client.post(
        f"{base}/repair-items/{seed.repair_item_ids['brakes']}/outcome",
        json={"decision": "authorised"},
        headers=_headers(),
    )
    assert r.status_code == 422

    r = client.post(f"{base}/status", json={"status": "created"}, headers=_headers())
    assert r.status_code == 409
    assert r.json()["current_status"] == "opened"

    r = client.post(f"{base}/authorize", json={"authorization_method": "phone"}, headers=_headers())
    assert r.status_code == 422
    assert "pending_item_ids" in r.json()["details"]


def test_bulk_outcome_then_recompute_is_stable():
    seed = seed_demo()
    client = _client()
    base = f"/api/health-checks/{seed.health_check_id}"

    r = client.post(f"{base}/repair-items/bulk-outcome", json={"decision": "declined"}, headers=_headers())
    assert r.status_code == 200
    assert r.json()["new_status"] == "declined"

    r = client.post(f"{base}/recompute", headers=_headers())
    assert r.status_code == 200
    assert r.json()["new_status"] is None
    assert r.json()["previous_status"] == "declined"


def test_group_ungroup_and_delete_endpoints():
    seed = seed_demo()
    client = _client()
    base = f"/api/health-checks/{seed.health_check_id}/repair-items"

    r = client.post(
        f"{base}/groups",
        json={"name": "Visibility", "repair_item_ids": [seed.repair_item_ids["wipers"]]},
        headers=_headers(),
    )
    assert r.status_code == 200
    group_id = r.json()["group_id"]
    assert r.json()["migrated_labour"] == 1

    r = client.post(f"{base}/{group_id}/ungroup", headers=_headers())
    assert r.status_code == 200
    # the migrated lines go back to the wipers, leaving an empty container
    assert r.json()["group_deleted"] is True
    assert r.json()["restored_lines"] == 2

    r = client.request(
        "DELETE",
        f"{base}/{seed.repair_item_ids['brakes']}",
        json={"reason": "Duplicate"},
        headers=_headers(),
    )
    assert r.status_code == 200

    r = client.post(
        f"{base}/{seed.repair_item_ids['brakes']}/outcome",
        json={"decision": "declined"},
        headers=_headers(),
    )
    assert r.status_code == 404
