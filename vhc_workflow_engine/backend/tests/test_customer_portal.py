# backend/tests/test_customer_portal.py
from __future__ import annotations

from datetime import datetime, timedelta

from fastapi.testclient import TestClient
from sqlalchemy import select

from vhc_engine.cli.seed_demo import seed_demo
from vhc_engine.db import SessionLocal
from vhc_engine.main import create_app
from vhc_engine.models import HealthCheck, RepairItem, RepairOption, StatusHistory


def _client() -> TestClient:
    return TestClient(create_app())


def _recommended_option_id(item_id: int) -> int:
    db = SessionLocal()
    try:
        return int(
            db.scalar(
                select(RepairOption.id).where(
                    RepairOption.repair_item_id == item_id, RepairOption.is_recommended.is_(True)
                )
            )
        )
    finally:
        db.close()


def _hc(hc_id: int) -> HealthCheck:
    db = SessionLocal()
    try:
        return db.get(HealthCheck, hc_id)
    finally:
        db.close()


def _item(item_id: int) -> RepairItem:
    db = SessionLocal()
    try:
        return db.get(RepairItem, item_id)
    finally:
        db.close()


def test_unknown_token_is_404():
    r = _client().get("/api/public/vhc/not-a-token")
    assert r.status_code == 404


def test_expired_link_is_410():
    seed = seed_demo()
    db = SessionLocal()
    try:
        hc = db.get(HealthCheck, seed.health_check_id)
        hc.token_expires_at = datetime.utcnow() - timedelta(hours=1)
        db.commit()
    finally:
        db.close()

    r = _client().get(f"/api/public/vhc/{seed.public_token}")
    assert r.status_code == 410
    assert r.json()["expired"] is True


def test_first_view_opens_a_delivered_health_check():
    seed = seed_demo(status="delivered")
    client = _client()

    r1 = client.get(f"/api/public/vhc/{seed.public_token}")
    assert r1.status_code == 200
    body = r1.json()
    assert body["status"] == "opened"
    assert body["view_count"] == 1
    names = {i["name"] for i in body["items"]}
    assert {"Front brake pads", "Wiper blades", "Suspension"} <= names
    suspension = next(i for i in body["items"] if i["name"] == "Suspension")
    assert suspension["severity"] == "red"
    assert len(suspension["children"]) == 2

    r2 = client.get(f"/api/public/vhc/{seed.public_token}")
    assert r2.json()["view_count"] == 2

    db = SessionLocal()
    try:
        rows = db.scalars(select(StatusHistory).where(StatusHistory.health_check_id == seed.health_check_id)).all()
        assert [(h.to_status, h.change_source) for h in rows] == [("opened", "customer_portal")]
    finally:
        db.close()


def test_approve_requires_an_option_when_item_has_options():
    seed = seed_demo()
    client = _client()
    brakes = seed.repair_item_ids["brakes"]

    r = client.post(f"/api/public/vhc/{seed.public_token}/repair-items/{brakes}/approve", json={})
    assert r.status_code == 422
    assert r.json()["detail"] == "Please select an option before approving"

    r = client.post(
        f"/api/public/vhc/{seed.public_token}/repair-items/{brakes}/approve",
        json={"selected_option_id": _recommended_option_id(brakes), "notes": "Go ahead"},
    )
    assert r.status_code == 200
    assert r.json()["new_status"] == "partial_response"

    item = _item(brakes)
    assert item.outcome_source == "online"
    assert item.customer_approved is True
    assert item.customer_approved_at is not None
    assert item.customer_notes == "Go ahead"


def test_decline_item_records_reason():
    seed = seed_demo()
    wipers = seed.repair_item_ids["wipers"]
    r = _client().post(
        f"/api/public/vhc/{seed.public_token}/repair-items/{wipers}/decline",
        json={"reason": "Will do it myself"},
    )
    assert r.status_code == 200
    item = _item(wipers)
    assert item.outcome_status == "declined"
    assert item.declined_reason == "Will do it myself"
    assert item.customer_approved is False


def test_approve_all_authorizes_online():
    seed = seed_demo()
    r = _client().post(f"/api/public/vhc/{seed.public_token}/repair-items/approve-all")
    assert r.status_code == 200
    body = r.json()
    assert body["decision"] == "authorised"
    assert body["new_status"] == "authorized"
    assert body["totals"]["authorized"]["value"] == 576.0

    hc = _hc(seed.health_check_id)
    assert hc.status == "authorized"
    assert hc.authorization_method == "online"
    assert _item(seed.repair_item_ids["brakes"]).selected_option_id == _recommended_option_id(
        seed.repair_item_ids["brakes"]
    )


def test_decline_all_skips_items_already_decided():
    seed = seed_demo()
    client = _client()
    wipers = seed.repair_item_ids["wipers"]
    client.post(f"/api/public/vhc/{seed.public_token}/repair-items/{wipers}/approve", json={})

    r = client.post(f"/api/public/vhc/{seed.public_token}/repair-items/decline-all")
    assert r.status_code == 200
    assert wipers not in r.json()["repair_item_ids"]
    assert r.json()["new_status"] == "authorized"

    assert _item(wipers).outcome_status == "authorised"
    assert _item(seed.repair_item_ids["shock_left"]).declined_reason == "Declined all"


def test_sign_needs_signature_and_an_approved_item():
    seed = seed_demo()
    client = _client()
    base = f"/api/public/vhc/{seed.public_token}/repair-items"

    assert client.post(f"{base}/sign", json={"signature_data": ""}).status_code == 422
    assert client.post(f"{base}/sign", json={"signature_data": "data:image/png;base64,AAAA"}).status_code == 422

    client.post(f"{base}/{seed.repair_item_ids['wipers']}/approve", json={})
    r = client.post(f"{base}/sign", json={"signature_data": "data:image/png;base64,AAAA"})
    assert r.status_code == 200
    assert r.json() == {"success": True, "signed_items": 1}
    assert _item(seed.repair_item_ids["wipers"]).customer_signature_data == "data:image/png;base64,AAAA"
