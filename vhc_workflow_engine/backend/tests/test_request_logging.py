# backend/tests/test_request_logging.py
from __future__ import annotations

import json
import logging

from fastapi.testclient import TestClient

from vhc_engine.logging_config import JsonFormatter
from vhc_engine.main import create_app
from vhc_engine.middleware.structured_logging import redact_path


def test_portal_token_is_redacted():
    assert redact_path("/api/public/vhc/abc123/repair-items/7/approve") == "/api/public/vhc/<token>/repair-items/7/approve"
    assert redact_path("/api/public/vhc/abc123") == "/api/public/vhc/<token>"
    assert redact_path("/api/health-checks/7") == "/api/health-checks/7"


def test_request_id_is_echoed_or_generated():
    client = TestClient(create_app())

    r = client.get("/api/health", headers={"X-Request-ID": "edge-42"})
    assert r.headers["X-Request-ID"] == "edge-42"

    # header values that could smuggle content into logs are replaced
    r = client.get("/api/health", headers={"X-Request-ID": "bad id with spaces"})
    assert r.headers["X-Request-ID"] != "bad id with spaces"
    assert len(r.headers["X-Request-ID"]) == 32


def test_json_formatter_keeps_whitelisted_extras_only():
    rec = logging.LogRecord("vhc_engine.test", logging.INFO, __file__, 1, "health_check_status_changed", None, None)
    rec.health_check_id = 7
    rec.to_status = "authorized"
    rec.secret = "nope"

    out = json.loads(JsonFormatter().format(rec))
    assert out["message"] == "health_check_status_changed"
    assert out["health_check_id"] == 7
    assert out["to_status"] == "authorized"
    assert "secret" not in out
