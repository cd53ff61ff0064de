"""
Health endpoints and request middleware tests.
"""

import json
import logging

from app.middleware.logging_config import JSONFormatter


def test_ready(client):
    res = client.get("/api/v1/health/ready")
    assert res.status_code == 200
    assert res.get_json() == {"status": "ok"}


def test_live_reports_database_and_cache(client):
    res = client.get("/api/v1/health/live")
    assert res.status_code == 200
    checks = res.get_json()["checks"]
    assert checks["database"]["status"] == "ok"
    assert checks["cache"] == {"status": "ok", "backend": "memory"}


def test_request_id_echoed(client):
    res = client.get("/api/v1/health/ready", headers={"X-Request-ID": "abc123"})
    assert res.headers["X-Request-ID"] == "abc123"
    assert "X-Request-Duration-Ms" in res.headers


def test_request_id_generated(client):
    res = client.get("/api/v1/health/ready")
    assert len(res.headers["X-Request-ID"]) == 12


def test_unknown_route_json_404(client):
    res = client.get("/api/v1/nope")
    assert res.status_code == 404
    assert res.get_json()["code"] == "ERR_NOT_FOUND"


def test_json_formatter_includes_extras():
    record = logging.LogRecord("app.test", logging.WARNING, __file__, 1, "SLA escalation opened", None, None)
    record.owner_id = 3
    record.order_id = 7
    record.severity = "critical"

    payload = json.loads(JSONFormatter().format(record))

    assert payload["message"] == "SLA escalation opened"
    assert payload["owner_id"] == 3
    assert payload["order_id"] == 7
    assert payload["severity"] == "critical"
    assert "project_id" not in payload
