import json
import logging

from shared.core.health import HealthStatus, ServiceHealth
from shared.core.logging_config import SecurityFilter, StructuredFormatter


def test_root_and_info(client):
    assert client.get("/").json()["service"] == "apothecary-service"
    endpoints = client.get("/info").json()["endpoints"]
    assert endpoints["ready"] == "/health/ready"


def test_health_probes(client):
    assert client.get("/health").json()["status"] == "pass"
    assert client.get("/health/live").json() == {"status": "alive"}

    ready = client.get("/health/ready")
    assert ready.status_code in (200, 503)
    assert ready.json()["checks"]["database:connectivity"]["status"] == "pass"


def test_startup_reports_missing_migrations(client):
    resp = client.get("/health/startup")
    assert resp.status_code == 503
    checks = resp.json()["checks"]
    assert checks["database:migrations"]["status"] == "warn"


def test_metrics(client):
    body = client.get("/metrics").json()
    assert body["service"] == "apothecary-service"
    assert "uptime_seconds" in body


def test_request_id_is_echoed(client):
    resp = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert resp.headers["X-Request-ID"] == "req-123"


def test_overall_status():
    assert ServiceHealth.overall_status({"a": {"status": HealthStatus.PASS}}) == HealthStatus.PASS
    mixed = {"a": {"status": HealthStatus.PASS}, "b": {"status": HealthStatus.WARN}}
    assert ServiceHealth.overall_status(mixed) == HealthStatus.WARN
    mixed["c"] = {"status": HealthStatus.FAIL}
    assert ServiceHealth.overall_status(mixed) == HealthStatus.FAIL


def test_secrets_are_redacted_in_structured_logs():
    record = logging.LogRecord("apothecary", logging.INFO, __file__, 1, "Token issued", None, None)
    record.extra_fields = {"user_id": "user-1", "access_token": "abc", "nested": {"password": "pw"}}
    assert SecurityFilter().filter(record)

    line = json.loads(StructuredFormatter("apothecary-service").format(record))
    assert line["message"] == "Token issued"
    assert line["service"] == "apothecary-service"
    assert line["custom"]["user_id"] == "user-1"
    assert line["custom"]["access_token"] == "***REDACTED***"
    assert line["custom"]["nested"]["password"] == "***REDACTED***"
