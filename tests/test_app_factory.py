"""App factory, request timing headers, JSON logging and config tunables."""

import json
import logging

from assessment_platform.config import TestingConfig
from assessment_platform.middleware.logging_config import JSONFormatter


def test_health(client):
    res = client.get("/api/v1/health")
    assert res.status_code == 200
    assert res.get_json()["status"] == "ok"


def test_request_id_is_propagated(client):
    res = client.get("/api/v1/health", headers={"X-Request-ID": "abc123"})
    assert res.headers["X-Request-ID"] == "abc123"
    assert float(res.headers["X-Request-Duration-Ms"]) >= 0


def test_unknown_route_returns_json_404(client):
    res = client.get("/api/v1/nope")
    assert res.status_code == 404
    assert res.get_json()["path"] == "/api/v1/nope"


def test_testing_config_defaults(app):
    assert app.config["TESTING"] is True
    assert app.config["RATELIMIT_ENABLED"] is False
    assert app.config["CHANGE_IMPACT_ESCALATION_THRESHOLD"] == 20
    assert app.config["CROSS_PHASE_MATERIAL_CHANGE_PP"] == 1.0
    assert app.config["TRANSACTION_RETRY_ATTEMPTS"] == 3
    assert "completed" in TestingConfig.SIGNOFF_SNAPSHOT_CHECKPOINTS


def test_json_formatter_promotes_domain_fields():
    record = logging.LogRecord(
        name="assessment_platform.services.snapshot_service",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Snapshot v%d created",
        args=(3,),
        exc_info=None,
    )
    record.assessment_id = "a-1"
    record.snapshot_version = 3
    record.event_type = "snapshot_created"

    entry = json.loads(JSONFormatter().format(record))

    assert entry["message"] == "Snapshot v3 created"
    assert entry["assessment_id"] == "a-1"
    assert entry["snapshot_version"] == 3
    assert entry["event_type"] == "snapshot_created"
    assert "process_id" not in entry
