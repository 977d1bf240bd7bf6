import json
import logging

from fastapi.testclient import TestClient

from src.api.main import app
from src.api.observability import JsonFormatter, correlation_id_var, session_id_var


def test_health_reports_session_state():
    with TestClient(app) as client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "session_id": None, "lifecycle": "ABSENT"}


def test_correlation_headers_are_exposed():
    with TestClient(app) as client:
        response = client.get("/session", headers={"X-Correlation-Id": "corr_session_1"})

    assert response.status_code == 200
    assert response.headers.get("X-Correlation-Id") == "corr_session_1"
    assert response.headers.get("X-Request-Id")
    assert response.headers.get("X-Trace-Id")
    assert response.headers.get("X-Session-Id") is None


def test_traceparent_header_propagates_trace_id():
    upstream_trace_id = "1234567890abcdef1234567890abcdef"
    with TestClient(app) as client:
        response = client.get(
            "/session",
            headers={"traceparent": f"00-{upstream_trace_id}-0000000000000001-01"},
        )

    assert response.headers.get("X-Trace-Id") == upstream_trace_id
    assert response.headers.get("traceparent", "").startswith(f"00-{upstream_trace_id}-")


def test_session_header_reports_the_session_a_request_ended_with():
    with TestClient(app) as client:
        created = client.post("/session")
        fetched = client.get("/session")

    assert created.headers.get("X-Session-Id") == "scn_001"
    assert fetched.headers.get("X-Session-Id") == "scn_001"


def test_metrics_endpoint_available():
    with TestClient(app) as client:
        client.get("/session")
        response = client.get("/metrics")

    assert response.status_code == 200
    assert "http_requests_total" in response.text or "http_request_duration" in response.text


def test_json_formatter_merges_context_and_extra_fields():
    record = logging.LogRecord(
        name="session", level=logging.INFO, pathname=__file__, lineno=1,
        msg="session.created", args=(), exc_info=None,
    )
    record.extra_fields = {"session_id": "scn_9", "elapsed_ms": 1.5}
    correlation_token = correlation_id_var.set("corr_1")
    session_token = session_id_var.set("scn_1")
    try:
        payload = json.loads(JsonFormatter().format(record))
    finally:
        correlation_id_var.reset(correlation_token)
        session_id_var.reset(session_token)

    assert payload["message"] == "session.created"
    assert payload["level"] == "INFO"
    assert payload["correlation_id"] == "corr_1"
    assert payload["session_id"] == "scn_9"
    assert payload["elapsed_ms"] == 1.5
    assert "request_id" not in payload
