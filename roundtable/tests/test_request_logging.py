"""Request ids and structured log output."""

import json
import logging

from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from roundtable.core.logging import JsonFormatter, PrettyFormatter, latency_bucket_ms, log_event, request_id_ctx_var
from roundtable.core.middleware.request_id import RequestIdMiddleware


def _make_app():
    app = FastAPI()
    app.add_middleware(RequestIdMiddleware)

    @app.get("/")
    async def root(request: Request):
        return {"request_id": getattr(request.state, "request_id", None)}

    return app


def test_generates_request_id_when_missing():
    resp = TestClient(_make_app()).get("/")
    assert resp.headers["x-request-id"]
    assert resp.headers["x-request-id"] == resp.json()["request_id"]


def test_echoes_provided_request_id():
    resp = TestClient(_make_app()).get("/", headers={"X-Request-Id": "test-rid-123"})
    assert resp.headers["x-request-id"] == "test-rid-123"
    assert resp.json()["request_id"] == "test-rid-123"


def test_request_id_in_logs(client, caplog):
    with caplog.at_level(logging.INFO, logger="roundtable"):
        resp = client.get("/healthz")
    rid = resp.headers["x-request-id"]
    completed = [r for r in caplog.records if r.getMessage() == "request.complete"]
    assert completed
    assert completed[-1].request_id == rid
    assert completed[-1].path == "/healthz"


def test_json_formatter_includes_extra_fields():
    record = logging.LogRecord("roundtable", logging.INFO, __file__, 1, "newsletter.created", None, None)
    record.newsletter_id = "n1"
    record.request_id = "r1"
    payload = json.loads(JsonFormatter().format(record))
    assert payload["message"] == "newsletter.created"
    assert payload["newsletter_id"] == "n1"
    assert payload["request_id"] == "r1"


def test_log_event_uses_context_request_id(caplog):
    token = request_id_ctx_var.set("ctx-rid")
    try:
        with caplog.at_level(logging.INFO, logger="roundtable"):
            log_event("info", "membership.added", user_id="u1", newsletter_id="n1")
    finally:
        request_id_ctx_var.reset(token)
    record = caplog.records[-1]
    assert record.getMessage() == "membership.added"
    assert record.request_id == "ctx-rid"
    assert record.newsletter_id == "n1"


def test_latency_buckets():
    assert latency_bucket_ms(None) == "unknown"
    assert latency_bucket_ms(5) != latency_bucket_ms(5000)


def test_pretty_formatter_appends_fields():
    record = logging.LogRecord("roundtable.sessions", logging.INFO, __file__, 1, "session.created", None, None)
    record.session_id = "s1"
    record.request_id = "r1"
    line = PrettyFormatter().format(record)
    assert "[roundtable.sessions] [rid=r1] session.created session_id=s1" in line


def test_log_event_clips_long_extras(caplog):
    with caplog.at_level(logging.INFO, logger="roundtable"):
        log_event("info", "membership.added", extra={"note": "x" * 2000})
    assert caplog.records[-1].note.endswith("...<truncated>")
    assert len(caplog.records[-1].note) < 600
