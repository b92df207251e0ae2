from __future__ import annotations

import logging

from services.metrics import get_counter, increment_payout_attempt, render_prometheus
from services.observability import log_event, set_request_id


def test_health_reports_payout_mode(client):
    r = client.get("/health")
    assert r.status_code == 200, r.text
    assert r.json()["ok"] is True
    assert r.json()["payout_mode"] in ("sandbox", "real")


def test_request_id_added_when_missing(client):
    r = client.get("/health")
    assert r.headers.get("X-Request-Id")


def test_request_id_echoed_when_present(client):
    r = client.get("/health", headers={"X-Request-Id": "client-request-id"})
    assert r.headers.get("X-Request-Id") == "client-request-id"


def test_request_log_line_has_method_path_status(client, caplog):
    caplog.set_level(logging.INFO, logger="memories.http")
    client.get("/health")
    assert any(
        "http_request" in rec.message and "method=GET" in rec.message and "status=200" in rec.message
        for rec in caplog.records
    )


def test_requests_are_counted_by_route(client):
    client.get("/health")
    assert get_counter("http_requests_total", {"route": "/health", "status": "200"}) == 1


def test_metrics_endpoint_renders_counters(client):
    increment_payout_attempt("PAYPAL", "completed")

    r = client.get("/metrics")

    assert r.status_code == 200
    assert 'payout_attempts_total{method="PAYPAL",result="completed"} 1' in r.text


def test_render_prometheus_empty():
    assert render_prometheus() == ""


def test_log_event_attaches_structured_fields(caplog):
    logger = logging.getLogger("memories.test")
    caplog.set_level(logging.INFO, logger="memories.test")
    set_request_id("req-1")
    try:
        log_event(logger, "payout.attempt", outcome="completed", referral_id="r1")
    finally:
        set_request_id(None)

    [rec] = caplog.records
    assert rec.event == "payout.attempt"
    assert rec.outcome == "completed"
    assert rec.correlation_id == "req-1"
    assert rec.fields == {"referral_id": "r1"}
    assert "event=payout.attempt outcome=completed correlation_id=req-1 referral_id=r1" == rec.getMessage()


def test_explicit_correlation_id_wins(caplog):
    logger = logging.getLogger("memories.test")
    caplog.set_level(logging.INFO, logger="memories.test")
    set_request_id("req-1")
    try:
        log_event(logger, "webhook.processed", outcome="paid", correlation_id="evt_1")
    finally:
        set_request_id(None)

    assert caplog.records[-1].correlation_id == "evt_1"
