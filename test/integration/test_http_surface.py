from __future__ import annotations

import json

from fastapi.testclient import TestClient
from support.app_factory import make_app
from support.fakes import FakeZendesk
from support.tenants import BRAND_ID, signed_headers


def test_health_reports_service_and_version(tmp_path) -> None:
    resp = TestClient(make_app(tmp_path)).get("/v1/health")

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["service"] == "zendesk-archive-gateway"
    assert "version" in data
    assert data["timestamp"].endswith("Z")


def test_health_can_omit_version(tmp_path) -> None:
    app = make_app(tmp_path, overrides={"observability": {"health_omit_version": True}})

    data = TestClient(app).get("/v1/health").json()

    assert "version" not in data
    assert "service" not in data


def test_request_id_is_echoed_or_generated(tmp_path) -> None:
    client = TestClient(make_app(tmp_path))

    echoed = client.get("/v1/health", headers={"X-Request-Id": "req-42"})
    minted = client.get("/v1/health", headers={"X-Request-Id": "bad id with spaces"})

    assert echoed.headers["X-Request-Id"] == "req-42"
    assert minted.headers["X-Request-Id"] != "bad id with spaces"
    assert len(minted.headers["X-Request-Id"]) == 36


def test_oversized_body_is_rejected_before_parsing(tmp_path) -> None:
    zendesk = FakeZendesk()
    app = make_app(
        tmp_path,
        zendesk=zendesk,
        overrides={"hardening": {"body_size_limit": {"max_bytes": 64}}},
    )
    body = json.dumps({"ticketId": 1, "brandId": BRAND_ID, "padding": "x" * 200}).encode()

    resp = TestClient(app).post("/v1/webhook", content=body, headers=signed_headers(body))

    assert resp.status_code == 413
    assert resp.json()["code"] == "request_too_large"
    assert resp.headers.get("X-Request-Id")
    assert zendesk.calls == []


def test_default_body_limit_is_one_mebibyte(tmp_path) -> None:
    client = TestClient(make_app(tmp_path))
    body = b'{"pad":"' + b"x" * (1024 * 1024) + b'"}'

    resp = client.post("/v1/attachments", content=body, headers={"Content-Type": "application/json"})

    assert resp.status_code == 413


def test_rate_limit_applies_to_webhook(tmp_path) -> None:
    app = make_app(
        tmp_path,
        rate_limit=True,
        overrides={"hardening": {"rate_limit": {"rps": 0, "burst": 2}}},
    )
    client = TestClient(app)
    body = b"{}"

    assert client.post("/v1/webhook", content=body).status_code == 400
    assert client.post("/v1/webhook", content=body).status_code == 400
    resp = client.post("/v1/webhook", content=body)

    assert resp.status_code == 429
    assert resp.json()["code"] == "rate_limited"
    # Health is never rate limited.
    assert client.get("/v1/health").status_code == 200


def test_metrics_disabled_by_default(tmp_path) -> None:
    assert TestClient(make_app(tmp_path)).get("/metrics").status_code == 404


def test_metrics_exposes_gateway_counters(tmp_path) -> None:
    app = make_app(tmp_path, overrides={"observability": {"metrics_enabled": True}})
    client = TestClient(app)
    body = json.dumps({"ticketId": 1, "brandId": BRAND_ID, "endpointName": "main"}).encode()
    client.post("/v1/webhook", content=body, headers={"Content-Type": "application/json"})

    resp = client.get("/metrics")

    assert resp.status_code == 200
    assert "gateway_rejected_total" in resp.text


def test_metrics_bearer_token(tmp_path) -> None:
    app = make_app(
        tmp_path,
        overrides={
            "observability": {"metrics_enabled": True, "metrics_bearer_token": "metrics-token"}
        },
    )
    client = TestClient(app)

    assert client.get("/metrics").status_code == 401
    assert client.get("/metrics", headers={"Authorization": "Bearer wrong"}).status_code == 401
    assert (
        client.get("/metrics", headers={"Authorization": "Bearer metrics-token"}).status_code
        == 200
    )


def test_global_exception_handler_hides_detail(tmp_path) -> None:
    app = make_app(tmp_path)

    @app.get("/boom")
    def _boom() -> dict[str, str]:
        raise RuntimeError("boom: password=hunter2")

    client = TestClient(app, raise_server_exceptions=False)
    resp = client.get("/boom", headers={"X-Request-Id": "req-boom-1"})

    assert resp.status_code == 500
    assert resp.json() == {
        "success": False,
        "detail": "internal error",
        "code": "internal_error",
        "request_id": "req-boom-1",
    }
    assert resp.headers.get("X-Request-Id") == "req-boom-1"
