from __future__ import annotations

import json

from fastapi.testclient import TestClient
from support.app_factory import make_app
from support.fakes import MemoryAuditSink

SECRET = "audit-secret"


def _seeded_sink() -> MemoryAuditSink:
    sink = MemoryAuditSink()
    for brand, ticket, ts in [
        ("111", 1, "2024-05-01T10-00-00-000Z"),
        ("111", 2, "2024-05-02T10-00-00-000Z"),
        ("222", 3, "2024-05-03T10-00-00-000Z"),
    ]:
        value = json.dumps({"brand_id": brand, "ticket": ticket})
        sink.entries[f"audit:{brand}:{ts}:{ticket}"] = value
        sink.entries[f"ticket:{brand}:{ticket}:{ts}"] = value
    return sink


def _client(tmp_path, *, secret: str | None = SECRET) -> TestClient:
    return TestClient(make_app(tmp_path, audit=_seeded_sink(), audit_secret=secret))


def _auth(token: str = SECRET) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def test_audit_requires_bearer_secret(tmp_path) -> None:
    client = _client(tmp_path)

    assert client.get("/v1/audit").status_code == 401
    assert client.get("/v1/audit", headers=_auth("nope")).status_code == 401
    assert client.get("/v1/audit", headers={"Authorization": SECRET}).status_code == 401
    assert client.get("/v1/audit", headers=_auth()).status_code == 200


def test_audit_without_configured_secret_always_401(tmp_path) -> None:
    client = _client(tmp_path, secret=None)

    assert client.get("/v1/audit", headers=_auth()).status_code == 401
    assert client.get("/v1/audit", headers={"Authorization": "Bearer "}).status_code == 401


def test_audit_lists_newest_first(tmp_path) -> None:
    resp = _client(tmp_path).get("/v1/audit", headers=_auth())

    data = resp.json()
    assert data["count"] == 3
    assert [e["ticket"] for e in data["entries"]] == [3, 2, 1]


def test_audit_filters_by_brand_and_ticket(tmp_path) -> None:
    client = _client(tmp_path)

    by_brand = client.get("/v1/audit", params={"brand_id": "111"}, headers=_auth()).json()
    by_ticket = client.get(
        "/v1/audit", params={"brand_id": "111", "ticket_id": "2"}, headers=_auth()
    ).json()

    assert [e["ticket"] for e in by_brand["entries"]] == [2, 1]
    assert [e["ticket"] for e in by_ticket["entries"]] == [2]


def test_audit_rejects_prefix_injection(tmp_path) -> None:
    client = _client(tmp_path)

    resp = client.get("/v1/audit", params={"brand_id": "111:*"}, headers=_auth())

    assert resp.status_code == 400
    assert resp.json()["detail"] == "invalid brand_id"


def test_audit_limit_is_clamped(tmp_path) -> None:
    client = _client(tmp_path)

    one = client.get("/v1/audit", params={"limit": "0"}, headers=_auth()).json()
    junk = client.get("/v1/audit", params={"limit": "lots"}, headers=_auth()).json()

    assert one["count"] == 1
    assert junk["count"] == 3
