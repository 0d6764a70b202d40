from __future__ import annotations

import json

from fastapi.testclient import TestClient
from support.app_factory import make_app
from support.fakes import FakeArchive, FakeZendesk, MemoryAuditSink, make_attachment, make_ticket
from support.tenants import BRAND_ID, CALLER_API_KEY, tenant_config

from zendesk_archive_gateway.adapters.archive.errors import (
    ArchiveRejectedError,
    ArchiveUploadError,
)


def _post(client: TestClient, *, api_key: str | None = CALLER_API_KEY, **overrides):
    payload = {
        "ticketId": 123,
        "brandId": BRAND_ID,
        "endpointName": "main",
        "caseNumber": "2024-0042",
    }
    payload.update(overrides)
    headers = {"X-Api-Key": api_key} if api_key is not None else {}
    return client.post("/v1/attachments", json=payload, headers=headers)


def test_no_attachments_is_a_successful_noop(tmp_path) -> None:
    archive = FakeArchive()
    client = TestClient(make_app(tmp_path, archive=archive))

    resp = _post(client)

    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["attachments_forwarded"] == 0
    assert data["attachments_total"] == 0
    assert "errors" not in data
    assert archive.uploads == []


def test_each_attachment_is_its_own_document(tmp_path) -> None:
    zendesk = FakeZendesk(attachments=[make_attachment("a.pdf"), make_attachment("b.png")])
    archive = FakeArchive()
    client = TestClient(make_app(tmp_path, zendesk=zendesk, archive=archive))

    resp = _post(client)

    assert resp.status_code == 200
    assert resp.json()["attachments_forwarded"] == 2
    assert [u.filename for u in archive.uploads] == ["a.pdf", "b.png"]
    assert all(u.case_number == "2024-0042" for u in archive.uploads)
    assert all(u.attachments == [] for u in archive.uploads)
    assert archive.uploads[0].metadata == {"ticketId": 123, "source": "malaskra-attachment"}
    # No solving-agent lookup in this flow.
    assert archive.users == [None]
    assert "get_users_many" not in zendesk.calls


def test_partial_failure_lists_filenames_and_short_reasons(tmp_path) -> None:
    zendesk = FakeZendesk(
        attachments=[make_attachment("a.pdf"), make_attachment("b.pdf"), make_attachment("c.pdf")]
    )
    archive = FakeArchive(
        fail_files={
            "b.pdf": ArchiveUploadError(
                "onesystems upload failed (status=500): Traceback ... password=hunter2",
                reason="upload failed (status=500)",
            ),
            "c.pdf": ArchiveRejectedError("gopro reported succeeded=false: quota exceeded"),
        }
    )
    client = TestClient(make_app(tmp_path, zendesk=zendesk, archive=archive))

    resp = _post(client)

    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is False
    assert data["attachments_total"] == 3
    assert data["attachments_forwarded"] == 1
    assert data["errors"] == [
        {"filename": "b.pdf", "error": "upload failed (status=500)"},
        {"filename": "c.pdf", "error": "upload rejected"},
    ]
    assert "hunter2" not in resp.text
    assert "quota" not in resp.text


def test_audit_record_marks_attachment_forwarding(tmp_path) -> None:
    audit = MemoryAuditSink()
    zendesk = FakeZendesk(attachments=[make_attachment("a.pdf")])
    client = TestClient(make_app(tmp_path, zendesk=zendesk, audit=audit))

    assert _post(client).status_code == 200

    [record] = {value for value in audit.entries.values()}
    parsed = json.loads(record)
    assert parsed["event"] == "attachments_forwarded"
    assert parsed["destination"]["attachments_forwarded"] == 1
    assert "pdf_filename" not in parsed["destination"]


def test_bad_api_key_is_unauthorized(tmp_path) -> None:
    zendesk = FakeZendesk()
    client = TestClient(make_app(tmp_path, zendesk=zendesk))

    assert _post(client, api_key="wrong").status_code == 401
    assert _post(client, api_key=None).status_code == 401
    assert zendesk.calls == []


def test_case_number_must_be_a_string(tmp_path) -> None:
    client = TestClient(make_app(tmp_path))

    missing = client.post(
        "/v1/attachments",
        json={"ticketId": 1, "brandId": BRAND_ID, "endpointName": "main"},
        headers={"X-Api-Key": CALLER_API_KEY},
    )
    numeric = _post(client, caseNumber=42)

    assert missing.status_code == 400
    assert missing.json()["detail"] == "missing caseNumber"
    assert numeric.status_code == 400
    assert numeric.json()["detail"] == "invalid caseNumber"


def test_ticket_without_brand_is_forbidden(tmp_path) -> None:
    zendesk = FakeZendesk(
        ticket=make_ticket(brand_id=None), attachments=[make_attachment("a.pdf")]
    )
    archive = FakeArchive()
    client = TestClient(make_app(tmp_path, zendesk=zendesk, archive=archive))

    resp = _post(client)

    assert resp.status_code == 403
    assert archive.uploads == []


def test_pinned_caller_cannot_override_endpoint(tmp_path) -> None:
    tenant = tenant_config(
        malaskra={
            "apiKey": CALLER_API_KEY,
            "allowEndpointOverride": False,
            "defaultEndpoint": "main",
        }
    )
    archive = FakeArchive()
    client = TestClient(make_app(tmp_path, archive=archive, tenants=[tenant]))

    overridden = _post(client, endpointName="records")
    omitted = client.post(
        "/v1/attachments",
        json={"ticketId": 123, "brandId": BRAND_ID, "caseNumber": "C-1"},
        headers={"X-Api-Key": CALLER_API_KEY},
    )
    explicit_default = _post(client, endpointName="main")

    assert overridden.status_code == 403
    assert omitted.status_code == 200
    assert omitted.json()["endpoint_name"] == "main"
    assert explicit_default.status_code == 200


def test_default_endpoint_used_when_override_allowed_and_name_omitted(tmp_path) -> None:
    tenant = tenant_config(malaskra={"apiKey": CALLER_API_KEY, "defaultEndpoint": "records"})
    client = TestClient(make_app(tmp_path, tenants=[tenant]))

    resp = client.post(
        "/v1/attachments",
        json={"ticketId": 123, "brandId": BRAND_ID, "caseNumber": "C-1"},
        headers={"X-Api-Key": CALLER_API_KEY},
    )

    assert resp.status_code == 200
    assert resp.json()["archive_type"] == "gopro"


def test_unknown_endpoint_is_a_validation_error(tmp_path) -> None:
    client = TestClient(make_app(tmp_path))

    resp = _post(client, endpointName="elsewhere")

    assert resp.status_code == 400
    assert resp.json()["detail"] == "unknown endpoint"
