from __future__ import annotations

import json
from datetime import timedelta

from fastapi.testclient import TestClient
from support.app_factory import make_app
from support.fakes import (
    FakeArchive,
    FakeZendesk,
    MemoryAuditSink,
    make_attachment,
    make_comment,
    make_ticket,
)
from support.tenants import BRAND_ID, CASE_FIELD_ID, signed_headers

from zendesk_archive_gateway.adapters.archive.errors import ArchiveUploadError
from zendesk_archive_gateway.adapters.zendesk.models import User
from zendesk_archive_gateway.domain.time_utils import now_utc


def _body(**overrides) -> bytes:
    payload = {"ticketId": 123, "brandId": BRAND_ID, "endpointName": "main"}
    payload.update(overrides)
    return json.dumps(payload).encode("utf-8")


def _post(client: TestClient, body: bytes, headers: dict[str, str] | None = None):
    return client.post(
        "/v1/webhook",
        content=body,
        headers=headers if headers is not None else signed_headers(body),
    )


def test_webhook_archives_ticket_with_fallback_case_number(tmp_path) -> None:
    zendesk = FakeZendesk(
        comments=[make_comment(1, author_id=7), make_comment(2, author_id=8, public=False)],
        users=[User(id=7, name="Jón"), User(id=8, name="Agent", email="agent@acme.is")],
        attachments=[make_attachment("photo.jpg")],
    )
    archive = FakeArchive()
    audit = MemoryAuditSink()
    client = TestClient(make_app(tmp_path, zendesk=zendesk, archive=archive, audit=audit))

    resp = _post(client, _body())

    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["ticket_id"] == 123
    assert data["brand_id"] == BRAND_ID
    assert data["case_number"] == "ZD-123"
    assert data["endpoint_name"] == "main"
    assert data["archive_type"] == "onesystems"
    assert isinstance(data["duration_ms"], int)

    [upload] = archive.uploads
    assert upload.filename == "ticket-123.pdf"
    assert upload.document.startswith(b"%PDF-")
    assert upload.case_number == "ZD-123"
    assert [a.filename for a in upload.attachments] == ["photo.jpg"]
    assert upload.metadata == {"ticketId": 123, "subject": "Printer on fire"}
    # Solving agent = author of the last comment.
    assert archive.users == ["agent@acme.is"]
    assert archive.closed == 1

    keys = sorted(audit.entries)
    assert keys[0].startswith(f"audit:{BRAND_ID}:")
    assert keys[0].endswith(":123")
    assert keys[1].startswith(f"ticket:{BRAND_ID}:123:")
    record = json.loads(audit.entries[keys[0]])
    assert record["event"] == "ticket_archived"
    assert record["source"]["internal_notes"] == 1
    assert record["source"]["internal_notes_included"] is False
    assert record["destination"]["case_number_source"] == "fallback"
    assert record["destination"]["pdf_filename"] == "ticket-123.pdf"


def test_webhook_uses_case_number_custom_field(tmp_path) -> None:
    ticket = make_ticket(custom_fields=[{"id": CASE_FIELD_ID, "value": "2024-0042"}])
    archive = FakeArchive()
    client = TestClient(make_app(tmp_path, zendesk=FakeZendesk(ticket=ticket), archive=archive))

    resp = _post(client, _body())

    assert resp.status_code == 200
    assert resp.json()["case_number"] == "2024-0042"
    assert archive.uploads[0].case_number == "2024-0042"


def test_webhook_accepts_snake_case_fields(tmp_path) -> None:
    client = TestClient(make_app(tmp_path))
    body = json.dumps({"ticket_id": "123", "brand_id": BRAND_ID, "doc_endpoint": "records"}).encode()

    resp = _post(client, body)

    assert resp.status_code == 200
    assert resp.json()["archive_type"] == "gopro"


def test_ticket_without_brand_is_forbidden_before_comments_are_read(tmp_path) -> None:
    zendesk = FakeZendesk(ticket=make_ticket(brand_id=None))
    archive = FakeArchive()
    client = TestClient(make_app(tmp_path, zendesk=zendesk, archive=archive))

    resp = _post(client, _body())

    assert resp.status_code == 403
    assert resp.json()["detail"] == "forbidden"
    assert zendesk.calls == ["get_ticket"]
    assert archive.uploads == []


def test_ticket_of_another_brand_is_forbidden(tmp_path) -> None:
    zendesk = FakeZendesk(ticket=make_ticket(brand_id=999))
    client = TestClient(make_app(tmp_path, zendesk=zendesk))

    resp = _post(client, _body())

    assert resp.status_code == 403
    assert zendesk.calls == ["get_ticket"]


def test_bad_signature_is_unauthorized_and_nothing_is_fetched(tmp_path) -> None:
    zendesk = FakeZendesk()
    client = TestClient(make_app(tmp_path, zendesk=zendesk))
    body = _body()

    resp = _post(client, body, signed_headers(body, secret="wrong-secret"))

    assert resp.status_code == 401
    assert resp.json()["detail"] == "unauthorized"
    assert zendesk.calls == []


def test_missing_signature_headers_are_unauthorized(tmp_path) -> None:
    client = TestClient(make_app(tmp_path))

    resp = _post(client, _body(), {"Content-Type": "application/json"})

    assert resp.status_code == 401


def test_stale_timestamp_is_unauthorized(tmp_path) -> None:
    zendesk = FakeZendesk()
    client = TestClient(make_app(tmp_path, zendesk=zendesk))
    body = _body()

    resp = _post(client, body, signed_headers(body, at=now_utc() - timedelta(minutes=10)))

    assert resp.status_code == 401
    assert zendesk.calls == []


def test_auth_is_checked_before_ticket_id(tmp_path) -> None:
    client = TestClient(make_app(tmp_path))
    body = _body(ticketId="abc")

    unsigned = _post(client, body, {"Content-Type": "application/json"})
    signed = _post(client, body)

    assert unsigned.status_code == 401
    assert signed.status_code == 400
    assert signed.json()["detail"] == "invalid ticketId"


def test_missing_ticket_id_is_a_validation_error(tmp_path) -> None:
    client = TestClient(make_app(tmp_path))
    body = json.dumps({"brandId": BRAND_ID, "endpointName": "main"}).encode()

    resp = _post(client, body)

    assert resp.status_code == 400
    assert resp.json()["detail"] == "missing ticketId"


def test_unknown_endpoint_does_not_list_configured_names(tmp_path) -> None:
    zendesk = FakeZendesk()
    client = TestClient(make_app(tmp_path, zendesk=zendesk))

    resp = _post(client, _body(endpointName="nope"))

    assert resp.status_code == 400
    assert resp.json()["detail"] == "unknown endpoint"
    assert "main" not in resp.text
    assert "records" not in resp.text
    assert zendesk.calls == []


def test_unknown_tenant_is_not_found(tmp_path) -> None:
    client = TestClient(make_app(tmp_path))
    body = _body(brandId="424242")

    resp = _post(client, body)

    assert resp.status_code == 404
    assert resp.json()["detail"] == "not found"


def test_missing_brand_id_is_a_validation_error(tmp_path) -> None:
    client = TestClient(make_app(tmp_path))
    body = json.dumps({"ticketId": 1, "endpointName": "main"}).encode()

    resp = _post(client, body)

    assert resp.status_code == 400
    assert resp.json()["detail"] == "missing brandId"


def test_invalid_json_is_a_validation_error(tmp_path) -> None:
    client = TestClient(make_app(tmp_path))

    resp = _post(client, b"{not json", {"Content-Type": "application/json"})

    assert resp.status_code == 400
    assert resp.json()["detail"] == "invalid JSON body"


def test_zendesk_failure_is_a_generic_internal_error(tmp_path) -> None:
    client = TestClient(make_app(tmp_path, zendesk=FakeZendesk(fail_on="get_ticket_comments")))

    resp = _post(client, _body())

    assert resp.status_code == 500
    assert resp.json()["detail"] == "internal error"
    assert "zd-secret" not in resp.text
    assert "status=500" not in resp.text


def test_archive_failure_is_a_generic_internal_error(tmp_path) -> None:
    archive = FakeArchive(
        fail_files={
            "ticket-123.pdf": ArchiveUploadError(
                "onesystems upload failed (status=502): <html>proxy</html>",
                reason="upload failed (status=502)",
            )
        }
    )
    audit = MemoryAuditSink()
    client = TestClient(make_app(tmp_path, archive=archive, audit=audit))

    resp = _post(client, _body())

    assert resp.status_code == 500
    assert resp.json()["detail"] == "internal error"
    assert "proxy" not in resp.text
    assert audit.entries == {}
    assert archive.closed == 1


def test_author_lookup_failure_falls_back_to_default_archive_user(tmp_path) -> None:
    zendesk = FakeZendesk(comments=[make_comment(1, author_id=7)], fail_on="get_users_many")
    archive = FakeArchive()
    client = TestClient(make_app(tmp_path, zendesk=zendesk, archive=archive))

    resp = _post(client, _body())

    assert resp.status_code == 200
    assert archive.users == ["Zendesk"]


def test_audit_write_failure_does_not_fail_the_request(tmp_path) -> None:
    client = TestClient(make_app(tmp_path, audit=MemoryAuditSink(fail=True)))

    resp = _post(client, _body())

    assert resp.status_code == 200
    assert resp.json()["success"] is True
