from __future__ import annotations

import asyncio
import fnmatch
import json
from datetime import UTC, datetime

from support.fakes import make_comment

from zendesk_archive_gateway.adapters.audit.file_sink import FileAuditSink
from zendesk_archive_gateway.adapters.audit.redis_sink import RedisAuditSink
from zendesk_archive_gateway.domain.audit import (
    AUDIT_EVENT_ATTACHMENTS_FORWARDED,
    DEFAULT_QUERY_LIMIT,
    MAX_QUERY_LIMIT,
    CommentCounts,
    NullAuditSink,
    audit_keys,
    audit_query_prefix,
    build_audit_record,
    clamp_query_limit,
)


class _FakeRedis:
    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.expiry: dict[str, int | None] = {}
        self.closed = False

    async def set(self, key: str, value: str, ex: int | None = None) -> None:
        self.data[key] = value
        self.expiry[key] = ex

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def scan_iter(self, match: str, count: int):
        for key in list(self.data):
            if fnmatch.fnmatchcase(key, match.replace("\\", "")):
                yield key

    async def aclose(self) -> None:
        self.closed = True


def _record(**overrides):
    kwargs = dict(
        brand_id="360001",
        ticket_id=123,
        ticket_status="solved",
        comments=CommentCounts.of([make_comment(1), make_comment(2, public=False)]),
        internal_notes_included=False,
        total_attachments=2,
        endpoint_name="main",
        archive_type="onesystems",
        case_number="ZD-123",
        case_number_source="fallback",
        pdf_filename="ticket-123.pdf",
        pdf_size_bytes=2048,
        duration_ms=37,
        now=datetime(2024, 5, 1, 10, 0, 0, 123000, tzinfo=UTC),
    )
    kwargs.update(overrides)
    return build_audit_record(**kwargs)


def test_audit_keys_sort_chronologically() -> None:
    brand_key, ticket_key = audit_keys("360001", 123, "2024-05-01T10:00:00.123Z")

    assert brand_key == "audit:360001:2024-05-01T10-00-00-123Z:123"
    assert ticket_key == "ticket:360001:123:2024-05-01T10-00-00-123Z"
    earlier, _ = audit_keys("360001", 999, "2024-04-30T23:59:59.999Z")
    assert earlier < brand_key


def test_query_prefix_and_limit() -> None:
    assert audit_query_prefix(None, None) == "audit:"
    assert audit_query_prefix("1", None) == "audit:1:"
    assert audit_query_prefix("1", "5") == "ticket:1:5:"
    # A ticket filter without a brand is ignored.
    assert audit_query_prefix(None, "5") == "audit:"

    assert clamp_query_limit(None) == DEFAULT_QUERY_LIMIT
    assert clamp_query_limit("7") == 7
    assert clamp_query_limit(-3) == 1
    assert clamp_query_limit(10_000) == MAX_QUERY_LIMIT


def test_record_has_counts_but_no_content() -> None:
    record = _record()

    assert record["event"] == "ticket_archived"
    assert record["timestamp"] == "2024-05-01T10:00:00.123Z"
    assert record["source"] == {
        "ticket_id": 123,
        "ticket_status": "solved",
        "total_comments": 2,
        "public_comments": 1,
        "internal_notes": 1,
        "internal_notes_included": False,
        "total_attachments": 2,
    }
    assert record["destination"]["pdf_filename"] == "ticket-123.pdf"
    assert record["destination"]["pdf_size_bytes"] == 2048
    assert "Comment" not in json.dumps(record)


def test_attachment_record_omits_pdf_fields() -> None:
    record = _record(
        event=AUDIT_EVENT_ATTACHMENTS_FORWARDED,
        pdf_filename=None,
        pdf_size_bytes=None,
        attachments_forwarded=2,
    )

    assert record["event"] == "attachments_forwarded"
    assert "pdf_filename" not in record["destination"]
    assert record["destination"]["attachments_forwarded"] == 2


def test_null_sink_drops_everything() -> None:
    sink = NullAuditSink()

    async def run() -> None:
        await sink.append("audit:1:x:1", "{}", 10)
        assert await sink.query("audit:", 10) == []

    asyncio.run(run())


def test_file_sink_lists_newest_first_and_filters(tmp_path) -> None:
    sink = FileAuditSink(tmp_path / "audit")

    async def run() -> None:
        await sink.append("audit:1:2024-01-01:1", json.dumps({"n": 1}), None)
        await sink.append("audit:1:2024-01-03:3", json.dumps({"n": 3}), None)
        await sink.append("audit:2:2024-01-02:2", json.dumps({"n": 2}), None)

        assert [e["n"] for e in await sink.query("audit:", 10)] == [3, 2, 1]
        assert [e["n"] for e in await sink.query("audit:1:", 10)] == [3, 1]
        assert [e["n"] for e in await sink.query("audit:", 1)] == [3]

    asyncio.run(run())


def test_file_sink_expires_entries(tmp_path) -> None:
    now = [1_000.0]
    sink = FileAuditSink(tmp_path, clock=lambda: now[0])

    async def run() -> None:
        await sink.append("audit:1:a:1", json.dumps({"n": 1}), 60)
        await sink.append("audit:1:b:2", json.dumps({"n": 2}), None)
        now[0] += 61
        assert [e["n"] for e in await sink.query("audit:", 10)] == [2]

    asyncio.run(run())
    assert len(list(tmp_path.glob("*.json"))) == 1


def test_file_sink_skips_corrupt_entries(tmp_path) -> None:
    sink = FileAuditSink(tmp_path)
    (tmp_path / "audit%3A1%3Ax%3A1.json").write_text("not json", encoding="utf-8")

    async def run() -> None:
        await sink.append("audit:1:y:2", json.dumps({"n": 2}), None)
        assert [e["n"] for e in await sink.query("audit:", 10)] == [2]

    asyncio.run(run())


def test_file_sink_on_missing_directory_is_empty(tmp_path) -> None:
    sink = FileAuditSink(tmp_path / "nope")

    assert asyncio.run(sink.query("audit:", 10)) == []


def test_redis_sink_sets_ttl_and_queries_by_prefix() -> None:
    redis = _FakeRedis()
    sink = RedisAuditSink(redis)

    async def run() -> None:
        await sink.append("audit:1:a:1", json.dumps({"n": 1}), 90)
        await sink.append("audit:1:b:2", json.dumps({"n": 2}), 90)
        await sink.append("audit:2:c:3", json.dumps({"n": 3}), None)
        redis.data["audit:1:z:9"] = "garbage"

        assert [e["n"] for e in await sink.query("audit:1:", 10)] == [2, 1]
        await sink.aclose()

    asyncio.run(run())
    assert redis.expiry["audit:1:a:1"] == 90
    assert redis.expiry["audit:2:c:3"] is None
    assert redis.closed
