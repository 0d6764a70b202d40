"""
Audit records: operational metadata for one archived ticket.

Records carry counts, identifiers and sizes only. Names, comment bodies, email
addresses and credentials are never part of a record.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from zendesk_archive_gateway.domain.time_utils import format_timestamp_utc

AUDIT_EVENT_TICKET_ARCHIVED = "ticket_archived"
AUDIT_EVENT_ATTACHMENTS_FORWARDED = "attachments_forwarded"
AUDIT_TTL_SECONDS = 90 * 24 * 60 * 60

DEFAULT_QUERY_LIMIT = 20
MAX_QUERY_LIMIT = 100


class AuditSink(Protocol):
    async def append(self, key: str, value: str, ttl_seconds: int | None) -> None: ...

    async def query(self, prefix: str, limit: int) -> list[dict[str, Any]]: ...

    async def aclose(self) -> None: ...


class NullAuditSink:
    """Audit disabled: writes are dropped, queries are empty."""

    async def append(self, key: str, value: str, ttl_seconds: int | None) -> None:
        return None

    async def query(self, prefix: str, limit: int) -> list[dict[str, Any]]:
        return []

    async def aclose(self) -> None:
        return None


@dataclass(frozen=True, slots=True)
class CommentCounts:
    total: int
    public: int
    internal: int

    @classmethod
    def of(cls, comments: Sequence[Any]) -> CommentCounts:
        internal = sum(1 for c in comments if getattr(c, "public", True) is False)
        return cls(total=len(comments), public=len(comments) - internal, internal=internal)


def _key_timestamp(timestamp: str) -> str:
    return timestamp.replace(":", "-").replace(".", "-")


def audit_keys(brand_id: str, ticket_id: int, timestamp: str) -> tuple[str, str]:
    """Brand timeline key and per-ticket key; both sort chronologically."""
    ts = _key_timestamp(timestamp)
    return f"audit:{brand_id}:{ts}:{ticket_id}", f"ticket:{brand_id}:{ticket_id}:{ts}"


def audit_query_prefix(brand_id: str | None, ticket_id: str | None) -> str:
    if brand_id and ticket_id:
        return f"ticket:{brand_id}:{ticket_id}:"
    if brand_id:
        return f"audit:{brand_id}:"
    return "audit:"


def clamp_query_limit(value: Any) -> int:
    try:
        limit = int(value)
    except (TypeError, ValueError):
        return DEFAULT_QUERY_LIMIT
    return max(1, min(limit, MAX_QUERY_LIMIT))


def build_audit_record(
    *,
    brand_id: str,
    ticket_id: int,
    ticket_status: str | None,
    comments: CommentCounts,
    internal_notes_included: bool,
    total_attachments: int,
    endpoint_name: str,
    archive_type: str,
    case_number: str,
    case_number_source: str,
    pdf_filename: str | None,
    pdf_size_bytes: int | None,
    duration_ms: int,
    now: datetime,
    event: str = AUDIT_EVENT_TICKET_ARCHIVED,
    attachments_forwarded: int | None = None,
) -> dict[str, Any]:
    destination: dict[str, Any] = {
        "doc_endpoint": endpoint_name,
        "doc_system": archive_type,
        "case_number": case_number,
        "case_number_source": case_number_source,
    }
    if pdf_filename is not None:
        destination["pdf_filename"] = pdf_filename
        destination["pdf_size_bytes"] = pdf_size_bytes
    if attachments_forwarded is not None:
        destination["attachments_forwarded"] = attachments_forwarded

    return {
        "event": event,
        "timestamp": format_timestamp_utc(now, milliseconds=True),
        "duration_ms": duration_ms,
        "brand_id": brand_id,
        "source": {
            "ticket_id": ticket_id,
            "ticket_status": ticket_status,
            "total_comments": comments.total,
            "public_comments": comments.public,
            "internal_notes": comments.internal,
            "internal_notes_included": internal_notes_included,
            "total_attachments": total_attachments,
        },
        "destination": destination,
    }
