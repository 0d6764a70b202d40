"""Per-process dependencies of the two request flows, and the steps they share."""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import structlog

from zendesk_archive_gateway.adapters.archive.base import ArchiveClient
from zendesk_archive_gateway.adapters.archive.errors import ArchiveError
from zendesk_archive_gateway.adapters.archive.factory import create_archive_client
from zendesk_archive_gateway.adapters.zendesk.client import AsyncZendeskClient
from zendesk_archive_gateway.adapters.zendesk.errors import ZendeskError
from zendesk_archive_gateway.adapters.zendesk.models import (
    Comment,
    DownloadedAttachment,
    Ticket,
)
from zendesk_archive_gateway.config.redact import scrub_secrets_in_text
from zendesk_archive_gateway.config.settings import Settings
from zendesk_archive_gateway.domain.audit import AuditSink, audit_keys
from zendesk_archive_gateway.domain.errors import (
    AuthorizationFailure,
    DependencyFailure,
    TenantNotFound,
)
from zendesk_archive_gateway.domain.request_auth import verify_brand_ownership
from zendesk_archive_gateway.domain.tenant_models import (
    ArchiveEndpointConfig,
    TenantConfig,
    secret_value,
)
from zendesk_archive_gateway.domain.tenant_validate import TenantStore
from zendesk_archive_gateway.domain.ticket_id import first_present
from zendesk_archive_gateway.domain.time_utils import now_utc
from zendesk_archive_gateway.observability.metrics import audit_write_failed_total

log = structlog.get_logger(__name__)

ZendeskFactory = Callable[[TenantConfig, Settings], AsyncZendeskClient]
ArchiveFactory = Callable[[ArchiveEndpointConfig, Settings, str | None], ArchiveClient]


def default_zendesk_factory(tenant: TenantConfig, settings: Settings) -> AsyncZendeskClient:
    creds = tenant.zendesk
    if creds is None:
        raise TenantNotFound(f"tenant {tenant.label} has no Zendesk credentials")
    return AsyncZendeskClient(
        subdomain=creds.subdomain or "",
        email=creds.email or "",
        api_token=secret_value(creds.api_token),
        timeout_seconds=settings.zendesk.timeout_seconds,
        trust_env=settings.hardening.transport.trust_env,
    )


def default_archive_factory(
    endpoint: ArchiveEndpointConfig,
    settings: Settings,
    user: str | None,
) -> ArchiveClient:
    return create_archive_client(
        endpoint,
        user=user,
        timeout_seconds=settings.archive.timeout_seconds,
        trust_env=settings.hardening.transport.trust_env,
    )


@dataclass(frozen=True, slots=True)
class GatewayContext:
    settings: Settings
    tenants: TenantStore
    audit: AuditSink
    zendesk_factory: ZendeskFactory = default_zendesk_factory
    archive_factory: ArchiveFactory = default_archive_factory
    clock: Callable[[], datetime] = now_utc

    @property
    def timestamp_tolerance(self) -> timedelta:
        return timedelta(seconds=self.settings.hardening.webhook.timestamp_tolerance_seconds)


@dataclass(frozen=True, slots=True)
class InboundRequest:
    """Fields read from a JSON request body; camelCase names win over snake_case."""

    brand_id: str | None
    endpoint_name: str | None
    ticket_id: Any
    case_number: Any

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> InboundRequest:
        data = dict(payload)
        brand_id = first_present(data, "brandId", "brand_id")
        endpoint_name = first_present(data, "endpointName", "doc_endpoint")
        return cls(
            brand_id=_optional_text(brand_id),
            endpoint_name=_optional_text(endpoint_name),
            ticket_id=first_present(data, "ticketId", "ticket_id"),
            case_number=first_present(data, "caseNumber", "case_number"),
        )


def _optional_text(value: Any) -> str | None:
    if value is None or isinstance(value, (bool, dict, list)):
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True, slots=True)
class TicketBundle:
    ticket: Ticket
    comments: list[Comment]
    attachments: list[DownloadedAttachment]


async def fetch_owned_ticket(
    zendesk: AsyncZendeskClient,
    ticket_id: int,
    tenant: TenantConfig,
    settings: Settings,
) -> TicketBundle:
    """
    Fetch the ticket, check it belongs to the tenant's brand before reading anything
    else, then fetch comments and their attachments (capped).
    """
    ticket = await zendesk.get_ticket(ticket_id)
    try:
        verify_brand_ownership(ticket.brand_id, tenant.brand_id or "")
    except AuthorizationFailure:
        log.warning("ticket.brand_check_failed", ticket_brand_id=ticket.brand_id)
        raise

    comments = await zendesk.get_ticket_comments(ticket_id)
    attachments = await zendesk.fetch_attachments(
        comments,
        max_files=settings.zendesk.max_attachment_files,
        max_total_bytes=settings.zendesk.max_attachment_total_bytes,
    )
    return TicketBundle(ticket=ticket, comments=comments, attachments=attachments)


def dependency_failure(event: str, exc: ZendeskError | ArchiveError) -> DependencyFailure:
    """Log an upstream failure with credentials scrubbed; return the public 500 error."""
    detail = scrub_secrets_in_text(str(exc))
    log.error(event, error_type=exc.__class__.__name__, error=detail)
    failure = DependencyFailure(detail)
    failure.__cause__ = exc
    return failure


async def record_audit(
    ctx: GatewayContext,
    record: Mapping[str, Any],
    *,
    brand_id: str,
    ticket_id: int,
) -> None:
    """Persist under both audit keys. Failures are logged and counted, never raised."""
    log.info("audit.record", audit=dict(record))
    value = json.dumps(record, ensure_ascii=False, sort_keys=True)
    ttl = ctx.settings.audit.ttl_seconds
    try:
        for key in audit_keys(brand_id, ticket_id, str(record["timestamp"])):
            await ctx.audit.append(key, value, ttl)
    except Exception as exc:  # noqa: BLE001 - audit is best effort
        audit_write_failed_total.inc()
        log.warning("audit.write_failed", error=scrub_secrets_in_text(str(exc)))


def author_ids(comments: Sequence[Comment]) -> list[int]:
    return list(dict.fromkeys(c.author_id for c in comments if c.author_id is not None))
