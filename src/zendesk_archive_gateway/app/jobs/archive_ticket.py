"""Webhook flow: one Zendesk ticket rendered to PDF and filed in the tenant's archive."""

from __future__ import annotations

import asyncio
from time import perf_counter
from typing import Any

import structlog

from zendesk_archive_gateway.adapters.archive.errors import ArchiveError
from zendesk_archive_gateway.adapters.pdf.render_pdf import render_ticket_pdf
from zendesk_archive_gateway.adapters.zendesk.errors import ZendeskError
from zendesk_archive_gateway.adapters.zendesk.models import User
from zendesk_archive_gateway.app.jobs.context import (
    GatewayContext,
    InboundRequest,
    author_ids,
    dependency_failure,
    fetch_owned_ticket,
    record_audit,
)
from zendesk_archive_gateway.domain.audit import CommentCounts, build_audit_record
from zendesk_archive_gateway.domain.errors import ValidationFailure
from zendesk_archive_gateway.domain.request_auth import (
    AuthenticationContext,
    authenticate_webhook,
)
from zendesk_archive_gateway.domain.tenant_models import (
    RenderSettings,
    TenantConfig,
    secret_value,
)
from zendesk_archive_gateway.domain.tenant_validate import resolve_endpoint
from zendesk_archive_gateway.domain.ticket_id import coerce_ticket_id
from zendesk_archive_gateway.domain.ticket_utils import select_case_number, solving_agent_email
from zendesk_archive_gateway.observability.metrics import (
    FLOW_WEBHOOK,
    processed_total,
    render_seconds,
    total_seconds,
)

log = structlog.get_logger(__name__)

DEFAULT_ARCHIVE_USER = "Zendesk"


def pdf_filename(ticket_id: int) -> str:
    return f"ticket-{ticket_id}.pdf"


def require_ticket_id(raw: Any) -> int:
    ticket_id = coerce_ticket_id(raw)
    if ticket_id is None:
        raise ValidationFailure("missing ticketId" if raw is None else "invalid ticketId")
    return ticket_id


async def _resolve_users(zendesk: Any, comments: list) -> dict[int, User]:
    """Best effort: a failed lookup leaves every author as `User {id}`."""
    try:
        users = await zendesk.get_users_many(author_ids(comments))
    except ZendeskError as exc:
        log.warning("webhook.author_lookup_failed", error=str(exc))
        return {}
    return {user.id: user for user in users}


async def archive_ticket(
    ctx: GatewayContext,
    tenant: TenantConfig,
    request: InboundRequest,
    auth: AuthenticationContext,
) -> dict[str, Any]:
    """
    Authenticate the webhook, then fetch, render and upload. Returns the success body;
    every failure is raised as a GatewayError subclass for the route to map.
    """
    started = perf_counter()
    brand_id = tenant.brand_id or ""
    secret = secret_value(tenant.zendesk.webhook_secret) if tenant.zendesk else ""

    authenticate_webhook(auth, secret, tolerance=ctx.timestamp_tolerance, now=ctx.clock())
    ticket_id = require_ticket_id(request.ticket_id)
    structlog.contextvars.bind_contextvars(ticket_id=ticket_id)
    endpoint_name = request.endpoint_name
    if not endpoint_name:
        raise ValidationFailure("missing endpointName")
    endpoint = resolve_endpoint(tenant, endpoint_name)
    archive_type = endpoint.type or ""

    log.info("webhook.received", endpoint_name=endpoint_name, archive_type=archive_type)
    render_settings = tenant.pdf or RenderSettings()

    async with ctx.zendesk_factory(tenant, ctx.settings) as zendesk:
        try:
            bundle = await fetch_owned_ticket(zendesk, ticket_id, tenant, ctx.settings)
            users = await _resolve_users(zendesk, bundle.comments)
        except ZendeskError as exc:
            raise dependency_failure("webhook.zendesk_failed", exc) from exc

    user_map = {uid: user.display_name for uid, user in users.items()}
    archive_user = solving_agent_email(bundle.comments, users, DEFAULT_ARCHIVE_USER)

    render_start = perf_counter()
    document = await asyncio.to_thread(
        render_ticket_pdf,
        bundle.ticket,
        bundle.comments,
        render_settings,
        user_map=user_map,
        now=ctx.clock(),
    )
    render_seconds.observe(perf_counter() - render_start)

    case_number, case_number_source = select_case_number(
        bundle.ticket, endpoint.case_number_field_id
    )
    filename = pdf_filename(ticket_id)

    try:
        client = ctx.archive_factory(endpoint, ctx.settings, archive_user)
        try:
            await client.upload_document(
                case_number=case_number,
                filename=filename,
                document=document,
                attachments=bundle.attachments,
                metadata={"ticketId": ticket_id, "subject": bundle.ticket.subject},
            )
        finally:
            await client.aclose()
    except ArchiveError as exc:
        raise dependency_failure("webhook.archive_failed", exc) from exc

    elapsed = perf_counter() - started
    duration_ms = int(elapsed * 1000)
    record = build_audit_record(
        brand_id=brand_id,
        ticket_id=ticket_id,
        ticket_status=bundle.ticket.status,
        comments=CommentCounts.of(bundle.comments),
        internal_notes_included=render_settings.include_internal_notes,
        total_attachments=len(bundle.attachments),
        endpoint_name=endpoint_name,
        archive_type=archive_type,
        case_number=case_number,
        case_number_source=case_number_source,
        pdf_filename=filename,
        pdf_size_bytes=len(document),
        duration_ms=duration_ms,
        now=ctx.clock(),
    )
    await record_audit(ctx, record, brand_id=brand_id, ticket_id=ticket_id)

    processed_total.labels(flow=FLOW_WEBHOOK, archive_type=archive_type).inc()
    total_seconds.labels(flow=FLOW_WEBHOOK).observe(elapsed)
    log.info(
        "webhook.archived",
        case_number=case_number,
        case_number_source=case_number_source,
        attachments=len(bundle.attachments),
        duration_ms=duration_ms,
    )

    return {
        "success": True,
        "ticket_id": ticket_id,
        "brand_id": brand_id,
        "case_number": case_number,
        "endpoint_name": endpoint_name,
        "archive_type": archive_type,
        "duration_ms": duration_ms,
    }
