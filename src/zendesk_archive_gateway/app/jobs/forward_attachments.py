"""On-demand flow: forward a ticket's attachments to an archive case, one document each."""

from __future__ import annotations

from time import perf_counter
from typing import Any

import structlog

from zendesk_archive_gateway.adapters.archive.errors import ArchiveError
from zendesk_archive_gateway.adapters.zendesk.errors import ZendeskError
from zendesk_archive_gateway.app.jobs.archive_ticket import require_ticket_id
from zendesk_archive_gateway.app.jobs.context import (
    GatewayContext,
    InboundRequest,
    TicketBundle,
    dependency_failure,
    fetch_owned_ticket,
    record_audit,
)
from zendesk_archive_gateway.domain.audit import (
    AUDIT_EVENT_ATTACHMENTS_FORWARDED,
    CommentCounts,
    build_audit_record,
)
from zendesk_archive_gateway.domain.errors import ValidationFailure
from zendesk_archive_gateway.domain.request_auth import (
    AuthenticationContext,
    authenticate_api_key,
)
from zendesk_archive_gateway.domain.tenant_models import (
    ArchiveEndpointConfig,
    TenantConfig,
    secret_value,
)
from zendesk_archive_gateway.domain.tenant_validate import (
    resolve_caller_endpoint_name,
    resolve_endpoint,
)
from zendesk_archive_gateway.domain.ticket_utils import CASE_NUMBER_SOURCE_CUSTOM_FIELD
from zendesk_archive_gateway.observability.metrics import (
    FLOW_ATTACHMENTS,
    attachments_forwarded_total,
    processed_total,
    total_seconds,
)

log = structlog.get_logger(__name__)

ATTACHMENT_SOURCE = "malaskra-attachment"


def require_case_number(raw: Any) -> str:
    if raw is None:
        raise ValidationFailure("missing caseNumber")
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationFailure("invalid caseNumber")
    return raw.strip()


async def _upload_each(
    ctx: GatewayContext,
    endpoint: ArchiveEndpointConfig,
    bundle: TicketBundle,
    *,
    ticket_id: int,
    case_number: str,
) -> tuple[int, list[dict[str, str]]]:
    """Upload attachments one at a time; a failure is recorded and the loop goes on."""
    forwarded = 0
    errors: list[dict[str, str]] = []

    try:
        client = ctx.archive_factory(endpoint, ctx.settings, None)
    except ArchiveError as exc:
        raise dependency_failure("attachments.archive_failed", exc) from exc

    try:
        for attachment in bundle.attachments:
            try:
                await client.upload_document(
                    case_number=case_number,
                    filename=attachment.filename,
                    document=attachment.data,
                    metadata={"ticketId": ticket_id, "source": ATTACHMENT_SOURCE},
                )
            except ArchiveError as exc:
                log.warning(
                    "attachments.forward_failed",
                    filename=attachment.filename,
                    reason=exc.reason,
                    error=str(exc),
                )
                errors.append({"filename": attachment.filename, "error": exc.reason})
                continue
            forwarded += 1
            log.debug("attachments.forwarded_one", filename=attachment.filename)
    finally:
        await client.aclose()

    return forwarded, errors


async def forward_attachments(
    ctx: GatewayContext,
    tenant: TenantConfig,
    request: InboundRequest,
    auth: AuthenticationContext,
) -> dict[str, Any]:
    started = perf_counter()
    brand_id = tenant.brand_id or ""
    expected_key = secret_value(tenant.malaskra.api_key) if tenant.malaskra else ""

    authenticate_api_key(auth, expected_key)
    ticket_id = require_ticket_id(request.ticket_id)
    structlog.contextvars.bind_contextvars(ticket_id=ticket_id)
    case_number = require_case_number(request.case_number)

    endpoint_name = resolve_caller_endpoint_name(tenant, request.endpoint_name)
    if not endpoint_name:
        raise ValidationFailure("missing endpointName")
    endpoint = resolve_endpoint(tenant, endpoint_name)
    archive_type = endpoint.type or ""

    log.info(
        "attachments.received",
        case_number=case_number,
        endpoint_name=endpoint_name,
        archive_type=archive_type,
    )

    async with ctx.zendesk_factory(tenant, ctx.settings) as zendesk:
        try:
            bundle = await fetch_owned_ticket(zendesk, ticket_id, tenant, ctx.settings)
        except ZendeskError as exc:
            raise dependency_failure("attachments.zendesk_failed", exc) from exc

    forwarded, errors = 0, []
    if bundle.attachments:
        forwarded, errors = await _upload_each(
            ctx, endpoint, bundle, ticket_id=ticket_id, case_number=case_number
        )
    else:
        log.info("attachments.none_found")

    elapsed = perf_counter() - started
    duration_ms = int(elapsed * 1000)
    total = len(bundle.attachments)

    record = build_audit_record(
        brand_id=brand_id,
        ticket_id=ticket_id,
        ticket_status=bundle.ticket.status,
        comments=CommentCounts.of(bundle.comments),
        internal_notes_included=False,
        total_attachments=total,
        endpoint_name=endpoint_name,
        archive_type=archive_type,
        case_number=case_number,
        case_number_source=CASE_NUMBER_SOURCE_CUSTOM_FIELD,
        pdf_filename=None,
        pdf_size_bytes=None,
        duration_ms=duration_ms,
        now=ctx.clock(),
        event=AUDIT_EVENT_ATTACHMENTS_FORWARDED,
        attachments_forwarded=forwarded,
    )
    await record_audit(ctx, record, brand_id=brand_id, ticket_id=ticket_id)

    if forwarded:
        attachments_forwarded_total.labels(archive_type=archive_type).inc(forwarded)
    if not errors:
        processed_total.labels(flow=FLOW_ATTACHMENTS, archive_type=archive_type).inc()
    total_seconds.labels(flow=FLOW_ATTACHMENTS).observe(elapsed)
    log.info(
        "attachments.done",
        total=total,
        forwarded=forwarded,
        failed=len(errors),
        duration_ms=duration_ms,
    )

    body: dict[str, Any] = {
        "success": not errors,
        "ticket_id": ticket_id,
        "brand_id": brand_id,
        "case_number": case_number,
        "endpoint_name": endpoint_name,
        "archive_type": archive_type,
        "attachments_total": total,
        "attachments_forwarded": forwarded,
        "duration_ms": duration_ms,
    }
    if errors:
        body["errors"] = errors
    return body
