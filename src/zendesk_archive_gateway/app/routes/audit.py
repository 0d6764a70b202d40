from __future__ import annotations

import structlog
from fastapi import APIRouter, Request
from starlette.responses import JSONResponse

from zendesk_archive_gateway.app.constants import AUDIT_PATH
from zendesk_archive_gateway.app.responses import api_error
from zendesk_archive_gateway.app.routes.common import gateway_context
from zendesk_archive_gateway.domain.audit import audit_query_prefix, clamp_query_limit
from zendesk_archive_gateway.domain.request_auth import constant_time_equals
from zendesk_archive_gateway.domain.tenant_validate import sanitize_audit_param

log = structlog.get_logger(__name__)

router = APIRouter()


def _authorized(request: Request) -> bool:
    secret = request.app.state.settings.audit.secret
    expected = secret.get_secret_value() if secret is not None else ""
    if not expected:
        return False
    provided = request.headers.get("Authorization") or ""
    # Whole header compared, so scheme and token both have to match.
    return constant_time_equals(provided, f"Bearer {expected}")


@router.get(AUDIT_PATH)
async def audit(request: Request) -> JSONResponse:
    """
    Recent audit records, newest first. `brand_id` narrows to one tenant and
    `ticket_id` (with `brand_id`) to one ticket; `limit` is clamped to 1..100.
    """
    if not _authorized(request):
        log.warning("audit.unauthorized")
        return api_error(401, "unauthorized", code="unauthorized")

    params = request.query_params
    raw_brand = params.get("brand_id")
    raw_ticket = params.get("ticket_id")
    brand_id = sanitize_audit_param(raw_brand)
    ticket_id = sanitize_audit_param(raw_ticket)
    if raw_brand and brand_id is None:
        return api_error(400, "invalid brand_id", code="validation_error")
    if raw_ticket and ticket_id is None:
        return api_error(400, "invalid ticket_id", code="validation_error")

    limit = clamp_query_limit(params.get("limit"))
    entries = await gateway_context(request).audit.query(
        audit_query_prefix(brand_id, ticket_id), limit
    )
    return JSONResponse({"count": len(entries), "entries": entries})
