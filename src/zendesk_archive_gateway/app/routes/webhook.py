from __future__ import annotations

from fastapi import APIRouter, Request
from starlette.responses import JSONResponse

from zendesk_archive_gateway.app.constants import WEBHOOK_PATH
from zendesk_archive_gateway.app.jobs.archive_ticket import archive_ticket
from zendesk_archive_gateway.app.jobs.context import InboundRequest
from zendesk_archive_gateway.app.routes.common import run_flow
from zendesk_archive_gateway.domain.request_auth import (
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    AuthenticationContext,
)
from zendesk_archive_gateway.observability.metrics import FLOW_WEBHOOK

router = APIRouter()


def _webhook_auth(raw: bytes, request: Request, inbound: InboundRequest) -> AuthenticationContext:
    return AuthenticationContext(
        raw_body=raw,
        signature=request.headers.get(SIGNATURE_HEADER),
        timestamp=request.headers.get(TIMESTAMP_HEADER),
        brand_id=inbound.brand_id,
        endpoint_name=inbound.endpoint_name,
    )


@router.post(WEBHOOK_PATH)
async def webhook(request: Request) -> JSONResponse:
    """Zendesk trigger: archive the ticket as a PDF (plus attachments) in one pass."""
    return await run_flow(
        request,
        flow=FLOW_WEBHOOK,
        handler=archive_ticket,
        build_auth=_webhook_auth,
    )
