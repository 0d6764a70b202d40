from __future__ import annotations

from fastapi import APIRouter, Request
from starlette.responses import JSONResponse

from zendesk_archive_gateway.app.constants import ATTACHMENTS_PATH
from zendesk_archive_gateway.app.jobs.context import InboundRequest
from zendesk_archive_gateway.app.jobs.forward_attachments import forward_attachments
from zendesk_archive_gateway.app.routes.common import run_flow
from zendesk_archive_gateway.domain.request_auth import API_KEY_HEADER, AuthenticationContext
from zendesk_archive_gateway.observability.metrics import FLOW_ATTACHMENTS

router = APIRouter()


def _api_key_auth(raw: bytes, request: Request, inbound: InboundRequest) -> AuthenticationContext:
    return AuthenticationContext(
        raw_body=raw,
        brand_id=inbound.brand_id,
        endpoint_name=inbound.endpoint_name,
        api_key=request.headers.get(API_KEY_HEADER),
    )


@router.post(ATTACHMENTS_PATH)
async def attachments(request: Request) -> JSONResponse:
    return await run_flow(
        request,
        flow=FLOW_ATTACHMENTS,
        handler=forward_attachments,
        build_auth=_api_key_auth,
    )
