"""Request plumbing shared by the two POST routes."""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from starlette.requests import Request
from starlette.responses import JSONResponse

from zendesk_archive_gateway.app.jobs.context import GatewayContext, InboundRequest
from zendesk_archive_gateway.app.responses import api_success, gateway_error_response
from zendesk_archive_gateway.domain.errors import (
    DependencyFailure,
    GatewayError,
    TenantNotFound,
    ValidationFailure,
)
from zendesk_archive_gateway.domain.request_auth import AuthenticationContext
from zendesk_archive_gateway.domain.tenant_models import TenantConfig
from zendesk_archive_gateway.domain.tenant_validate import resolve_tenant_config
from zendesk_archive_gateway.observability.metrics import failed_total, rejected_total

log = structlog.get_logger(__name__)

FlowHandler = Callable[
    [GatewayContext, TenantConfig, InboundRequest, AuthenticationContext],
    Awaitable[dict[str, Any]],
]
AuthBuilder = Callable[[bytes, Request, InboundRequest], AuthenticationContext]


def gateway_context(request: Request) -> GatewayContext:
    return request.app.state.gateway


def parse_json_object(raw: bytes) -> dict[str, Any]:
    try:
        payload = json.loads(raw)
    except ValueError as exc:
        raise ValidationFailure("invalid JSON body") from exc
    if not isinstance(payload, dict):
        raise ValidationFailure("JSON body must be an object")
    return payload


def _error_response(flow: str, exc: GatewayError) -> JSONResponse:
    if isinstance(exc, DependencyFailure):
        # Already logged with detail where it was raised.
        failed_total.labels(flow=flow).inc()
    else:
        rejected_total.labels(flow=flow, reason=exc.code).inc()
        log.warning(f"{flow}.rejected", code=exc.code, status=exc.status_code, reason=str(exc))
    return gateway_error_response(exc)


async def run_flow(
    request: Request,
    *,
    flow: str,
    handler: FlowHandler,
    build_auth: AuthBuilder,
) -> JSONResponse:
    """
    Parse the body, resolve the tenant named by its brand id, then hand over to the
    flow. Every GatewayError becomes its mapped status; anything else reaches the
    global exception handler.
    """
    ctx = gateway_context(request)
    raw = await request.body()
    try:
        inbound = InboundRequest.from_payload(parse_json_object(raw))
        if not inbound.brand_id:
            raise ValidationFailure("missing brandId")
        structlog.contextvars.bind_contextvars(brand_id=inbound.brand_id)

        tenant = await resolve_tenant_config(inbound.brand_id, ctx.tenants)
        if tenant is None:
            raise TenantNotFound(f"no usable tenant for brand {inbound.brand_id}")

        body = await handler(ctx, tenant, inbound, build_auth(raw, request, inbound))
    except GatewayError as exc:
        return _error_response(flow, exc)
    return api_success(body)
