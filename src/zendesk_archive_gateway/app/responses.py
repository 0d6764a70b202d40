"""JSON response shapes shared by the routes and the middlewares."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from starlette.responses import JSONResponse

from zendesk_archive_gateway.domain.errors import GatewayError


def api_error(
    status_code: int,
    detail: str,
    *,
    code: str | None = None,
    hint: str | None = None,
    request_id: str | None = None,
    headers: Mapping[str, str] | None = None,
) -> JSONResponse:
    """Return a JSON error response with optional code, hint and request id."""
    content: dict[str, Any] = {"success": False, "detail": detail}
    if code is not None:
        content["code"] = code
    if hint is not None:
        content["hint"] = hint
    if request_id is not None:
        content["request_id"] = request_id
    return JSONResponse(status_code=status_code, content=content, headers=dict(headers or {}))


def gateway_error_response(exc: GatewayError) -> JSONResponse:
    return api_error(exc.status_code, exc.public_message, code=exc.code)


def api_success(body: Mapping[str, Any]) -> JSONResponse:
    return JSONResponse(status_code=200, content=dict(body))
