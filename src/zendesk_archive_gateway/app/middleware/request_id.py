from __future__ import annotations

import re
import uuid
from collections.abc import Awaitable, Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from zendesk_archive_gateway.app.constants import REQUEST_ID_HEADER

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")

CallNext = Callable[[Request], Awaitable[Response]]


def current_request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Accept a well-formed caller `X-Request-Id` or mint a UUID; bind it for log lines
    and echo it on the response.
    """

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        request_id = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
        if not _REQUEST_ID_RE.fullmatch(request_id):
            request_id = str(uuid.uuid4())

        request.state.request_id = request_id
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.clear_contextvars()

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
