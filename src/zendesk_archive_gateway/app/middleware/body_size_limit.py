from __future__ import annotations

import structlog
from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from zendesk_archive_gateway.adapters.http_util import drain_stream
from zendesk_archive_gateway.app.constants import BODY_LIMITED_PATHS
from zendesk_archive_gateway.app.responses import api_error
from zendesk_archive_gateway.config.settings import Settings

log = structlog.get_logger(__name__)


class _BodyTooLarge(Exception):
    pass


def _too_large():
    return api_error(413, "request too large", code="request_too_large")


def _is_limited_path(scope: Scope, max_bytes: int) -> bool:
    return (
        scope["type"] == "http"
        and max_bytes > 0
        and scope.get("path") in BODY_LIMITED_PATHS
    )


def _content_length_exceeds_limit(scope: Scope, max_bytes: int) -> bool:
    content_length = Headers(scope=scope).get("content-length")
    if not content_length:
        return False
    try:
        return int(content_length) > max_bytes
    except ValueError:
        # Unparseable header: the streaming check below still applies.
        return False


def _limited_receive_factory(receive: Receive, max_bytes: int) -> Receive:
    received = 0

    async def limited_receive() -> Message:
        nonlocal received
        message = await receive()
        if message.get("type") == "http.request":
            received += len(message.get("body", b"") or b"")
            if received > max_bytes:
                raise _BodyTooLarge()
        return message

    return limited_receive


class BodySizeLimitMiddleware:
    """
    Reject webhook and attachment request bodies above `hardening.body_size_limit.max_bytes`
    with 413, before any JSON parsing or signature check reads them.
    """

    def __init__(self, app: ASGIApp, *, settings: Settings | None) -> None:
        self.app = app
        self._max_bytes = (
            int(settings.hardening.body_size_limit.max_bytes) if settings is not None else 0
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if not _is_limited_path(scope, self._max_bytes):
            await self.app(scope, receive, send)
            return

        if _content_length_exceeds_limit(scope, self._max_bytes):
            log.warning("http.body_too_large", path=scope.get("path"), max_bytes=self._max_bytes)
            await drain_stream(receive)
            await _too_large()(scope, receive, send)
            return

        try:
            await self.app(scope, _limited_receive_factory(receive, self._max_bytes), send)
        except _BodyTooLarge:
            log.warning("http.body_too_large", path=scope.get("path"), max_bytes=self._max_bytes)
            await drain_stream(receive)
            await _too_large()(scope, receive, send)
