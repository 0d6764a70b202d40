from __future__ import annotations

from fastapi import APIRouter, Request
from starlette.responses import Response

from zendesk_archive_gateway.app.constants import METRICS_PATH
from zendesk_archive_gateway.domain.request_auth import constant_time_equals
from zendesk_archive_gateway.observability.metrics import render_latest

router = APIRouter()


def _metrics_unauthorized() -> Response:
    return Response(content="Unauthorized\n", status_code=401, media_type="text/plain")


@router.get(METRICS_PATH)
def metrics(request: Request) -> Response:
    settings = getattr(request.app.state, "settings", None)
    token = settings.observability.metrics_bearer_token if settings is not None else None
    if token is not None:
        expected = token.get_secret_value()
        auth = request.headers.get("Authorization", "")
        if not expected or not auth.startswith("Bearer "):
            return _metrics_unauthorized()
        if not constant_time_equals(auth[7:].strip(), expected):
            return _metrics_unauthorized()
    payload, content_type = render_latest()
    return Response(content=payload, headers={"Content-Type": content_type})
