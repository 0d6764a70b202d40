from __future__ import annotations

from fastapi import APIRouter, Request

from zendesk_archive_gateway._version import DISTRIBUTION_NAME, __version__
from zendesk_archive_gateway.app.constants import HEALTH_PATH
from zendesk_archive_gateway.domain.time_utils import format_timestamp_utc, now_utc

router = APIRouter()


@router.get(HEALTH_PATH)
def health(request: Request) -> dict[str, str]:
    out: dict[str, str] = {"status": "ok", "timestamp": format_timestamp_utc(now_utc())}
    settings = getattr(request.app.state, "settings", None)
    if settings is None or not settings.observability.health_omit_version:
        out["service"] = DISTRIBUTION_NAME
        out["version"] = __version__
    return out
