"""`uvicorn zendesk_archive_gateway.asgi:app` entry point."""

from __future__ import annotations

from zendesk_archive_gateway.app.server import create_app
from zendesk_archive_gateway.config.load import load_settings
from zendesk_archive_gateway.observability.logger import configure_logging

settings = load_settings()
configure_logging(
    log_level=settings.observability.log_level,
    log_format=settings.observability.log_format,
    json_logs=settings.observability.json_logs,
)

app = create_app(settings)
