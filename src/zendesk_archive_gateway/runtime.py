from __future__ import annotations

import structlog
import uvicorn

from zendesk_archive_gateway._version import __version__
from zendesk_archive_gateway.app.server import create_app
from zendesk_archive_gateway.config.load import load_settings
from zendesk_archive_gateway.observability.logger import configure_logging

log = structlog.get_logger(__name__)


def main() -> int:
    settings = load_settings()
    observability = settings.observability
    configure_logging(
        log_level=observability.log_level,
        log_format=observability.log_format,
        json_logs=observability.json_logs,
    )

    app = create_app(settings)
    log.info(
        "gateway.starting",
        version=__version__,
        host=settings.server.host,
        port=settings.server.port,
        tenants_backend=settings.tenants.backend,
        audit_backend=settings.audit.backend,
        audit_query_enabled=settings.audit.secret is not None,
        metrics_enabled=observability.metrics_enabled,
    )
    # Logging is already configured above; uvicorn must not install its own handlers.
    uvicorn.run(app, host=settings.server.host, port=settings.server.port, log_config=None)
    return 0
