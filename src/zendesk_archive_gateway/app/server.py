from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from starlette.requests import Request

from zendesk_archive_gateway._version import DISTRIBUTION_NAME, __version__
from zendesk_archive_gateway.app.constants import REQUEST_ID_HEADER
from zendesk_archive_gateway.app.jobs.context import (
    ArchiveFactory,
    GatewayContext,
    ZendeskFactory,
    default_archive_factory,
    default_zendesk_factory,
)
from zendesk_archive_gateway.app.middleware.body_size_limit import BodySizeLimitMiddleware
from zendesk_archive_gateway.app.middleware.rate_limit import RateLimitMiddleware
from zendesk_archive_gateway.app.middleware.request_id import (
    RequestIdMiddleware,
    current_request_id,
)
from zendesk_archive_gateway.app.responses import api_error
from zendesk_archive_gateway.app.routes.attachments import router as attachments_router
from zendesk_archive_gateway.app.routes.audit import router as audit_router
from zendesk_archive_gateway.app.routes.health import router as health_router
from zendesk_archive_gateway.app.routes.webhook import router as webhook_router
from zendesk_archive_gateway.app.stores import aclose_stores, build_audit_sink, build_tenant_store
from zendesk_archive_gateway.config.redact import scrub_secrets_in_text
from zendesk_archive_gateway.config.settings import Settings
from zendesk_archive_gateway.domain.audit import AuditSink
from zendesk_archive_gateway.domain.errors import wrap_exception
from zendesk_archive_gateway.domain.tenant_validate import TenantStore

log = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    gateway: GatewayContext | None = getattr(app.state, "gateway", None)
    if gateway is not None:
        await aclose_stores(gateway.tenants, gateway.audit)


async def _global_exception_handler(request: Request, exc: Exception):
    error = wrap_exception(exc)
    log.error(
        "http.unhandled_exception",
        path=request.url.path,
        error_type=exc.__class__.__name__,
        error=scrub_secrets_in_text(str(exc)),
    )
    request_id = current_request_id(request)
    headers = {REQUEST_ID_HEADER: request_id} if request_id else None
    return api_error(
        error.status_code,
        error.public_message,
        code=error.code,
        request_id=request_id,
        headers=headers,
    )


def _wire_app(app: FastAPI, *, settings: Settings) -> None:
    app.add_middleware(BodySizeLimitMiddleware, settings=settings)
    app.add_middleware(RateLimitMiddleware, settings=settings)
    app.add_middleware(RequestIdMiddleware)
    app.add_exception_handler(Exception, _global_exception_handler)

    app.include_router(health_router)
    app.include_router(webhook_router)
    app.include_router(attachments_router)
    app.include_router(audit_router)
    if settings.observability.metrics_enabled:
        from zendesk_archive_gateway.app.routes.metrics import router as metrics_router

        app.include_router(metrics_router)


def create_app(
    settings: Settings | None = None,
    *,
    tenant_store: TenantStore | None = None,
    audit_sink: AuditSink | None = None,
    zendesk_factory: ZendeskFactory = default_zendesk_factory,
    archive_factory: ArchiveFactory = default_archive_factory,
) -> FastAPI:
    """
    Build the ASGI app. Stores default to the backends named in `settings`; tests pass
    their own stores and client factories.
    """
    settings = settings or Settings.from_mapping({})
    app = FastAPI(title=DISTRIBUTION_NAME, version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.gateway = GatewayContext(
        settings=settings,
        tenants=tenant_store if tenant_store is not None else build_tenant_store(settings),
        audit=audit_sink if audit_sink is not None else build_audit_sink(settings),
        zendesk_factory=zendesk_factory,
        archive_factory=archive_factory,
    )
    _wire_app(app, settings=settings)
    return app
