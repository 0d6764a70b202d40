"""Tenant store and audit sink selected by settings, built once per app."""

from __future__ import annotations

from typing import Any

import structlog

from zendesk_archive_gateway.adapters.audit.file_sink import FileAuditSink
from zendesk_archive_gateway.adapters.audit.redis_sink import RedisAuditSink
from zendesk_archive_gateway.adapters.tenants.file_store import FileTenantStore
from zendesk_archive_gateway.adapters.tenants.redis_store import RedisTenantStore
from zendesk_archive_gateway.config.settings import Settings
from zendesk_archive_gateway.domain.audit import AuditSink, NullAuditSink
from zendesk_archive_gateway.domain.tenant_validate import TenantStore

log = structlog.get_logger(__name__)


def build_tenant_store(settings: Settings) -> TenantStore:
    cfg = settings.tenants
    if cfg.backend == "redis":
        return RedisTenantStore.from_url(cfg.redis_url or "", key_prefix=cfg.key_prefix)
    return FileTenantStore.from_path(cfg.file)


def build_audit_sink(settings: Settings) -> AuditSink:
    cfg = settings.audit
    if cfg.backend == "none":
        return NullAuditSink()
    if cfg.backend == "redis":
        return RedisAuditSink.from_url(cfg.redis_url or "")
    return FileAuditSink(cfg.dir)


async def aclose_stores(*resources: Any) -> None:
    for resource in resources:
        aclose = getattr(resource, "aclose", None)
        if aclose is None:
            continue
        try:
            await aclose()
        except Exception as exc:
            log.warning("stores.close_failed", store=type(resource).__name__, error=str(exc))
