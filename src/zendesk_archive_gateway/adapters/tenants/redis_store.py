from __future__ import annotations

import json
from typing import Any

import structlog

from zendesk_archive_gateway.adapters.redis_util import redis_from_url
from zendesk_archive_gateway.domain.tenant_models import TenantConfig
from zendesk_archive_gateway.domain.tenant_validate import TenantConfigError, parse_tenant_config

log = structlog.get_logger(__name__)

DEFAULT_KEY_PREFIX = "tenant:"


class RedisTenantStore:
    """Tenants as JSON strings under `{prefix}{brand_id}`, read on every request."""

    def __init__(self, redis: Any, *, key_prefix: str = DEFAULT_KEY_PREFIX) -> None:
        self._redis = redis
        self._key_prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, *, key_prefix: str = DEFAULT_KEY_PREFIX) -> RedisTenantStore:
        return cls(redis_from_url(url), key_prefix=key_prefix)

    async def get(self, brand_id: str) -> TenantConfig | None:
        raw = await self._redis.get(f"{self._key_prefix}{brand_id}")
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except ValueError:
            log.error("tenants.parse_failed", brand_id=brand_id)
            return None
        if not isinstance(data, dict):
            log.error("tenants.parse_failed", brand_id=brand_id)
            return None
        try:
            return parse_tenant_config(data)
        except TenantConfigError as exc:
            log.error("tenants.entry_invalid", brand_id=brand_id, error=str(exc))
            return None

    async def aclose(self) -> None:
        await self._redis.aclose()
