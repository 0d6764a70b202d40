from __future__ import annotations

import json
from typing import Any

import structlog

from zendesk_archive_gateway.adapters.redis_util import redis_from_url

log = structlog.get_logger(__name__)

_SCAN_BATCH = 500


class RedisAuditSink:
    """`SET key value EX ttl`; queries are a `SCAN MATCH prefix*` sorted newest-first."""

    def __init__(self, redis: Any) -> None:
        self._redis = redis

    @classmethod
    def from_url(cls, url: str) -> RedisAuditSink:
        return cls(redis_from_url(url))

    async def append(self, key: str, value: str, ttl_seconds: int | None) -> None:
        await self._redis.set(key, value, ex=ttl_seconds or None)

    async def query(self, prefix: str, limit: int) -> list[dict[str, Any]]:
        pattern = _escape_glob(prefix) + "*"
        keys = [key async for key in self._redis.scan_iter(match=pattern, count=_SCAN_BATCH)]
        keys.sort(reverse=True)

        entries: list[dict[str, Any]] = []
        for key in keys[:limit]:
            raw = await self._redis.get(key)
            if not raw:
                continue
            try:
                value = json.loads(raw)
            except ValueError:
                log.warning("audit.entry_unreadable", key=key)
                continue
            if isinstance(value, dict):
                entries.append(value)
        return entries

    async def aclose(self) -> None:
        await self._redis.aclose()


def _escape_glob(value: str) -> str:
    out = []
    for char in value:
        if char in "*?[]\\":
            out.append("\\")
        out.append(char)
    return "".join(out)
