from __future__ import annotations

import asyncio
from dataclasses import dataclass
from time import monotonic

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Receive, Scope, Send

from zendesk_archive_gateway.app.constants import BODY_LIMITED_PATHS, METRICS_PATH
from zendesk_archive_gateway.app.responses import api_error
from zendesk_archive_gateway.config.settings import Settings

_MAX_EVICT_PER_CALL = 2000


@dataclass
class _Bucket:
    tokens: float
    updated_at: float


class TokenBucketLimiter:
    """Per-key token bucket held in process memory; oldest keys are evicted past `max_entries`."""

    def __init__(
        self,
        *,
        rps: float,
        burst: int,
        max_entries: int = 10_000,
        now=monotonic,
    ) -> None:
        self._rps = float(rps)
        self._burst = float(burst)
        self._max_entries = int(max_entries)
        self._now = now
        self._lock = asyncio.Lock()
        self._buckets: dict[str, _Bucket] = {}

    def __len__(self) -> int:
        return len(self._buckets)

    async def allow(self, key: str) -> bool:
        now = float(self._now())
        async with self._lock:
            if len(self._buckets) > self._max_entries:
                oldest = sorted(self._buckets.items(), key=lambda item: item[1].updated_at)
                excess = len(self._buckets) - self._max_entries + 1
                for old_key, _ in oldest[: min(excess, _MAX_EVICT_PER_CALL)]:
                    self._buckets.pop(old_key, None)

            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = _Bucket(tokens=self._burst, updated_at=now)
                self._buckets[key] = bucket

            elapsed = max(0.0, now - bucket.updated_at)
            if self._rps > 0:
                bucket.tokens = min(self._burst, bucket.tokens + elapsed * self._rps)
            bucket.updated_at = now

            if bucket.tokens >= 1.0:
                bucket.tokens -= 1.0
                return True
            return False


def client_key(scope: Scope, header_name: str | None = None) -> str:
    if header_name:
        raw = Headers(scope=scope).get(header_name) or ""
        first = raw.split(",")[0].strip()
        if first:
            return first
    client = scope.get("client")
    if isinstance(client, (list, tuple)) and client:
        host = client[0]
        if isinstance(host, str) and host:
            return host
    return "unknown"


class RateLimitMiddleware:
    def __init__(self, app: ASGIApp, *, settings: Settings | None) -> None:
        self.app = app
        self._limiter: TokenBucketLimiter | None = None
        self._paths: frozenset[str] = frozenset()
        self._key_header: str | None = None

        if settings is None or not settings.hardening.rate_limit.enabled:
            return

        config = settings.hardening.rate_limit
        paths = set(BODY_LIMITED_PATHS)
        if config.include_metrics:
            paths.add(METRICS_PATH)
        self._paths = frozenset(paths)
        self._key_header = config.client_key_header
        self._limiter = TokenBucketLimiter(rps=config.rps, burst=config.burst)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        limiter = self._limiter
        if scope["type"] != "http" or limiter is None or scope.get("path") not in self._paths:
            await self.app(scope, receive, send)
            return

        if not await limiter.allow(client_key(scope, self._key_header)):
            await api_error(429, "rate limited", code="rate_limited")(scope, receive, send)
            return

        await self.app(scope, receive, send)
