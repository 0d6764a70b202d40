"""Request authentication: webhook HMAC, replay window, API key, brand ownership."""

from __future__ import annotations

import base64
import hashlib
import hmac
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from zendesk_archive_gateway.domain.errors import (
    AuthenticationFailure,
    BrandMismatchError,
    BrandUnverifiableError,
)

SIGNATURE_HEADER = "X-Zendesk-Webhook-Signature"
TIMESTAMP_HEADER = "X-Zendesk-Webhook-Signature-Timestamp"
API_KEY_HEADER = "X-Api-Key"

WEBHOOK_TIMESTAMP_TOLERANCE = timedelta(minutes=5)


@dataclass(frozen=True, slots=True)
class AuthenticationContext:
    raw_body: bytes
    signature: str | None = None
    timestamp: str | None = None
    brand_id: str | None = None
    endpoint_name: str | None = None
    api_key: str | None = None


def _to_bytes(value: str | bytes) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")


def constant_time_equals(provided: str | bytes, expected: str | bytes) -> bool:
    """
    Compare two secrets without leaking their lengths: both sides are hashed to a fixed
    32-byte digest before `hmac.compare_digest`.
    """
    a = hashlib.sha256(_to_bytes(provided)).digest()
    b = hashlib.sha256(_to_bytes(expected)).digest()
    return hmac.compare_digest(a, b)


def compute_webhook_signature(raw_body: bytes, timestamp: str, secret: str) -> str:
    """Zendesk scheme: base64(HMAC-SHA256(secret, timestamp + body))."""
    mac = hmac.new(secret.encode("utf-8"), digestmod=hashlib.sha256)
    mac.update(timestamp.encode("utf-8"))
    mac.update(raw_body)
    return base64.b64encode(mac.digest()).decode("ascii")


def verify_webhook_signature(
    raw_body: bytes,
    timestamp: str | None,
    signature: str | None,
    secret: str | None,
) -> bool:
    if not timestamp or not signature or not secret:
        return False
    expected = compute_webhook_signature(raw_body, timestamp, secret)
    return constant_time_equals(signature, expected)


def parse_timestamp(value: str) -> datetime | None:
    text = value.strip()
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def is_timestamp_fresh(
    timestamp: str | None,
    *,
    tolerance: timedelta = WEBHOOK_TIMESTAMP_TOLERANCE,
    now: datetime | None = None,
) -> bool:
    if not timestamp:
        return False
    instant = parse_timestamp(timestamp)
    if instant is None:
        return False
    current = now or datetime.now(UTC)
    return abs(current - instant) <= tolerance


def authenticate_webhook(
    ctx: AuthenticationContext,
    secret: str | None,
    *,
    tolerance: timedelta = WEBHOOK_TIMESTAMP_TOLERANCE,
    now: datetime | None = None,
) -> None:
    """Both checks must pass; either failure surfaces as the same AuthenticationFailure."""
    if not verify_webhook_signature(ctx.raw_body, ctx.timestamp, ctx.signature, secret):
        raise AuthenticationFailure("webhook signature verification failed")
    if not is_timestamp_fresh(ctx.timestamp, tolerance=tolerance, now=now):
        raise AuthenticationFailure("webhook timestamp outside replay window")


def verify_api_key(provided: str | None, expected: str | None) -> bool:
    if not provided or not expected:
        return False
    return constant_time_equals(provided, expected)


def authenticate_api_key(ctx: AuthenticationContext, expected: str | None) -> None:
    if not verify_api_key(ctx.api_key, expected):
        raise AuthenticationFailure("invalid or missing API key")


def verify_brand_ownership(ticket_brand_id: object, tenant_brand_id: str) -> None:
    """
    The fetched ticket must carry a brand id equal to the tenant's. A ticket without one
    cannot be attributed and is rejected.
    """
    if ticket_brand_id is None or (isinstance(ticket_brand_id, str) and not ticket_brand_id.strip()):
        raise BrandUnverifiableError("ticket brand_id unavailable")
    if str(ticket_brand_id).strip() != tenant_brand_id:
        raise BrandMismatchError("ticket belongs to a different brand")
