from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from pydantic import SecretStr

REDACTED_VALUE = "[redacted]"

_EXPLICIT_SENSITIVE_KEYS = frozenset(
    {
        # Flat env-var names.
        "audit_secret",
        "metrics_bearer_token",
        # Tenant document keys (camelCase and snake_case).
        "apitoken",
        "api_token",
        "webhooksecret",
        "webhook_secret",
        "appkey",
        "app_key",
        "apikey",
        "api_key",
    }
)

_SENSITIVE_KEY_FRAGMENTS = (
    "password",
    "token",
    "secret",
    "authorization",
    "api_key",
    "apikey",
    "appkey",
    "app_key",
)

_AUTHZ_SCHEME_RE = re.compile(
    r"(?i)\b(authorization)\s*[:=]\s*(bearer|token|basic)\s+([^\s,;]+)"
)
_BARE_BEARER_RE = re.compile(r"(?i)\b(bearer|basic)\s+([A-Za-z0-9._~+/=-]{16,})")
_COMMON_KV_SECRET_RE = re.compile(
    r"(?i)\b("
    r"token|api[_-]?token|access[_-]?token|webhook[_-]?secret|app[_-]?key|api[_-]?key|"
    r"secret|password|passwd"
    r")(\"?)\s*[:=]\s*\"?([^\s,;\"]+)"
)
_COMMON_QUERY_SECRET_RE = re.compile(
    r"(?i)([?&](?:api[_-]?token|access[_-]?token|token|secret|app[_-]?key)=)([^&\s]+)"
)


def scrub_secrets_in_text(text: str) -> str:
    """
    Best-effort redaction for secrets embedded in free-form text (exceptions, warnings,
    backend error bodies).

    Conservative: it targets common credential formats and keeps the rest readable.
    """
    if not text:
        return text

    out = text

    # Authorization: Bearer <...> / Token <...> / Basic <...>
    out = _AUTHZ_SCHEME_RE.sub(r"\1: \2 " + REDACTED_VALUE, out)
    out = _BARE_BEARER_RE.sub(r"\1 " + REDACTED_VALUE, out)

    # key=value, key: value and "key": "value" patterns.
    out = _COMMON_KV_SECRET_RE.sub(lambda m: f"{m.group(1)}{m.group(2)}={REDACTED_VALUE}", out)

    # Query parameters.
    out = _COMMON_QUERY_SECRET_RE.sub(lambda m: f"{m.group(1)}{REDACTED_VALUE}", out)

    return out


def _is_sensitive_key(key: str) -> bool:
    normalized = key.strip().lower()
    if normalized in _EXPLICIT_SENSITIVE_KEYS:
        return True
    if normalized.endswith("_pass"):
        return True
    return any(fragment in normalized for fragment in _SENSITIVE_KEY_FRAGMENTS)


def _redact_value(value: Any) -> Any:
    if isinstance(value, SecretStr):
        return REDACTED_VALUE
    if isinstance(value, str):
        return scrub_secrets_in_text(value)
    if isinstance(value, Mapping):
        return redact_settings_dict(value)
    if isinstance(value, list):
        return [_redact_value(item) for item in value]
    if isinstance(value, tuple):
        return tuple(_redact_value(item) for item in value)
    return value


def redact_settings_dict(data: Mapping[str, Any]) -> dict[str, Any]:
    """
    Returns a deep-redacted copy of `data` (does not mutate input).

    Redaction rules:
    - Any value under a sensitive key is replaced with `REDACTED_VALUE`.
    - Any `pydantic.SecretStr` value is replaced with `REDACTED_VALUE` even if the key is not known.
    """
    scrubbed: dict[str, Any] = {}
    for key, value in data.items():
        if _is_sensitive_key(str(key)):
            scrubbed[str(key)] = REDACTED_VALUE
        else:
            scrubbed[str(key)] = _redact_value(value)
    return scrubbed
