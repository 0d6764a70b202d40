"""Flat environment variable names for the nested settings.

Deployments set e.g. `TENANTS_FILE` or `AUDIT_SECRET` rather than
`TENANTS__FILE`. Old names keep working for a while and emit a DeprecationWarning.
"""
from __future__ import annotations

import os
import warnings
from collections.abc import Iterable, Mapping
from typing import Any

_CANONICAL_MAPPINGS: tuple[tuple[str, tuple[str, ...]], ...] = (
    # Server
    ("SERVER_HOST", ("server", "host")),
    ("SERVER_PORT", ("server", "port")),
    # Tenants
    ("TENANTS_BACKEND", ("tenants", "backend")),
    ("TENANTS_FILE", ("tenants", "file")),
    ("TENANTS_KEY_PREFIX", ("tenants", "key_prefix")),
    ("TENANTS_REDIS_URL", ("tenants", "redis_url")),
    # Audit
    ("AUDIT_BACKEND", ("audit", "backend")),
    ("AUDIT_DIR", ("audit", "dir")),
    ("AUDIT_SECRET", ("audit", "secret")),
    ("AUDIT_TTL_SECONDS", ("audit", "ttl_seconds")),
    ("AUDIT_REDIS_URL", ("audit", "redis_url")),
    # Zendesk
    ("ZENDESK_TIMEOUT_SECONDS", ("zendesk", "timeout_seconds")),
    ("ZENDESK_MAX_ATTACHMENT_FILES", ("zendesk", "max_attachment_files")),
    ("ZENDESK_MAX_ATTACHMENT_TOTAL_BYTES", ("zendesk", "max_attachment_total_bytes")),
    # Archive backends
    ("ARCHIVE_TIMEOUT_SECONDS", ("archive", "timeout_seconds")),
    # Observability
    ("LOG_LEVEL", ("observability", "log_level")),
    ("LOG_FORMAT", ("observability", "log_format")),
    ("LOG_JSON", ("observability", "json_logs")),
    ("METRICS_ENABLED", ("observability", "metrics_enabled")),
    ("METRICS_BEARER_TOKEN", ("observability", "metrics_bearer_token")),
    ("HEALTH_OMIT_VERSION", ("observability", "health_omit_version")),
    # Hardening
    ("RATE_LIMIT_ENABLED", ("hardening", "rate_limit", "enabled")),
    ("RATE_LIMIT_RPS", ("hardening", "rate_limit", "rps")),
    ("RATE_LIMIT_BURST", ("hardening", "rate_limit", "burst")),
    ("RATE_LIMIT_INCLUDE_METRICS", ("hardening", "rate_limit", "include_metrics")),
    ("RATE_LIMIT_CLIENT_KEY_HEADER", ("hardening", "rate_limit", "client_key_header")),
    ("MAX_BODY_BYTES", ("hardening", "body_size_limit", "max_bytes")),
    (
        "WEBHOOK_TIMESTAMP_TOLERANCE_SECONDS",
        ("hardening", "webhook", "timestamp_tolerance_seconds"),
    ),
    ("HARDENING_TRANSPORT_TRUST_ENV", ("hardening", "transport", "trust_env")),
)

# One URL for both stores; the per-store names above win when set.
_SHARED_MAPPINGS: tuple[tuple[str, tuple[str, ...], str], ...] = (
    ("REDIS_URL", ("tenants", "redis_url"), "TENANTS_REDIS_URL"),
    ("REDIS_URL", ("audit", "redis_url"), "AUDIT_REDIS_URL"),
)

_DEPRECATED_VALUE_MAPPINGS: tuple[tuple[str, str, tuple[str, ...]], ...] = (
    ("PORT", "SERVER_PORT", ("server", "port")),
    ("HEALTHZ_OMIT_VERSION", "HEALTH_OMIT_VERSION", ("observability", "health_omit_version")),
)

DEPRECATED_ALIASES: dict[str, str] = {old: new for old, new, _ in _DEPRECATED_VALUE_MAPPINGS}


def _warn_deprecated_env_var(old_name: str, new_name: str) -> None:
    warnings.warn(
        f"Environment variable '{old_name}' is deprecated. Use '{new_name}' instead. "
        f"Support for '{old_name}' will be removed in a future version.",
        DeprecationWarning,
        stacklevel=3,
    )


def _set_nested(data: dict[str, Any], path: tuple[str, ...], value: Any) -> None:
    node = data
    for part in path[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    node[path[-1]] = value


def _apply_alias_mappings(
    env: Mapping[str, str],
    data: dict[str, Any],
    mappings: Iterable[tuple[str, tuple[str, ...]]],
) -> None:
    for env_name, path in mappings:
        value = env.get(env_name)
        if value:
            _set_nested(data, path, value)


def _apply_shared_mappings(
    env: Mapping[str, str],
    data: dict[str, Any],
    mappings: Iterable[tuple[str, tuple[str, ...], str]],
) -> None:
    for env_name, path, specific_name in mappings:
        value = env.get(env_name)
        if value and not env.get(specific_name):
            _set_nested(data, path, value)


def _apply_deprecated_aliases(
    env: Mapping[str, str],
    data: dict[str, Any],
    deprecated_mappings: Iterable[tuple[str, str, tuple[str, ...]]],
) -> None:
    for old_name, new_name, path in deprecated_mappings:
        old_value = env.get(old_name)
        if not old_value:
            continue
        if env.get(new_name):
            continue
        _warn_deprecated_env_var(old_name, new_name)
        _set_nested(data, path, old_value)


def deprecated_in_use(env: Mapping[str, str] | None = None) -> list[tuple[str, str, bool]]:
    """(old name, canonical name, needs migration) for each deprecated variable that is set."""
    env = os.environ if env is None else env
    return [
        (old_name, new_name, not env.get(new_name))
        for old_name, new_name in DEPRECATED_ALIASES.items()
        if old_name in env
    ]


def get_flat_env_settings_source() -> dict[str, Any]:
    env = os.environ
    data: dict[str, Any] = {}

    _apply_deprecated_aliases(env, data, _DEPRECATED_VALUE_MAPPINGS)
    _apply_shared_mappings(env, data, _SHARED_MAPPINGS)
    _apply_alias_mappings(env, data, _CANONICAL_MAPPINGS)

    return data
