from __future__ import annotations

import ipaddress
import re
from collections.abc import Mapping
from typing import Any, Protocol
from urllib.parse import urlsplit

import structlog
from pydantic import ValidationError

from zendesk_archive_gateway.domain.errors import AuthorizationFailure, ValidationFailure
from zendesk_archive_gateway.domain.tenant_models import (
    ArchiveEndpointConfig,
    TenantConfig,
    secret_value,
)

log = structlog.get_logger(__name__)

ARCHIVE_TYPES: frozenset[str] = frozenset({"onesystems", "gopro"})

# Zendesk subdomains: alphanumeric + hyphens, so they cannot smuggle a host or path.
_SUBDOMAIN_RE = re.compile(r"[A-Za-z0-9][A-Za-z0-9-]*", re.ASCII)

# Audit lookups are prefix scans; ":" or "/" in a parameter would escape its namespace.
_AUDIT_PARAM_RE = re.compile(r"[A-Za-z0-9_-]+", re.ASCII)

# Hex/octal/decimal host spellings that resolvers may turn into an IPv4 address.
_NUMERIC_HOST_RE = re.compile(r"(0x[0-9a-f]+|[0-9]+)(\.(0x[0-9a-f]*|[0-9]+)){0,3}")

_LOCAL_HOSTNAMES = frozenset({"localhost", "localhost.localdomain"})


class TenantConfigError(ValueError):
    """A tenant document is unusable. Messages never include secret values."""


class MissingFieldsError(TenantConfigError):
    def __init__(self, owner: str, fields: list[str]) -> None:
        self.fields = list(fields)
        super().__init__(f"{owner}: missing {', '.join(self.fields)}")


class InvalidSubdomainError(TenantConfigError):
    pass


class UnknownEndpointTypeError(TenantConfigError):
    pass


class InsecureEndpointError(TenantConfigError):
    """baseUrl is not HTTPS or targets a private/reserved address."""


class InvalidEndpointUrlError(TenantConfigError):
    pass


class UnknownEndpointError(ValidationFailure):
    def __init__(self) -> None:
        # Deliberately generic: listing the configured names would leak tenant layout.
        super().__init__("unknown endpoint")


class TenantStore(Protocol):
    async def get(self, brand_id: str) -> TenantConfig | None: ...


def parse_tenant_config(data: Mapping[str, Any]) -> TenantConfig:
    try:
        return TenantConfig.model_validate(dict(data))
    except ValidationError as exc:
        parts = []
        for item in exc.errors(include_url=False, include_input=False):
            loc = ".".join(str(part) for part in item.get("loc", ())) or "<root>"
            parts.append(f"{loc}: {item.get('msg', 'Invalid value')}")
        label = str(data.get("name") or data.get("brand_id") or "<unnamed>")
        raise TenantConfigError(
            f'Invalid tenant config for "{label}": ' + "; ".join(parts)
        ) from exc


def _missing_scalar_fields(config: TenantConfig) -> list[str]:
    missing: list[str] = []
    if not config.brand_id:
        missing.append("brand_id")
    if not config.name:
        missing.append("name")

    zendesk = config.zendesk
    if zendesk is None or not zendesk.subdomain:
        missing.append("zendesk.subdomain")
    if zendesk is None or not zendesk.email:
        missing.append("zendesk.email")
    if zendesk is None or not secret_value(zendesk.api_token):
        missing.append("zendesk.apiToken")
    if zendesk is None or not secret_value(zendesk.webhook_secret):
        missing.append("zendesk.webhookSecret")

    if config.malaskra is None or not secret_value(config.malaskra.api_key):
        missing.append("malaskra.apiKey")

    if config.pdf is None:
        missing.append("pdf")
    elif not config.pdf.company_name:
        missing.append("pdf.companyName")
    return missing


def validate_tenant_config(config: TenantConfig) -> None:
    """
    Structural and security validation of one tenant document.

    Raises a TenantConfigError subclass at the first failing check. Checks run in a
    fixed order so the same document always produces the same error.
    """
    owner = f'Invalid tenant config for "{config.label}"'

    missing = _missing_scalar_fields(config)
    if missing:
        raise MissingFieldsError(owner, missing)

    subdomain = config.zendesk.subdomain if config.zendesk else ""
    if not _SUBDOMAIN_RE.fullmatch(subdomain or ""):
        raise InvalidSubdomainError(
            f"{owner}: zendesk.subdomain contains invalid characters "
            "(must be alphanumeric/hyphens only)"
        )

    if not config.endpoints:
        raise MissingFieldsError(owner, ["endpoints (at least one required)"])

    for name, endpoint in config.endpoints.items():
        validate_endpoint(name, endpoint)

    caller = config.malaskra
    if caller is not None and caller.default_endpoint:
        if caller.default_endpoint not in config.endpoints:
            raise TenantConfigError(
                f"{owner}: malaskra.defaultEndpoint does not name a configured endpoint"
            )
    if caller is not None and not caller.allow_endpoint_override and not caller.default_endpoint:
        raise MissingFieldsError(owner, ["malaskra.defaultEndpoint"])


def validate_endpoint(name: str, endpoint: ArchiveEndpointConfig) -> None:
    owner = f'Endpoint "{name}"'

    missing = []
    if not endpoint.type:
        missing.append("type")
    if not endpoint.base_url:
        missing.append("baseUrl")
    if missing:
        raise MissingFieldsError(owner, missing)

    if endpoint.type not in ARCHIVE_TYPES:
        raise UnknownEndpointTypeError(
            f'{owner}: unknown type "{endpoint.type}". Must be "onesystems" or "gopro".'
        )

    if endpoint.type == "onesystems":
        if not secret_value(endpoint.app_key):
            missing.append("appKey")
    else:
        if not endpoint.username:
            missing.append("username")
        if not secret_value(endpoint.password):
            missing.append("password")
    if missing:
        raise MissingFieldsError(owner, missing)

    _validate_base_url(owner, endpoint.base_url or "")


def _validate_base_url(owner: str, base_url: str) -> None:
    try:
        parts = urlsplit(base_url.strip())
        host = parts.hostname
        _ = parts.port
    except ValueError as exc:
        raise InvalidEndpointUrlError(f"{owner}: invalid baseUrl") from exc

    scheme = (parts.scheme or "").lower()
    if scheme != "https":
        raise InsecureEndpointError(f'{owner}: baseUrl must use HTTPS (got "{scheme}:")')

    if not host:
        raise InvalidEndpointUrlError(f"{owner}: invalid baseUrl (no host)")
    if parts.username is not None or parts.password is not None:
        raise InvalidEndpointUrlError(f"{owner}: baseUrl must not embed credentials")

    # No legitimate archive is addressed by an IPv6 literal.
    if "[" in parts.netloc or is_private_or_reserved_host(host):
        raise InsecureEndpointError(
            f"{owner}: baseUrl must not point to a private/reserved address"
        )


def is_private_or_reserved_host(host: str) -> bool:
    normalized = host.strip().lower().rstrip(".")
    if not normalized:
        return True
    if normalized in _LOCAL_HOSTNAMES or normalized.endswith(".localhost"):
        return True

    try:
        ip = ipaddress.ip_address(normalized)
    except ValueError:
        return _NUMERIC_HOST_RE.fullmatch(normalized) is not None

    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return not ip.is_global or ip.is_multicast


def resolve_endpoint(config: TenantConfig, name: str | None) -> ArchiveEndpointConfig:
    endpoint = config.endpoints.get(name or "")
    if endpoint is None:
        raise UnknownEndpointError()
    return endpoint


def resolve_caller_endpoint_name(config: TenantConfig, requested: str | None) -> str | None:
    """
    Endpoint name for an on-demand caller. With overrides allowed the request picks
    (falling back to `defaultEndpoint`); otherwise it may only name the default.
    """
    caller = config.malaskra
    default = caller.default_endpoint if caller is not None else None
    if caller is None or caller.allow_endpoint_override:
        return requested or default
    if requested and requested != default:
        raise AuthorizationFailure("endpoint override not allowed for this tenant")
    return default


def sanitize_audit_param(value: str | None) -> str | None:
    if not value:
        return None
    return value if _AUDIT_PARAM_RE.fullmatch(value) else None


async def resolve_tenant_config(brand_id: str | None, store: TenantStore) -> TenantConfig | None:
    """
    Look up and validate a tenant. Returns None for unknown tenants and for tenants whose
    stored document fails validation; the caller cannot tell the two apart.
    """
    if not brand_id:
        return None

    config = await store.get(brand_id)
    if config is None:
        log.warning("tenant.not_found", brand_id=brand_id)
        return None

    try:
        validate_tenant_config(config)
    except TenantConfigError as exc:
        log.error("tenant.invalid_config", brand_id=brand_id, error=str(exc))
        return None

    if config.brand_id != brand_id:
        log.error("tenant.brand_id_mismatch", brand_id=brand_id)
        return None
    return config
