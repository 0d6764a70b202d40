from __future__ import annotations

from typing import Any

from zendesk_archive_gateway.adapters.archive.base import ArchiveClient
from zendesk_archive_gateway.adapters.archive.errors import ArchiveConfigError
from zendesk_archive_gateway.adapters.archive.gopro import GoProClient
from zendesk_archive_gateway.adapters.archive.onesystems import OneSystemsClient
from zendesk_archive_gateway.domain.tenant_models import ArchiveEndpointConfig, secret_value


def _onesystems(endpoint: ArchiveEndpointConfig, user: str | None, **kwargs: Any) -> ArchiveClient:
    app_key = secret_value(endpoint.app_key)
    if not app_key:
        raise ArchiveConfigError("onesystems endpoint missing appKey")
    return OneSystemsClient(
        base_url=endpoint.base_url or "",
        app_key=app_key,
        user=user,
        token_ttl_ms=endpoint.token_ttl_ms,
        **kwargs,
    )


def _gopro(endpoint: ArchiveEndpointConfig, user: str | None, **kwargs: Any) -> ArchiveClient:
    password = secret_value(endpoint.password)
    if not endpoint.username or not password:
        raise ArchiveConfigError("gopro endpoint missing username or password")
    return GoProClient(
        base_url=endpoint.base_url or "",
        username=endpoint.username,
        password=password,
        token_ttl_ms=endpoint.token_ttl_ms,
        **kwargs,
    )


_BUILDERS = {
    "onesystems": _onesystems,
    "gopro": _gopro,
}


def create_archive_client(
    endpoint: ArchiveEndpointConfig,
    *,
    user: str | None = None,
    timeout_seconds: float = 30.0,
    trust_env: bool = False,
) -> ArchiveClient:
    """
    Build a fresh client for one request. `user` is the OneSystems "User" field (the
    solving agent); other backends ignore it.
    """
    builder = _BUILDERS.get(endpoint.type or "")
    if builder is None:
        raise ArchiveConfigError(f"unknown archive type {endpoint.type!r}")
    return builder(endpoint, user, timeout_seconds=timeout_seconds, trust_env=trust_env)
