from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import structlog

from zendesk_archive_gateway.domain.tenant_models import TenantConfig
from zendesk_archive_gateway.domain.tenant_validate import TenantConfigError, parse_tenant_config

log = structlog.get_logger(__name__)


class FileTenantStore:
    """
    Tenants from a `tenants.json` document (`{"tenants": [...]}`), read once at start-up.

    Entries are only parsed here; validation happens per request in
    `resolve_tenant_config`, so one broken tenant does not take the others down.
    """

    def __init__(self, tenants: Iterable[TenantConfig] = ()) -> None:
        self._tenants: dict[str, TenantConfig] = {}
        for tenant in tenants:
            if tenant.brand_id:
                self._tenants[tenant.brand_id] = tenant

    def __len__(self) -> int:
        return len(self._tenants)

    @property
    def brand_ids(self) -> list[str]:
        return sorted(self._tenants)

    async def get(self, brand_id: str) -> TenantConfig | None:
        return self._tenants.get(brand_id)

    async def aclose(self) -> None:
        return None

    @classmethod
    def from_document(cls, document: Any) -> FileTenantStore:
        if not isinstance(document, Mapping) or not isinstance(document.get("tenants"), list):
            raise TenantConfigError('tenants document must be an object with a "tenants" list')

        tenants: list[TenantConfig] = []
        for index, entry in enumerate(document["tenants"]):
            if not isinstance(entry, Mapping):
                log.error("tenants.entry_invalid", index=index, error="entry is not an object")
                continue
            try:
                tenants.append(parse_tenant_config(entry))
            except TenantConfigError as exc:
                log.error("tenants.entry_invalid", index=index, error=str(exc))
        return cls(tenants)

    @classmethod
    def from_path(cls, path: Path) -> FileTenantStore:
        """A missing or unreadable file yields an empty store (every request then 404s)."""
        try:
            document = json.loads(Path(path).read_text(encoding="utf-8"))
            store = cls.from_document(document)
        except (OSError, ValueError) as exc:
            log.error("tenants.load_failed", path=str(path), error=str(exc))
            return cls()
        log.info("tenants.loaded", path=str(path), count=len(store))
        return store
