from __future__ import annotations

from copy import deepcopy
from datetime import datetime
from typing import Any

from zendesk_archive_gateway.domain.request_auth import (
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    compute_webhook_signature,
)
from zendesk_archive_gateway.domain.tenant_models import TenantConfig
from zendesk_archive_gateway.domain.tenant_validate import parse_tenant_config
from zendesk_archive_gateway.domain.time_utils import format_timestamp_utc, now_utc

BRAND_ID = "360001"
WEBHOOK_SECRET = "whsec-test"
CALLER_API_KEY = "caller-key"
CASE_FIELD_ID = 900001

_BASE: dict[str, Any] = {
    "brand_id": BRAND_ID,
    "name": "Acme",
    "zendesk": {
        "subdomain": "acme",
        "email": "admin@acme.is",
        "apiToken": "zd-api-token",
        "webhookSecret": WEBHOOK_SECRET,
    },
    "endpoints": {
        "main": {
            "type": "onesystems",
            "baseUrl": "https://archive.acme.is",
            "appKey": "one-app-key",
            "caseNumberFieldId": CASE_FIELD_ID,
        },
        "records": {
            "type": "gopro",
            "baseUrl": "https://gopro.acme.is",
            "username": "svc-archive",
            "password": "gopro-pw",
        },
    },
    "malaskra": {"apiKey": CALLER_API_KEY},
    "pdf": {
        "companyName": "Acme ehf.",
        "locale": "is-IS",
        "timezone": "Atlantic/Reykjavik",
        "includeInternalNotes": False,
    },
}


def tenant_document(**overrides: Any) -> dict[str, Any]:
    """A valid tenant document; top-level keys in `overrides` replace the defaults."""
    doc = deepcopy(_BASE)
    doc.update(deepcopy(overrides))
    return doc


def tenant_config(**overrides: Any) -> TenantConfig:
    return parse_tenant_config(tenant_document(**overrides))


def signed_headers(
    body: bytes,
    *,
    secret: str = WEBHOOK_SECRET,
    at: datetime | None = None,
) -> dict[str, str]:
    timestamp = format_timestamp_utc(at or now_utc())
    return {
        "Content-Type": "application/json",
        SIGNATURE_HEADER: compute_webhook_signature(body, timestamp, secret),
        TIMESTAMP_HEADER: timestamp,
    }
