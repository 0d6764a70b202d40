from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class _TenantModel(BaseModel):
    # Tenant documents are written by hand (tenants.json / KV), using the camelCase keys
    # of the original deployment format. Presence checks live in tenant_validate so that
    # every missing field can be reported by name in one pass.
    model_config = ConfigDict(
        extra="ignore",
        frozen=True,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )


class ZendeskCredentials(_TenantModel):
    subdomain: str | None = None
    email: str | None = None
    api_token: SecretStr | None = Field(default=None, alias="apiToken")
    webhook_secret: SecretStr | None = Field(default=None, alias="webhookSecret")


class ArchiveEndpointConfig(_TenantModel):
    type: str | None = None
    base_url: str | None = Field(default=None, alias="baseUrl")
    # onesystems
    app_key: SecretStr | None = Field(default=None, alias="appKey")
    # gopro
    username: str | None = None
    password: SecretStr | None = None
    case_number_field_id: int | None = Field(default=None, alias="caseNumberFieldId")
    token_ttl_ms: int | None = Field(default=None, alias="tokenTtlMs", gt=0)


class CallerCredential(_TenantModel):
    api_key: SecretStr | None = Field(default=None, alias="apiKey")
    # When false, on-demand callers are pinned to `default_endpoint`.
    allow_endpoint_override: bool = Field(default=True, alias="allowEndpointOverride")
    default_endpoint: str | None = Field(default=None, alias="defaultEndpoint")


class RenderSettings(_TenantModel):
    company_name: str | None = Field(default=None, alias="companyName")
    locale: str = "is-IS"
    timezone: str = "Atlantic/Reykjavik"
    include_internal_notes: bool = Field(default=False, alias="includeInternalNotes")


class TenantConfig(_TenantModel):
    brand_id: str | None = None
    name: str | None = None
    zendesk: ZendeskCredentials | None = None
    endpoints: dict[str, ArchiveEndpointConfig] = Field(default_factory=dict)
    malaskra: CallerCredential | None = None
    pdf: RenderSettings | None = None

    @property
    def label(self) -> str:
        """Name used in log lines and validation messages."""
        return self.name or self.brand_id or "<unnamed>"


def secret_value(value: SecretStr | None) -> str:
    if value is None:
        return ""
    return value.get_secret_value()
