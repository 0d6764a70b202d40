from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from zendesk_archive_gateway.config.env_aliases import get_flat_env_settings_source

TENANT_BACKENDS = frozenset({"file", "redis"})
AUDIT_BACKENDS = frozenset({"file", "redis", "none"})


def _normalize_backend(value: str) -> str:
    return (value or "").strip().lower()


def _has_text(value: str | None) -> bool:
    return bool(value and value.strip())


class _BaseSection(BaseModel):
    model_config = {"extra": "forbid"}


class ServerSettings(_BaseSection):
    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=1, le=65535)


class TenantsSettings(_BaseSection):
    backend: str = "file"  # file|redis
    file: Path = Path("tenants.json")
    redis_url: str | None = None
    key_prefix: str = "tenant:"

    @field_validator("file")
    @classmethod
    def _expand_file(cls, value: Path) -> Path:
        return value.expanduser()

    @model_validator(mode="after")
    def _redis_url_when_backend_redis(self) -> TenantsSettings:
        self.backend = _normalize_backend(self.backend)
        if self.backend not in TENANT_BACKENDS:
            raise ValueError("tenants.backend must be 'file' or 'redis'")
        if self.backend == "redis" and not _has_text(self.redis_url):
            raise ValueError("tenants.backend is 'redis' but tenants.redis_url is not set")
        return self


class AuditSettings(_BaseSection):
    backend: str = "file"  # file|redis|none
    dir: Path = Path("audit-data")
    redis_url: str | None = None
    # Bearer secret for GET /v1/audit. Unset = the endpoint always answers 401.
    secret: SecretStr | None = None
    ttl_seconds: int = Field(default=90 * 24 * 60 * 60, ge=1)

    @field_validator("dir")
    @classmethod
    def _expand_dir(cls, value: Path) -> Path:
        return value.expanduser()

    @model_validator(mode="after")
    def _redis_url_when_backend_redis(self) -> AuditSettings:
        self.backend = _normalize_backend(self.backend)
        if self.backend not in AUDIT_BACKENDS:
            raise ValueError("audit.backend must be 'file', 'redis' or 'none'")
        if self.backend == "redis" and not _has_text(self.redis_url):
            raise ValueError("audit.backend is 'redis' but audit.redis_url is not set")
        return self


class ZendeskSettings(_BaseSection):
    timeout_seconds: float = Field(default=10.0, gt=0)
    max_attachment_files: int = Field(default=50, ge=0)
    max_attachment_total_bytes: int = Field(default=100 * 1024 * 1024, ge=0)  # 100 MiB


class ArchiveSettings(_BaseSection):
    timeout_seconds: float = Field(default=30.0, gt=0)


class ObservabilitySettings(_BaseSection):
    log_level: str = "INFO"
    log_format: str | None = None  # json|human (overrides LOG_FORMAT/env when set)
    json_logs: bool = False
    metrics_enabled: bool = False
    # When set, GET /metrics requires Authorization: Bearer <this token>.
    metrics_bearer_token: SecretStr | None = None
    # When true, GET /v1/health omits version and service name.
    health_omit_version: bool = False

    @field_validator("log_format")
    @classmethod
    def _validate_log_format(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().lower()
        if normalized in {"json", "human"}:
            return normalized
        raise ValueError("observability.log_format must be 'json' or 'human'")


class RateLimitSettings(_BaseSection):
    enabled: bool = True
    rps: float = Field(default=5.0, ge=0)
    burst: int = Field(default=10, ge=1)
    include_metrics: bool = False
    # When set (e.g. "X-Forwarded-For"), the client key is the first value of this header.
    client_key_header: str | None = None


class BodySizeLimitSettings(_BaseSection):
    # 0 disables the limit.
    max_bytes: int = Field(default=1024 * 1024, ge=0)


class WebhookHardeningSettings(_BaseSection):
    timestamp_tolerance_seconds: int = Field(default=300, ge=1, le=3600)


class TransportHardeningSettings(_BaseSection):
    # If true, httpx reads HTTP_PROXY/HTTPS_PROXY/NO_PROXY and other env settings.
    trust_env: bool = False


class HardeningSettings(_BaseSection):
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    body_size_limit: BodySizeLimitSettings = Field(default_factory=BodySizeLimitSettings)
    webhook: WebhookHardeningSettings = Field(default_factory=WebhookHardeningSettings)
    transport: TransportHardeningSettings = Field(default_factory=TransportHardeningSettings)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="forbid",
    )

    server: ServerSettings = Field(default_factory=ServerSettings)
    tenants: TenantsSettings = Field(default_factory=TenantsSettings)
    audit: AuditSettings = Field(default_factory=AuditSettings)
    zendesk: ZendeskSettings = Field(default_factory=ZendeskSettings)
    archive: ArchiveSettings = Field(default_factory=ArchiveSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)
    hardening: HardeningSettings = Field(default_factory=HardeningSettings)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Settings:
        """
        Construct Settings from a mapping without reading environment variables.

        Useful in tests where we want to pass nested dicts and keep mypy happy.
        """
        class _InitOnlySettings(Settings):
            @classmethod
            def settings_customise_sources(
                cls,
                settings_cls,
                init_settings,
                env_settings,
                dotenv_settings,
                file_secret_settings,
            ):
                return (init_settings,)

        return _InitOnlySettings(**dict(data))

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            env_settings,
            get_flat_env_settings_source,
            init_settings,
            dotenv_settings,
            file_secret_settings,
        )
