from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from pydantic import ValidationError

from zendesk_archive_gateway.adapters.redis_util import import_redis
from zendesk_archive_gateway.config.settings import Settings


@dataclass(frozen=True)
class ConfigValidationIssue:
    path: str
    message: str


class ConfigValidationError(ValueError):
    def __init__(self, issues: Iterable[ConfigValidationIssue]):
        self.issues = list(issues)
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        lines = ["Configuration is invalid:"]
        for issue in self.issues:
            lines.append(f"- {issue.path}: {issue.message}")
        return "\n".join(lines)


def issues_from_pydantic_error(error: ValidationError) -> list[ConfigValidationIssue]:
    issues: list[ConfigValidationIssue] = []
    for item in error.errors(include_url=False, include_input=False):
        loc = ".".join(str(part) for part in item.get("loc", ())) or "<root>"
        msg = item.get("msg", "Invalid value")
        issues.append(ConfigValidationIssue(path=loc, message=msg))
    return issues


def validate_settings(settings: Settings) -> None:
    issues: list[ConfigValidationIssue] = []

    log_level = settings.observability.log_level.upper()
    allowed_levels = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
    if log_level not in allowed_levels:
        issues.append(
            ConfigValidationIssue(
                path="observability.log_level",
                message=(
                    f"Unsupported log level {settings.observability.log_level!r} "
                    f"(allowed: {sorted(allowed_levels)})"
                ),
            )
        )

    redis_paths = []
    if settings.tenants.backend == "redis":
        redis_paths.append("tenants.backend")
    if settings.audit.backend == "redis":
        redis_paths.append("audit.backend")
    if redis_paths and import_redis() is None:
        for path in redis_paths:
            issues.append(
                ConfigValidationIssue(
                    path=path,
                    message=(
                        "Redis backend selected but the 'redis' package is not installed "
                        "(pip install 'zendesk-archive-gateway[redis]')."
                    ),
                )
            )

    secret = settings.audit.secret
    if secret is not None and secret.get_secret_value() != secret.get_secret_value().strip():
        issues.append(
            ConfigValidationIssue(
                path="audit.secret",
                message="Audit secret must not have leading or trailing whitespace.",
            )
        )

    if issues:
        raise ConfigValidationError(issues)
