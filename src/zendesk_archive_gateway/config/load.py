from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from zendesk_archive_gateway.config.settings import Settings
from zendesk_archive_gateway.config.validate import (
    ConfigValidationError,
    ConfigValidationIssue,
    issues_from_pydantic_error,
    validate_settings,
)

DEFAULT_CONFIG_PATH = Path("config/config.yaml")
DOTENV_PATH = Path(".env")

# Issue paths produced by the section validators in config/settings.py.
_HINTS: dict[str, str] = {
    "tenants": "Set `TENANTS_BACKEND=file` with `TENANTS_FILE`, or `redis` with `REDIS_URL`.",
    "audit": "Set `AUDIT_BACKEND` to file (`AUDIT_DIR`), redis (`REDIS_URL`) or none.",
    "observability.log_format": "Use `LOG_FORMAT=json` or `LOG_FORMAT=human`.",
    "server.port": "Set `SERVER_PORT` (or YAML `server.port`).",
}


def _issue(path: str | Path, message: str) -> ConfigValidationError:
    return ConfigValidationError([ConfigValidationIssue(path=str(path), message=message)])


def _config_file(config_path: str | Path | None) -> tuple[Path, bool]:
    """
    Where to read YAML from, and whether the caller named it (argument or CONFIG_PATH).
    A named file must exist; the default one is optional.
    """
    if config_path is not None:
        return Path(config_path), True
    if (env_path := os.environ.get("CONFIG_PATH")):
        return Path(env_path), True
    return DEFAULT_CONFIG_PATH, False


def _read_yaml_mapping(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise _issue("CONFIG_PATH", f"Config file not found: {path}")
        return {}

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise _issue(path, f"Unable to read config file: {exc}") from exc
    except yaml.YAMLError as exc:
        raise _issue(path, f"Invalid YAML: {exc}") from exc

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise _issue(path, "YAML root must be a mapping/object")
    return raw


def _with_hints(issues: list[ConfigValidationIssue]) -> list[ConfigValidationIssue]:
    enriched: list[ConfigValidationIssue] = []
    for issue in issues:
        hint = _HINTS.get(issue.path)
        if hint and hint not in issue.message:
            issue = ConfigValidationIssue(issue.path, f"{issue.message} {hint}")
        enriched.append(issue)
    return enriched


def load_settings(*, config_path: str | Path | None = None) -> Settings:
    """
    Instance settings from `.env`, the process environment and an optional YAML file.
    Environment values win over YAML; `.env` never overrides the real environment.
    """
    if DOTENV_PATH.is_file():
        load_dotenv(dotenv_path=DOTENV_PATH, override=False)

    path, required = _config_file(config_path)
    yaml_data = _read_yaml_mapping(path, required=required)

    try:
        settings = Settings(**yaml_data)
    except ValidationError as exc:
        raise ConfigValidationError(_with_hints(issues_from_pydantic_error(exc))) from exc

    validate_settings(settings)
    return settings
