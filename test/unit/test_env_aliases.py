from __future__ import annotations

from pathlib import Path

import pytest

from zendesk_archive_gateway.config.env_aliases import deprecated_in_use
from zendesk_archive_gateway.config.load import load_settings


def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    keys = [
        "CONFIG_PATH",
        "SERVER_PORT",
        "TENANTS_BACKEND",
        "TENANTS_FILE",
        "TENANTS_REDIS_URL",
        "AUDIT_BACKEND",
        "AUDIT_DIR",
        "AUDIT_SECRET",
        "AUDIT_REDIS_URL",
        "REDIS_URL",
        "RATE_LIMIT_BURST",
        "MAX_BODY_BYTES",
        "WEBHOOK_TIMESTAMP_TOLERANCE_SECONDS",
        "HEALTH_OMIT_VERSION",
        # Legacy names
        "PORT",
        "HEALTHZ_OMIT_VERSION",
    ]
    for key in keys:
        monkeypatch.delenv(key, raising=False)


def test_flat_env_names_are_honored(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    _clear_env(monkeypatch)

    monkeypatch.setenv("TENANTS_FILE", str(tmp_path / "t.json"))
    monkeypatch.setenv("AUDIT_DIR", str(tmp_path / "audit"))
    monkeypatch.setenv("AUDIT_SECRET", "s3")
    monkeypatch.setenv("RATE_LIMIT_BURST", "4")
    monkeypatch.setenv("MAX_BODY_BYTES", "2048")
    monkeypatch.setenv("WEBHOOK_TIMESTAMP_TOLERANCE_SECONDS", "60")

    settings = load_settings()
    assert settings.tenants.file == tmp_path / "t.json"
    assert settings.audit.dir == tmp_path / "audit"
    assert settings.audit.secret is not None
    assert settings.audit.secret.get_secret_value() == "s3"
    assert settings.hardening.rate_limit.burst == 4
    assert settings.hardening.body_size_limit.max_bytes == 2048
    assert settings.hardening.webhook.timestamp_tolerance_seconds == 60


def test_shared_redis_url_feeds_both_stores(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.chdir(tmp_path)
    _clear_env(monkeypatch)

    monkeypatch.setenv("REDIS_URL", "redis://shared:6379/0")
    monkeypatch.setenv("AUDIT_REDIS_URL", "redis://audit:6379/1")

    settings = load_settings()
    assert settings.tenants.redis_url == "redis://shared:6379/0"
    assert settings.audit.redis_url == "redis://audit:6379/1"


def test_legacy_port_is_honored_with_warning(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.chdir(tmp_path)
    _clear_env(monkeypatch)
    monkeypatch.setenv("PORT", "9090")

    with pytest.warns(DeprecationWarning, match="'PORT' is deprecated"):
        settings = load_settings()

    assert settings.server.port == 9090


def test_canonical_name_wins_over_legacy(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    _clear_env(monkeypatch)
    monkeypatch.setenv("PORT", "9090")
    monkeypatch.setenv("SERVER_PORT", "7070")

    assert load_settings().server.port == 7070


def test_deprecated_in_use_reports_migration_state() -> None:
    env = {"PORT": "1", "HEALTHZ_OMIT_VERSION": "true", "HEALTH_OMIT_VERSION": "true"}

    assert deprecated_in_use(env) == [
        ("PORT", "SERVER_PORT", True),
        ("HEALTHZ_OMIT_VERSION", "HEALTH_OMIT_VERSION", False),
    ]
    assert deprecated_in_use({}) == []
