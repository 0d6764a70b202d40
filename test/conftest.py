from __future__ import annotations

import os
import socket
import sys
from pathlib import Path

import pytest
import structlog


def pytest_configure() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    sys.path.insert(0, str(repo_root / "src"))
    sys.path.insert(0, str(repo_root / "test"))

    # Keep settings construction independent of the developer's shell and .env.
    for name in ("CONFIG_PATH", "TENANTS_FILE", "AUDIT_SECRET", "REDIS_URL", "PORT"):
        os.environ.pop(name, None)


@pytest.fixture(autouse=True)
def _disable_network(monkeypatch: pytest.MonkeyPatch) -> None:
    """
    Prevent accidental real network calls in unit/integration tests.

    Respx mocks still work because they intercept at the HTTP client layer.
    """
    if (os.environ.get("ALLOW_NETWORK_TESTS") or "").strip().lower() in {"1", "true", "yes"}:
        return

    def _blocked(*_args: object, **_kwargs: object) -> None:
        raise RuntimeError(
            "Network access is disabled in tests (set ALLOW_NETWORK_TESTS=1 to override)."
        )

    monkeypatch.setattr(socket, "create_connection", _blocked)
    monkeypatch.setattr(socket.socket, "connect", _blocked, raising=True)


@pytest.fixture(autouse=True)
def _clear_log_context() -> None:
    structlog.contextvars.clear_contextvars()
