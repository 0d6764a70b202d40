from __future__ import annotations

import asyncio
import json
import os
import tempfile
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any
from urllib.parse import quote, unquote

import structlog

log = structlog.get_logger(__name__)

_SUFFIX = ".json"


def _key_to_name(key: str) -> str:
    return quote(key, safe="") + _SUFFIX


def _name_to_key(name: str) -> str:
    return unquote(name[: -len(_SUFFIX)])


class FileAuditSink:
    """
    One JSON file per key under `root`: `{"value": "<json>", "expires_at": <epoch|null>}`.

    Expired entries are skipped (and removed) on read. Listing is by key in reverse
    lexical order, which is newest-first for the timestamped audit keys.
    """

    def __init__(self, root: Path, *, clock: Callable[[], float] = time.time) -> None:
        self.root = Path(root)
        self._clock = clock

    async def append(self, key: str, value: str, ttl_seconds: int | None) -> None:
        await asyncio.to_thread(self._write, key, value, ttl_seconds)

    async def query(self, prefix: str, limit: int) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self._query, prefix, limit)

    async def aclose(self) -> None:
        return None

    def _write(self, key: str, value: str, ttl_seconds: int | None) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        payload = json.dumps({"value": value, "expires_at": expires_at}).encode("utf-8")

        target = self.root / _key_to_name(key)
        fd, tmp_name = tempfile.mkstemp(dir=str(self.root), prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
                f.flush()
                os.fchmod(f.fileno(), 0o640)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _read(self, key: str) -> dict[str, Any] | None:
        path = self.root / _key_to_name(key)
        try:
            stored = json.loads(path.read_text(encoding="utf-8"))
            expires_at = stored.get("expires_at")
            if expires_at is not None and self._clock() > float(expires_at):
                path.unlink(missing_ok=True)
                return None
            value = json.loads(stored["value"])
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
            log.warning("audit.entry_unreadable", key=key, error=str(exc))
            return None
        return value if isinstance(value, dict) else None

    def _query(self, prefix: str, limit: int) -> list[dict[str, Any]]:
        try:
            names = os.listdir(self.root)
        except FileNotFoundError:
            return []

        keys = sorted(
            (
                _name_to_key(name)
                for name in names
                if name.endswith(_SUFFIX) and not name.startswith(".tmp-")
            ),
            reverse=True,
        )
        entries: list[dict[str, Any]] = []
        for key in keys:
            if not key.startswith(prefix):
                continue
            entry = self._read(key)
            if entry is not None:
                entries.append(entry)
            if len(entries) >= limit:
                break
        return entries
