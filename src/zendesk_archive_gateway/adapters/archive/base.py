from __future__ import annotations

import time
from collections.abc import Callable, Mapping, Sequence
from typing import Any, Protocol

import httpx

from zendesk_archive_gateway.adapters.archive.errors import ArchiveAuthError, ArchiveUploadError
from zendesk_archive_gateway.adapters.http_util import timeouts_for
from zendesk_archive_gateway.adapters.zendesk.models import DownloadedAttachment

DEFAULT_TOKEN_TTL_MS = 25 * 60 * 1000


class ArchiveClient(Protocol):
    async def upload_document(
        self,
        *,
        case_number: str,
        filename: str,
        document: bytes,
        attachments: Sequence[DownloadedAttachment] = (),
        metadata: Mapping[str, Any] | None = None,
    ) -> Any: ...

    async def aclose(self) -> None: ...


class BearerTokenClient:
    """
    Shared plumbing for the archive backends: an owned httpx client, a bearer token
    obtained lazily via `_authenticate()` and reused until its TTL lapses.
    """

    backend: str = "archive"

    def __init__(
        self,
        *,
        base_url: str,
        token_ttl_ms: int | None = None,
        timeout_seconds: float = 30.0,
        trust_env: bool = False,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._token_ttl_seconds = (token_ttl_ms or DEFAULT_TOKEN_TTL_MS) / 1000.0
        self._clock = clock
        self._token: str | None = None
        self._token_expires_at = 0.0

        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=timeouts_for(timeout_seconds),
            trust_env=trust_env,
            follow_redirects=False,
        )

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()

    async def __aenter__(self) -> BearerTokenClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: Any,
    ) -> None:
        await self.aclose()

    async def _authenticate(self) -> str:
        raise NotImplementedError

    async def _bearer(self) -> str:
        if self._token is None or self._clock() >= self._token_expires_at:
            token = await self._authenticate()
            if not token:
                raise ArchiveAuthError(f"{self.backend} auth returned an empty token")
            self._token = token
            self._token_expires_at = self._clock() + self._token_ttl_seconds
        return self._token

    async def _post(self, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._http.post(f"{self.base_url}{path}", **kwargs)
        except httpx.TimeoutException as exc:
            raise ArchiveUploadError(
                f"{self.backend} request timed out at {path}", reason="upload timed out"
            ) from exc
        except httpx.TransportError as exc:
            raise ArchiveUploadError(
                f"{self.backend} network error at {path}", reason="archive unreachable"
            ) from exc

    async def _post_auth(self, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._post(path, **kwargs)
        except ArchiveUploadError as exc:
            raise ArchiveAuthError(str(exc)) from exc
        if not 200 <= response.status_code < 300:
            raise ArchiveAuthError(f"{self.backend} auth failed (status={response.status_code})")
        return response


def raise_for_upload_status(backend: str, response: httpx.Response) -> None:
    status = response.status_code
    if 200 <= status < 300:
        return
    # Backend bodies go to the log only; callers get the status.
    raise ArchiveUploadError(
        f"{backend} upload failed (status={status}): {response.text[:500]}",
        reason=f"upload failed (status={status})",
    )


def strip_line_breaks(value: object) -> str:
    return str(value).replace("\r", "").replace("\n", "")
