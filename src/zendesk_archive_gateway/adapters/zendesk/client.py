from __future__ import annotations

from collections.abc import Iterable
from typing import Any, NoReturn

import httpx
import structlog
from pydantic import TypeAdapter, ValidationError

from zendesk_archive_gateway.adapters.http_util import timeouts_for
from zendesk_archive_gateway.adapters.zendesk.errors import (
    AuthError,
    ClientError,
    NotFoundError,
    RateLimitError,
    ServerError,
    ZendeskError,
)
from zendesk_archive_gateway.adapters.zendesk.models import (
    Comment,
    DownloadedAttachment,
    Ticket,
    User,
)

log = structlog.get_logger(__name__)

DEFAULT_MAX_FILES = 50
DEFAULT_MAX_TOTAL_BYTES = 100 * 1024 * 1024
MAX_ATTACHMENT_REDIRECTS = 3

_ATTACHMENT_DOMAINS = frozenset({"zendesk.com", "zdassets.com"})
_REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})


class UntrustedAttachmentUrlError(ClientError):
    """Attachment URL is not HTTPS or not served from a Zendesk-owned domain."""


class AttachmentTooLargeError(ZendeskError):
    """Download exceeded the remaining byte budget."""


def is_allowed_attachment_url(url: str | httpx.URL) -> bool:
    """
    HTTPS only, and the last two DNS labels must be exactly zendesk.com or zdassets.com
    (so `evil-zendesk.com` and `zendesk.com.evil.io` are both rejected).
    """
    try:
        parsed = httpx.URL(str(url))
    except (httpx.InvalidURL, TypeError):
        return False
    if parsed.scheme != "https" or not parsed.host:
        return False
    labels = parsed.host.lower().rstrip(".").split(".")
    if len(labels) < 2:
        return False
    return ".".join(labels[-2:]) in _ATTACHMENT_DOMAINS


class AsyncZendeskClient:
    """
    Minimal Zendesk Support API v2 client, one instance per request.

    Single attempt per call: errors are classified by status and raised, the caller
    decides what is fatal.
    """

    def __init__(
        self,
        *,
        subdomain: str,
        email: str,
        api_token: str,
        timeout_seconds: float = 10.0,
        trust_env: bool = False,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = httpx.URL(f"https://{subdomain}.zendesk.com/api/v2/")

        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=self._base_url,
            auth=httpx.BasicAuth(f"{email}/token", api_token),
            headers={"Accept": "application/json"},
            timeout=timeouts_for(timeout_seconds),
            trust_env=trust_env,
            follow_redirects=False,
        )

    @property
    def base_url(self) -> str:
        return str(self._base_url)

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()

    async def __aenter__(self) -> AsyncZendeskClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: Any,
    ) -> None:
        await self.aclose()

    async def get_ticket(self, ticket_id: int) -> Ticket:
        data = await self._request_json(f"tickets/{ticket_id}.json")
        return _validate(Ticket, _field(data, "ticket"), what=f"ticket {ticket_id}")

    async def get_ticket_comments(self, ticket_id: int) -> list[Comment]:
        data = await self._request_json(f"tickets/{ticket_id}/comments.json")
        items = _field(data, "comments") or []
        return _validate(list[Comment], items, what=f"comments of ticket {ticket_id}")

    async def get_users_many(self, user_ids: Iterable[int]) -> list[User]:
        ids = list(dict.fromkeys(uid for uid in user_ids if uid is not None))
        if not ids:
            return []
        data = await self._request_json(
            "users/show_many.json",
            params={"ids": ",".join(str(uid) for uid in ids)},
        )
        items = _field(data, "users") or []
        return _validate(list[User], items, what="users")

    async def download_attachment(self, url: str, *, max_bytes: int | None = None) -> bytes:
        """
        Download one attachment. Redirects are followed by hand so every hop is checked
        against the domain allowlist; credentials are only sent on the first hop.
        """
        current = httpx.URL(url)
        for hop in range(MAX_ATTACHMENT_REDIRECTS + 1):
            if not is_allowed_attachment_url(current):
                raise UntrustedAttachmentUrlError(
                    f"attachment URL not allowed: {current.scheme}://{current.host}"
                )

            request_kwargs: dict[str, Any] = {"headers": {"Accept": "*/*"}}
            if hop > 0:
                request_kwargs["auth"] = None
            try:
                async with self._http.stream("GET", current, **request_kwargs) as response:
                    if response.status_code in _REDIRECT_STATUSES:
                        location = response.headers.get("Location")
                        if not location:
                            raise ClientError("attachment redirect without Location header")
                        current = current.join(location)
                        continue
                    if not 200 <= response.status_code < 300:
                        _raise_for_status(response)
                    return await _read_bounded(response, max_bytes)
            except httpx.TimeoutException as exc:
                raise ServerError("Zendesk attachment download timed out") from exc
            except httpx.TransportError as exc:
                raise ServerError("Network error while downloading attachment") from exc
            except httpx.DecodingError as exc:
                raise ClientError("attachment body could not be decoded") from exc
            except httpx.InvalidURL as exc:
                raise ClientError("attachment redirect to an invalid URL") from exc
            except httpx.HTTPError as exc:
                raise ServerError("attachment download failed") from exc

        raise ClientError(f"too many attachment redirects (>{MAX_ATTACHMENT_REDIRECTS})")

    async def fetch_attachments(
        self,
        comments: Iterable[Comment],
        *,
        max_files: int = DEFAULT_MAX_FILES,
        max_total_bytes: int = DEFAULT_MAX_TOTAL_BYTES,
    ) -> list[DownloadedAttachment]:
        """
        Download every attachment of `comments` in order, up to `max_files` files and
        `max_total_bytes` cumulative. Reaching either cap stops the walk; the rest is
        dropped. Individual failures are logged and skipped.
        """
        downloaded: list[DownloadedAttachment] = []
        total_bytes = 0

        for comment in comments:
            for attachment in comment.attachments:
                if len(downloaded) >= max_files:
                    log.warning("zendesk.attachment_count_limit", max_files=max_files)
                    return downloaded

                url = attachment.content_url or ""
                if not is_allowed_attachment_url(url):
                    log.warning(
                        "zendesk.attachment_url_rejected",
                        filename=attachment.file_name,
                        comment_id=comment.id,
                    )
                    continue

                try:
                    data = await self.download_attachment(
                        url, max_bytes=max_total_bytes - total_bytes
                    )
                except AttachmentTooLargeError:
                    log.warning(
                        "zendesk.attachment_size_limit",
                        max_total_bytes=max_total_bytes,
                        current_bytes=total_bytes,
                    )
                    return downloaded
                except ZendeskError as exc:
                    log.warning(
                        "zendesk.attachment_download_failed",
                        filename=attachment.file_name,
                        error=str(exc),
                    )
                    continue

                total_bytes += len(data)
                downloaded.append(
                    DownloadedAttachment(
                        filename=attachment.file_name,
                        content_type=attachment.content_type or "application/octet-stream",
                        size=len(data),
                        data=data,
                    )
                )
                log.debug("zendesk.attachment_downloaded", filename=attachment.file_name)

        return downloaded

    async def _request_json(self, path: str, *, params: dict[str, str] | None = None) -> Any:
        try:
            response = await self._http.get(path, params=params)
        except httpx.TimeoutException as exc:
            raise ServerError(f"Zendesk API timeout at {path}") from exc
        except httpx.TransportError as exc:
            raise ServerError(f"Network error calling Zendesk at {path}") from exc

        if not 200 <= response.status_code < 300:
            _raise_for_status(response)
        try:
            return response.json()
        except ValueError as exc:
            raise ClientError(
                f"Invalid JSON from Zendesk (status={response.status_code}) at {path}"
            ) from exc


def _field(data: Any, key: str) -> Any:
    if not isinstance(data, dict):
        raise ClientError(f"Zendesk response is not an object (expected '{key}')")
    return data.get(key)


def _validate(type_: Any, value: Any, *, what: str) -> Any:
    try:
        return TypeAdapter(type_).validate_python(value)
    except ValidationError as exc:
        raise ClientError(f"Zendesk response format unexpected for {what}: {exc!s}") from exc


async def _read_bounded(response: httpx.Response, max_bytes: int | None) -> bytes:
    declared = response.headers.get("Content-Length")
    if max_bytes is not None and declared and declared.isdigit() and int(declared) > max_bytes:
        raise AttachmentTooLargeError(f"attachment exceeds remaining budget ({declared} bytes)")

    chunks: list[bytes] = []
    size = 0
    async for chunk in response.aiter_bytes():
        size += len(chunk)
        if max_bytes is not None and size > max_bytes:
            raise AttachmentTooLargeError("attachment exceeds remaining budget")
        chunks.append(chunk)
    return b"".join(chunks)


def _raise_for_status(response: httpx.Response) -> NoReturn:
    status = response.status_code
    # Path only: query strings may carry attachment tokens.
    where = response.request.url.path

    if status in (401, 403):
        raise AuthError(f"Zendesk auth failed (status={status}) at {where}")
    if status == 404:
        raise NotFoundError(f"Zendesk resource not found (status=404) at {where}")
    if status == 429:
        raise RateLimitError(f"Zendesk rate limit (status=429) at {where}")
    if status >= 500:
        raise ServerError(f"Zendesk server error (status={status}) at {where}")
    if status >= 400:
        raise ClientError(f"Zendesk client error (status={status}) at {where}")

    raise ClientError(f"Unexpected Zendesk HTTP status={status} at {where}")
