from __future__ import annotations

import base64
from collections.abc import Mapping, Sequence
from typing import Any

import structlog

from zendesk_archive_gateway.adapters.archive.base import BearerTokenClient, raise_for_upload_status
from zendesk_archive_gateway.adapters.archive.errors import ArchiveRejectedError
from zendesk_archive_gateway.adapters.zendesk.models import DownloadedAttachment

log = structlog.get_logger(__name__)


class GoProClient(BearerTokenClient):
    """GoPro: username/password login; one Documents/Create call per file."""

    backend = "gopro"

    def __init__(self, *, base_url: str, username: str, password: str, **kwargs: Any):
        super().__init__(base_url=base_url, **kwargs)
        self._username = username
        self._password = password

    async def _authenticate(self) -> str:
        log.debug("archive.auth_start", backend=self.backend)
        response = await self._post_auth(
            "/v2/Authenticate",
            json={"username": self._username, "password": self._password},
        )
        return response.text.strip().removeprefix('"').removesuffix('"')

    async def upload_document(
        self,
        *,
        case_number: str,
        filename: str,
        document: bytes,
        attachments: Sequence[DownloadedAttachment] = (),
        metadata: Mapping[str, Any] | None = None,
    ) -> Any:
        token = await self._bearer()
        subject = (metadata or {}).get("subject")

        files = [(filename, document)] + [(att.filename, att.data) for att in attachments]
        log.info(
            "archive.upload_start",
            backend=self.backend,
            case_number=case_number,
            file_count=len(files),
        )

        results: list[Any] = []
        for file_name, content in files:
            response = await self._post(
                "/v2/Documents/Create",
                json={
                    "caseNumber": case_number,
                    "subject": subject or file_name,
                    "fileName": file_name,
                    "content": base64.b64encode(content).decode("ascii"),
                },
                headers={"Authorization": f"Bearer {token}"},
            )
            raise_for_upload_status(self.backend, response)

            try:
                result = response.json()
            except ValueError as exc:
                raise ArchiveRejectedError(f"{self.backend} returned a non-JSON body") from exc
            if not isinstance(result, dict) or not result.get("succeeded"):
                message = result.get("message") if isinstance(result, dict) else None
                raise ArchiveRejectedError(
                    f"{self.backend} upload rejected: {message or 'succeeded=false'}"
                )

            log.info(
                "archive.upload_done",
                backend=self.backend,
                case_number=case_number,
                identifier=result.get("identifier"),
            )
            results.append(result)

        return results[0] if len(results) == 1 else results
