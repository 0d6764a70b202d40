from __future__ import annotations

import base64
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any
from xml.sax.saxutils import escape

import structlog

from zendesk_archive_gateway.adapters.archive.base import (
    BearerTokenClient,
    raise_for_upload_status,
    strip_line_breaks,
)
from zendesk_archive_gateway.adapters.zendesk.models import DownloadedAttachment

log = structlog.get_logger(__name__)

DEFAULT_USER = "Zendesk"

_XML_ENTITIES = {'"': "&quot;", "'": "&apos;"}


class OneSystemsClient(BearerTokenClient):
    """
    OneSystems OneRecord: app-key login, then one multipart AddDocument2 call carrying
    the document as base64. Attachments are not sent by this backend.
    """

    backend = "onesystems"

    def __init__(self, *, base_url: str, app_key: str, user: str | None = None, **kwargs: Any):
        super().__init__(base_url=base_url, **kwargs)
        self._app_key = app_key
        self.user = user or DEFAULT_USER

    async def _authenticate(self) -> str:
        log.debug("archive.auth_start", backend=self.backend)
        response = await self._post_auth("/api/Authenticate/login", json={"appKey": self._app_key})
        try:
            data: Any = response.json()
        except ValueError:
            data = response.text
        if isinstance(data, str):
            return data.strip()
        if isinstance(data, dict):
            token = data.get("token") or data.get("accessToken")
            return str(token) if token else ""
        return ""

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
        metadata = metadata or {}
        xml = metadata.get("xml")

        fields = {
            "CaseNumber": strip_line_breaks(case_number),
            "User": strip_line_breaks(self.user),
            "FileName": strip_line_breaks(filename),
            "FileArray": base64.b64encode(document).decode("ascii"),
            "Date": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "XML": escape(str(xml), _XML_ENTITIES) if xml else "",
        }
        if attachments:
            log.debug("archive.attachments_ignored", backend=self.backend, count=len(attachments))

        log.info("archive.upload_start", backend=self.backend, case_number=case_number)
        response = await self._post(
            "/api/OneRecord/AddDocument2",
            files={name: (None, value) for name, value in fields.items()},
            headers={"Authorization": f"Bearer {token}", "Accept": "*/*"},
        )
        raise_for_upload_status(self.backend, response)
        log.info("archive.upload_done", backend=self.backend, case_number=case_number)

        try:
            return response.json()
        except ValueError:
            return {"success": True}
