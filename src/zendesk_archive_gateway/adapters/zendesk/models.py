from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _ZendeskModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class CustomField(_ZendeskModel):
    id: int
    value: Any = None


class Ticket(_ZendeskModel):
    id: int
    subject: str | None = None
    status: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    brand_id: int | str | None = None
    custom_fields: list[CustomField] = Field(default_factory=list)


class Attachment(_ZendeskModel):
    id: int | None = None
    file_name: str = "attachment"
    content_url: str | None = None
    content_type: str | None = None
    size: int | None = None


class Comment(_ZendeskModel):
    id: int
    body: str | None = None
    html_body: str | None = None
    plain_body: str | None = None
    public: bool = True
    author_id: int | None = None
    created_at: datetime | None = None
    attachments: list[Attachment] = Field(default_factory=list)

    @property
    def is_internal(self) -> bool:
        return not self.public

    @property
    def rich_body(self) -> str:
        return self.html_body or self.body or self.plain_body or ""


class User(_ZendeskModel):
    id: int
    name: str | None = None
    email: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.email or f"User {self.id}"


@dataclass(frozen=True, slots=True)
class DownloadedAttachment:
    filename: str
    content_type: str
    size: int
    data: bytes
