"""Shared helpers for ticket data (custom fields, case numbers)."""

from __future__ import annotations

from typing import Any

CASE_NUMBER_SOURCE_CUSTOM_FIELD = "custom_field"
CASE_NUMBER_SOURCE_FALLBACK = "fallback"


def custom_field_value(ticket: Any, field_id: int | None) -> Any:
    if field_id is None:
        return None
    for field in getattr(ticket, "custom_fields", None) or []:
        if getattr(field, "id", None) == field_id:
            return getattr(field, "value", None)
    return None


def select_case_number(ticket: Any, case_number_field_id: int | None) -> tuple[str, str]:
    """
    Case number for the archive: the configured custom field when it holds a non-empty
    value, otherwise `ZD-{ticket id}`. Returns `(case_number, source)`.
    """
    value = custom_field_value(ticket, case_number_field_id)
    if value is not None and not isinstance(value, bool) and str(value).strip():
        return str(value).strip(), CASE_NUMBER_SOURCE_CUSTOM_FIELD
    return f"ZD-{ticket.id}", CASE_NUMBER_SOURCE_FALLBACK


def solving_agent_email(comments: list[Any], users: dict[int, Any], default: str) -> str:
    """Email of the last comment's author, if known."""
    if not comments:
        return default
    author_id = getattr(comments[-1], "author_id", None)
    user = users.get(author_id) if author_id is not None else None
    email = getattr(user, "email", None)
    return email or default
