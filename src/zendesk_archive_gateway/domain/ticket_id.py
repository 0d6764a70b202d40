from __future__ import annotations

from typing import Any


def coerce_ticket_id(value: Any) -> int | None:
    """Positive integer from an int or a decimal string; anything else is None."""
    if isinstance(value, bool) or value is None:
        return None

    if isinstance(value, int):
        return value if value > 0 else None

    if isinstance(value, float):
        return int(value) if value.is_integer() and value > 0 else None

    if isinstance(value, str):
        text = value.strip()
        if text.startswith("+"):
            text = text[1:]
        if not text.isascii() or not text.isdigit():
            return None
        ticket_id = int(text)
        return ticket_id if ticket_id > 0 else None

    return None


def first_present(payload: dict[str, Any], *names: str) -> Any:
    """Value of the first key in `names` present in `payload` (camelCase, then snake_case)."""
    for name in names:
        if name in payload:
            return payload[name]
    return None
