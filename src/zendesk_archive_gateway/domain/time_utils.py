from __future__ import annotations

from datetime import UTC, datetime, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

_DATE_FORMATS = {
    "is": "%d.%m.%Y %H:%M",
    "de": "%d.%m.%Y %H:%M",
    "en": "%Y-%m-%d %H:%M",
}
_DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M"


def now_utc() -> datetime:
    return datetime.now(UTC)


def format_timestamp_utc(dt: datetime, *, milliseconds: bool = False) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    dt_utc = dt.astimezone(UTC)
    if milliseconds:
        return dt_utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return dt_utc.replace(microsecond=0).isoformat().replace("+00:00", "Z")


def resolve_timezone(name: str | None) -> tzinfo:
    if not name:
        return UTC
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return UTC


def language_of(locale: str | None) -> str:
    return (locale or "").replace("_", "-").split("-")[0].lower()


def format_local(dt: datetime | None, *, locale: str | None, timezone: str | None) -> str:
    """Locale-flavoured short date/time in the tenant's timezone; "" for None."""
    if dt is None:
        return ""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    fmt = _DATE_FORMATS.get(language_of(locale), _DEFAULT_DATE_FORMAT)
    return dt.astimezone(resolve_timezone(timezone)).strftime(fmt)
