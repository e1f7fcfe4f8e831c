"""Timestamp normalization: every backend's time format becomes ISO 8601 UTC."""

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional, Union


def iso_from_epoch(seconds: Optional[Union[int, float, str]]) -> Optional[str]:
    """Epoch seconds (oss2, Lsky) to ISO 8601."""
    if seconds in (None, "", 0):
        return None
    return datetime.fromtimestamp(float(seconds), tz=timezone.utc).isoformat()


def iso_from_qiniu_put_time(put_time: Optional[int]) -> Optional[str]:
    """Qiniu reports putTime in units of 100 nanoseconds."""
    if not put_time:
        return None
    return iso_from_epoch(int(put_time) / 10_000_000)


def iso_from_http_date(value: Optional[str]) -> Optional[str]:
    """RFC 1123 header dates (Last-Modified) to ISO 8601; other strings pass through."""
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return value
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).isoformat()


def iso_from_any(value) -> Optional[str]:
    """datetime objects, epoch numbers or header strings to ISO 8601."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    if isinstance(value, (int, float)):
        return iso_from_epoch(value)
    value = str(value)
    if value.isdigit():
        return iso_from_epoch(value)
    try:
        # "2024-05-01 08:30:00" style, as the image hosts report it
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return iso_from_http_date(value)
    return iso_from_any(parsed)
