from datetime import date, datetime, timedelta, timezone, UTC
from typing import Optional, Union


def utc_now_iso_z() -> str:
    """Return current UTC time in ISO8601 format with trailing 'Z'.
    Example: '2025-11-14T17:59:30.123456Z'
    """
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def _parse_offset(value: Optional[str]) -> Optional[timezone]:
    """Parse an EXIF OffsetTime value like '+02:00' or '-0700'."""
    if not isinstance(value, str):
        return None
    s = value.strip().strip('\x00')
    if len(s) < 5 or s[0] not in "+-":
        return None
    digits = s[1:].replace(":", "")
    if len(digits) != 4 or not digits.isdigit():
        return None
    delta = timedelta(hours=int(digits[:2]), minutes=int(digits[2:]))
    return timezone(-delta if s[0] == "-" else delta)


def parse_any_datetime(value: Union[str, bytes, datetime]) -> Optional[datetime]:
    """Parse a datetime from various inputs.
    Accepts EXIF-style 'YYYY:MM:DD HH:MM:SS', ISO8601 strings (with or without Z),
    or datetime objects. Returns None if unparseable.
    """
    if isinstance(value, datetime):
        return value
    if isinstance(value, bytes):
        value = value.decode('utf-8', errors='ignore')
    if not isinstance(value, str):
        return None
    s = value.strip().strip('\x00')
    if not s:
        return None
    # Try EXIF style first, it is what cameras write
    try:
        return datetime.strptime(s[:19], "%Y:%m:%d %H:%M:%S")
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(s.replace('Z', '+00:00'))
    except ValueError:
        return None


def to_utc_date(value: Union[str, bytes, datetime], offset: Optional[str] = None) -> Optional[date]:
    """Normalize a capture timestamp to a UTC calendar date.

    Naive timestamps are read as UTC unless an EXIF offset string is given.
    """
    dt = parse_any_datetime(value)
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=_parse_offset(offset) or UTC)
    return dt.astimezone(UTC).date()


def timestamp_to_utc_date(epoch_seconds: float) -> date:
    return datetime.fromtimestamp(epoch_seconds, UTC).date()
