from __future__ import annotations

from datetime import datetime, timezone


# PUBLIC_INTERFACE
def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


# PUBLIC_INTERFACE
def ensure_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to aware UTC.

    Naive values are taken to already be UTC; aware values are converted.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# PUBLIC_INTERFACE
def format_timestamp(value: datetime) -> str:
    """
    Render a timestamp in the canonical storage form
    'YYYY-MM-DDTHH:MM:SS.ffffffZ'.

    The form is fixed width and zero padded, so lexicographic order of the
    text matches chronological order of the instants.
    """
    naive = ensure_utc(value).replace(tzinfo=None)
    return naive.isoformat(timespec="microseconds") + "Z"


# PUBLIC_INTERFACE
def parse_timestamp(value: str) -> datetime:
    """Parse an ISO8601 timestamp (trailing 'Z' allowed) into aware UTC."""
    s = value.strip()
    if s.endswith("Z") or s.endswith("z"):
        s = s[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(s))
