"""UTC-everywhere time handling for token claims and audit rows."""

from datetime import datetime, timedelta, timezone


def now_utc() -> datetime:
    """
    Current time in UTC.

    Use this instead of datetime.now() everywhere.
    """
    return datetime.now(timezone.utc)


def to_epoch_seconds(dt: datetime) -> int:
    """
    Convert an aware datetime to whole seconds since the epoch.

    JWT `iat`/`exp` claims are NumericDate values, so sub-second
    precision is dropped.

    Raises ValueError if datetime is naive (no timezone).
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime. Datetime must be timezone-aware."
        )
    return int(dt.timestamp())


def expires_after(ttl: timedelta) -> datetime:
    """Absolute UTC expiry for something created now."""
    return now_utc() + ttl
