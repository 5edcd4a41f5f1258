from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Union

TimestampLike = Union[datetime, date, str, int, float, Decimal]


def normalize_datetime(dt: datetime) -> datetime:
    """Return ``dt`` as a timezone-aware datetime, assuming UTC when naive."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def parse_timestamp(value: TimestampLike) -> datetime:
    """
    Parse a timestamp from the formats used by holdings and quote snapshots.

    Accepts datetimes, dates (midnight UTC), ISO-8601 strings (a trailing "Z"
    is understood as UTC) and epoch milliseconds.

    Args:
        value: The raw timestamp.

    Returns:
        A timezone-aware datetime.

    Raises:
        ValueError: If the value cannot be interpreted as a timestamp.
    """
    if isinstance(value, datetime):
        return normalize_datetime(value)

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return datetime.fromtimestamp(float(value) / 1000, tz=timezone.utc)

    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return normalize_datetime(datetime.fromisoformat(text))
        except ValueError:
            raise ValueError(f"Invalid timestamp: {value!r}") from None

    raise ValueError(f"Invalid timestamp: {value!r}")


def day_key(dt: datetime) -> str:
    """Return the ISO calendar day (UTC) of a datetime, e.g. "2025-01-15"."""
    return normalize_datetime(dt).astimezone(timezone.utc).date().isoformat()


def day_start(key: str) -> datetime:
    """Return midnight UTC of an ISO day key."""
    d = date.fromisoformat(key)
    return datetime(d.year, d.month, d.day, tzinfo=timezone.utc)


def resolve_now(now: datetime | None = None) -> datetime:
    """Return ``now`` as an aware datetime (naive taken as UTC), or the current UTC time if None."""
    if now is None:
        return datetime.now(timezone.utc)
    return normalize_datetime(now)
