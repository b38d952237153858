"""UTC-everywhere time handling. Eliminates timezone bugs at the source."""

from datetime import datetime, timezone


def now_utc() -> datetime:
    """
    Current time in UTC.

    Use this instead of datetime.now() everywhere.
    """
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC.

    Raises ValueError if datetime is naive (no timezone).
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime to UTC. Datetime must be timezone-aware."
        )
    return dt.astimezone(timezone.utc)


def to_epoch_ms(dt: datetime) -> int:
    """Milliseconds since the Unix epoch, the cookie wire format for timestamps."""
    return int(to_utc(dt).timestamp() * 1000)


def from_epoch_ms(value: int | float) -> datetime:
    """
    Parse epoch milliseconds into a UTC datetime.

    Raises ValueError for non-numeric or out-of-range input.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Expected epoch milliseconds, got {type(value).__name__}")
    try:
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    except (OverflowError, OSError) as e:
        raise ValueError(f"Timestamp out of range: {value}") from e
