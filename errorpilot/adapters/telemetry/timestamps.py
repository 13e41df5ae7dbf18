"""Nanosecond epoch timestamp conversion shared by the telemetry adapters."""

from datetime import datetime, timedelta, timezone

NANOS_PER_SECOND = 1_000_000_000


def nanos_to_datetime(nanos: int) -> datetime:
    """Convert Unix epoch nanoseconds to an aware UTC datetime.

    Args:
        nanos: Nanoseconds since the Unix epoch.

    Returns:
        UTC datetime with microsecond precision.

    Raises:
        ValueError: If the value is outside the range the platform can represent.
    """
    seconds, remainder = divmod(nanos, NANOS_PER_SECOND)
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc) + timedelta(
            microseconds=remainder // 1000
        )
    except (OverflowError, OSError) as e:
        raise ValueError(f"Timestamp out of range: {nanos}") from e
