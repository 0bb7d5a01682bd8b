"""UTC datetime utilities."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """
    Return current UTC time as timezone-aware datetime.

    This function should be used instead of datetime.now() or datetime.utcnow()
    so every timestamp written into a record is timezone-aware and in UTC.

    Returns:
        Timezone-aware datetime in UTC
    """
    return datetime.now(timezone.utc)


def iso_timestamp(moment: datetime | None = None) -> str:
    """
    Format a moment as an ISO-8601 string with millisecond precision and a Z suffix.

    This matches the shape of the createdAt/updatedAt values already stored
    on records (e.g. "2025-01-01T10:00:00.000Z").

    Args:
        moment: Timezone-aware datetime. Defaults to now.

    Returns:
        str: ISO timestamp
    """
    moment = (moment or utc_now()).astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def compact_timestamp(moment: datetime | None = None) -> str:
    """Format a moment as YYYYMMDD_HHMMSS (UTC), used for file names and sandbox ids."""
    return (moment or utc_now()).astimezone(timezone.utc).strftime("%Y%m%d_%H%M%S")
