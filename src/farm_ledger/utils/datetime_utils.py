"""Datetime utilities for timezone-aware UTC timestamps and record dates.

Usage:
    from farm_ledger.utils.datetime_utils import utc_now, parse_date

    # For SQLAlchemy Column defaults
    created_at = Column(DateTime(timezone=True), default=utc_now)

    # Dates coming from UI forms or outbox payloads
    log_date = parse_date("2025-03-01")
"""

from datetime import date, datetime, timezone
from typing import Optional, Union


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime.

    This is the replacement for the deprecated datetime.utcnow().

    Returns:
        Current UTC datetime with timezone info
    """
    return datetime.now(timezone.utc)


def today() -> date:
    """Return the current UTC calendar date."""
    return utc_now().date()


def parse_date(value: Union[str, date, datetime, None]) -> Optional[date]:
    """Normalize an ISO date string, date or datetime to a date.

    Args:
        value: ISO 8601 string ("2025-03-01" or a full timestamp), date,
            datetime or None

    Returns:
        The corresponding date, or None when value is None

    Raises:
        ValueError: If the string is not a valid ISO date
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    # Timestamps such as "2025-03-01T10:00:00.000Z" carry the date first
    return date.fromisoformat(text[:10])
