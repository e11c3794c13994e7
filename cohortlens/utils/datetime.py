# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities for CohortLens.

All timestamps are stored as PostgreSQL TIMESTAMPTZ and every Python
datetime handled by the scorers is timezone-aware UTC, so naive and aware
values never mix.

Usage:
    from cohortlens.utils.datetime import utc_now

    now = utc_now()
"""

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime representing current UTC time.
    """
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime.

    Naive datetimes are assumed to already be in UTC.

    Args:
        value: Datetime to normalize.

    Returns:
        The same instant expressed in UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def start_of_utc_day(value: datetime) -> datetime:
    """Midnight UTC of the day containing ``value``."""
    value = ensure_utc(value)
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def hours_between(start: datetime, end: datetime) -> float:
    """Elapsed hours from ``start`` to ``end`` (negative if end is earlier)."""
    return (end - start) / timedelta(hours=1)


def to_iso(value: datetime) -> str:
    """ISO-8601 UTC string with millisecond precision and a ``Z`` suffix.

    Example:
        >>> to_iso(datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc))
        '2025-01-02T03:04:05.000Z'
    """
    text = ensure_utc(value).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")
