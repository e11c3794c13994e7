# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Rounding and display formatting shared by the scorers.

Rounding is half-up (2.5 -> 3, -2.5 -> -2) rather than Python's banker's
rounding, so the cached figures match what the dashboard has always shown.
"""

import math

UNKNOWN_EXPERIENCE = "unknown"


def round_half_up(value: float, digits: int = 0) -> float:
    """Round ``value`` half-up to ``digits`` decimal places."""
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def round_int(value: float) -> int:
    """Round ``value`` half-up to an integer."""
    return int(math.floor(value + 0.5))


def format_number(value: float) -> str:
    """Render a number without a trailing ``.0``.

    Example:
        >>> format_number(2.0), format_number(2.5)
        ('2', '2.5')
    """
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def clamp_score(value: float) -> float:
    """Clamp a score into [0, 100]."""
    return min(100.0, max(0.0, value))


def format_experience_name(experience_id: str) -> str:
    """Turn an experience identifier into a display title.

    Example:
        >>> format_experience_name("intro_to_python")
        'Intro To Python'
    """
    if experience_id == UNKNOWN_EXPERIENCE:
        return "Unknown Content"
    words = experience_id.replace("_", " ").split(" ")
    return " ".join(word[:1].upper() + word[1:] for word in words)


def format_duration_hours(hours: float) -> str:
    """Format a duration adaptively as minutes, hours or days.

    Example:
        >>> format_duration_hours(0.5), format_duration_hours(3), format_duration_hours(36)
        ('30 minutes', '3 hours', '1.5 days')
    """
    if hours < 1:
        return f"{round_int(hours * 60)} minutes"
    if hours < 24:
        return f"{format_number(round_half_up(hours, 1))} hours"
    return f"{format_number(round_half_up(hours / 24, 1))} days"


def format_short_duration(hours: float) -> str:
    """Compact variant of :func:`format_duration_hours` (``45m``, ``3h``, ``2d``)."""
    if hours < 1:
        return f"{round_int(hours * 60)}m"
    if hours < 24:
        return f"{format_number(round_half_up(hours, 1))}h"
    return f"{format_number(round_half_up(hours / 24, 1))}d"


def format_percent_change(current: float, previous: float) -> str:
    """Signed relative change with one decimal, e.g. ``+5.2%`` or ``-3%``.

    The caller guarantees ``previous`` is non-zero.
    """
    change = (current - previous) / previous * 100
    sign = "+" if change >= 0 else ""
    return f"{sign}{format_number(round_half_up(change, 1))}%"
