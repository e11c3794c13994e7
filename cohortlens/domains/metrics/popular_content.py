# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Popular content today.

Counts today's engagement per experience (UTC day of ``now``) and compares
it with the previous day.
"""

from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from cohortlens.core.config.settings import ScoringSettings
from cohortlens.domains.metrics.events import Event
from cohortlens.domains.metrics.formatting import (
    UNKNOWN_EXPERIENCE,
    format_experience_name,
    format_percent_change,
)
from cohortlens.domains.metrics.schemas import PopularContentItem, PopularContentResult
from cohortlens.utils.datetime import start_of_utc_day, to_iso


@dataclass
class _ContentTally:
    engagements: int = 0
    students: set[str] = field(default_factory=set)


def _tally(events: Sequence[Event]) -> dict[str, _ContentTally]:
    tallies: dict[str, _ContentTally] = defaultdict(_ContentTally)
    for event in events:
        tally = tallies[event.experience_key or UNKNOWN_EXPERIENCE]
        tally.engagements += 1
        if event.entity_id is not None:
            tally.students.add(event.entity_id)
    return tallies


def day_over_day_trend(today: int, yesterday: int) -> str:
    """Trend label for today's count against yesterday's."""
    if yesterday == 0:
        return "+100%" if today > 0 else "0%"
    return format_percent_change(today, yesterday)


def calculate_popular_content(
    events: Sequence[Event],
    *,
    now: datetime,
    settings: ScoringSettings,
) -> PopularContentResult:
    """Compute today's most engaged-with content.

    Args:
        events: Qualifying events covering at least today and yesterday.
        now: Evaluation instant; its UTC day is "today".
        settings: Limits.

    Returns:
        Top content with trends plus today's totals.
    """
    today_start = start_of_utc_day(now)
    yesterday_start = today_start - timedelta(days=1)
    tomorrow_start = today_start + timedelta(days=1)

    today_events = [e for e in events if today_start <= e.created_at < tomorrow_start]
    if not today_events:
        return PopularContentResult.empty(last_updated=to_iso(now))
    yesterday_events = [e for e in events if yesterday_start <= e.created_at < today_start]

    today = _tally(today_events)
    yesterday = _tally(yesterday_events)

    content = [
        PopularContentItem(
            experience_id=key,
            name=format_experience_name(key),
            engagements=tally.engagements,
            unique_students=len(tally.students),
            trend=day_over_day_trend(
                tally.engagements,
                yesterday[key].engagements if key in yesterday else 0,
            ),
        )
        for key, tally in today.items()
    ]
    content.sort(key=lambda c: (-c.engagements, c.experience_id))

    return PopularContentResult(
        content=content[: settings.popular_content_limit],
        total_engagements=len(today_events),
        total_unique_students=len({e.entity_id for e in today_events if e.entity_id}),
        last_updated=to_iso(now),
    )
