# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Aha-moment detection.

Finds experiences that are followed by an engagement spike, measures how
long students take to their first qualifying event, and lists students who
have gone quiet.
"""

import logging
import statistics
from collections import defaultdict
from collections.abc import Sequence
from datetime import datetime, timedelta

from cohortlens.core.config.settings import ScoringSettings
from cohortlens.domains.metrics.dataset import group_by_student
from cohortlens.domains.metrics.events import Event, StudentRecord
from cohortlens.domains.metrics.formatting import (
    format_duration_hours,
    format_experience_name,
    round_half_up,
)
from cohortlens.domains.metrics.schemas import (
    AhaMomentResult,
    ExperienceSpike,
    StagnantStudent,
)
from cohortlens.utils.datetime import hours_between

logger = logging.getLogger(__name__)

BREAKTHROUGH_NOT_AVAILABLE = "N/A"


def engagement_spike(
    first_touch: datetime,
    student_events: Sequence[Event],
    window: timedelta,
) -> float:
    """Percentage change in event count around ``first_touch``.

    Compares ``[first_touch - window, first_touch)`` with
    ``[first_touch, first_touch + window)``; the before count is floored at 1.
    Negative changes are reported as 0.
    """
    before = sum(1 for e in student_events if first_touch - window <= e.created_at < first_touch)
    after = sum(1 for e in student_events if first_touch <= e.created_at < first_touch + window)
    before = max(before, 1)
    return max(0.0, (after - before) / before * 100)


def find_experience_spikes(
    by_student: dict[str, list[Event]],
    settings: ScoringSettings,
) -> list[ExperienceSpike]:
    """Rank experiences by the mean positive spike they precede."""
    touches: dict[str, dict[str, datetime]] = defaultdict(dict)
    counts: dict[str, int] = defaultdict(int)
    for entity_id, events in by_student.items():
        for event in events:
            key = event.experience_key
            if key is None:
                continue
            counts[key] += 1
            touches[key].setdefault(entity_id, event.created_at)

    window = timedelta(days=settings.spike_window_days)
    spikes: list[ExperienceSpike] = []
    for key, first_touches in touches.items():
        if counts[key] < settings.min_experience_events:
            continue
        positive = [
            spike
            for entity_id, first_touch in first_touches.items()
            if (spike := engagement_spike(first_touch, by_student[entity_id], window)) > 0
        ]
        if not positive:
            continue
        spikes.append(
            ExperienceSpike(
                experience_id=key,
                experience_name=format_experience_name(key),
                spike_percent=round_half_up(statistics.fmean(positive), 2),
                student_count=len(positive),
            )
        )

    spikes.sort(key=lambda s: (-s.spike_percent, s.experience_id))
    return spikes


def average_time_to_breakthrough(
    students: Sequence[StudentRecord],
    by_student: dict[str, list[Event]],
) -> str:
    """Mean time from sign-up to first qualifying event, formatted adaptively."""
    hours = [
        max(
            0.0,
            hours_between(student.created_at, min(e.created_at for e in by_student[student.id])),
        )
        for student in students
        if by_student.get(student.id)
    ]
    if not hours:
        return BREAKTHROUGH_NOT_AVAILABLE
    return format_duration_hours(statistics.fmean(hours))


def find_stagnant_students(
    students: Sequence[StudentRecord],
    by_student: dict[str, list[Event]],
    now: datetime,
    settings: ScoringSettings,
) -> list[StagnantStudent]:
    """Students whose last event is more than ``stagnation_days`` old, longest first."""
    threshold = timedelta(days=settings.stagnation_days)
    stagnant = []
    for student in students:
        events = by_student.get(student.id)
        if not events:
            continue
        idle = now - max(e.created_at for e in events)
        if idle > threshold:
            stagnant.append(
                StagnantStudent(
                    entity_id=student.id,
                    days_since_last_activity=idle // timedelta(days=1),
                )
            )
    stagnant.sort(key=lambda s: (-s.days_since_last_activity, s.entity_id))
    return stagnant


def calculate_aha_moments(
    students: Sequence[StudentRecord],
    events: Sequence[Event],
    *,
    now: datetime,
    settings: ScoringSettings,
) -> AhaMomentResult:
    """Compute the aha-moment result for a tenant.

    Args:
        students: All students of the tenant.
        events: Qualifying events, in any order.
        now: Evaluation instant for stagnation.
        settings: Scoring thresholds.

    Returns:
        Top experiences, average time to first breakthrough and stagnant
        students. The empty result when there are no qualifying events.
    """
    by_student = group_by_student(events)
    if not by_student or not students:
        return AhaMomentResult.empty()

    spikes = find_experience_spikes(by_student, settings)
    stagnant = find_stagnant_students(students, by_student, now, settings)
    logger.debug(
        "Found %d spiking experiences and %d stagnant students", len(spikes), len(stagnant)
    )

    return AhaMomentResult(
        top_experiences=spikes[: settings.top_experiences_limit],
        avg_time_to_first_breakthrough=average_time_to_breakthrough(students, by_student),
        stagnant_students=len(stagnant),
        stagnant_students_list=stagnant[: settings.stagnant_list_limit],
    )
