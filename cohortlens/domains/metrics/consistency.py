# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Engagement consistency score.

Measures how steadily students engage week over week across the last eight
seven-day windows ending at ``now``:

- weeks active (40%): share of windows with at least one event;
- pattern consistency (30%): whether active weeks land on the same weekday
  and hour;
- decay (30%): drop in active weeks between the earliest and most recent
  four windows.

The trend compares today's average with the average the same computation
yields as of one week ago. Events are append-only, so that baseline can be
recomputed from the store and no snapshot has to be kept.
"""

import logging
import statistics
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from cohortlens.core.config.settings import ScoringSettings
from cohortlens.domains.metrics.commitment import band_for
from cohortlens.domains.metrics.dataset import group_by_student
from cohortlens.domains.metrics.events import Event, StudentRecord
from cohortlens.domains.metrics.formatting import (
    clamp_score,
    format_percent_change,
    round_half_up,
    round_int,
)
from cohortlens.domains.metrics.schemas import (
    ConsistencyDistribution,
    ConsistencyResult,
    StudentConsistency,
)
from cohortlens.domains.metrics.types import ScoreBand

logger = logging.getLogger(__name__)

TREND_NOT_AVAILABLE = "N/A"

WEEKS_ACTIVE_WEIGHT = 0.4
PATTERN_WEIGHT = 0.3
DECAY_WEIGHT = 0.3
DAY_WEIGHT = 0.6
HOUR_WEIGHT = 0.4


@dataclass(frozen=True)
class WeekActivity:
    """Representative timing of one seven-day window."""

    active: bool
    day_of_week: int = 0
    hour_of_day: int = 0


def _day_of_week(moment: datetime) -> int:
    # Sunday = 0 ... Saturday = 6
    return (moment.weekday() + 1) % 7


def group_into_weeks(events: Sequence[Event], now: datetime, weeks: int) -> list[WeekActivity]:
    """Bucket events into ``weeks`` windows ending at ``now``, oldest first.

    Window ``i`` (0 = most recent) covers ``(now - 7(i+1) days, now - 7i days]``.
    """
    buckets: list[WeekActivity] = []
    for i in range(weeks):
        end = now - timedelta(days=7 * i)
        start = end - timedelta(days=7)
        in_week = [e.created_at for e in events if start < e.created_at <= end]
        if not in_week:
            buckets.append(WeekActivity(active=False))
            continue
        buckets.append(
            WeekActivity(
                active=True,
                day_of_week=round_int(statistics.fmean(_day_of_week(t) for t in in_week)),
                hour_of_day=round_int(statistics.fmean(t.hour for t in in_week)),
            )
        )
    buckets.reverse()
    return buckets


def pattern_consistency(weeks: Sequence[WeekActivity]) -> float:
    """Weekday/hour regularity of the active weeks, 0..1 (0 with fewer than two)."""
    active = [w for w in weeks if w.active]
    if len(active) < 2:
        return 0.0
    unique_days = len({w.day_of_week for w in active})
    day_consistency = 1 - (unique_days - 1) / 7
    hour_spread = statistics.pstdev(w.hour_of_day for w in active)
    hour_consistency = max(0.0, 1 - hour_spread / 12)
    return DAY_WEIGHT * day_consistency + HOUR_WEIGHT * hour_consistency


def decay_rate(weeks: Sequence[WeekActivity]) -> float:
    """Relative drop in active weeks from the first half to the second, 0..1."""
    half = len(weeks) // 2
    previous = sum(1 for w in weeks[:half] if w.active)
    recent = sum(1 for w in weeks[-half:] if w.active) if half else 0
    if previous == 0:
        return 0.0
    return min(1.0, max(0.0, (previous - recent) / previous))


def score_student_consistency(
    entity_id: str,
    events: Sequence[Event],
    now: datetime,
    settings: ScoringSettings,
) -> StudentConsistency | None:
    """Score one student, or None when no event falls in any window."""
    weeks = group_into_weeks(events, now, settings.consistency_weeks)
    weeks_active = sum(1 for w in weeks if w.active)
    if weeks_active == 0:
        return None

    pattern = pattern_consistency(weeks)
    decay = decay_rate(weeks)
    raw = (
        WEEKS_ACTIVE_WEIGHT * weeks_active / settings.consistency_weeks
        + PATTERN_WEIGHT * pattern
        + DECAY_WEIGHT * (1 - decay)
    ) * 100
    return StudentConsistency(
        entity_id=entity_id,
        score=clamp_score(round_half_up(raw, 1)),
        weeks_active=weeks_active,
        pattern_consistency=round_int(pattern * 100),
        decay_rate=round_int(decay * 100),
    )


def _score_all(
    students: Sequence[StudentRecord],
    by_student: dict[str, list[Event]],
    now: datetime,
    settings: ScoringSettings,
) -> list[StudentConsistency]:
    scored = []
    for student in students:
        record = score_student_consistency(
            student.id, by_student.get(student.id, []), now, settings
        )
        if record is not None:
            scored.append(record)
    return scored


def _average(scores: Sequence[StudentConsistency]) -> float:
    return sum(s.score for s in scores) / len(scores)


def calculate_trend(current_average: float, baseline: Sequence[StudentConsistency]) -> str:
    """Relative change versus the baseline average, or ``N/A`` without one."""
    if not baseline:
        return TREND_NOT_AVAILABLE
    baseline_average = _average(baseline)
    if baseline_average == 0:
        return TREND_NOT_AVAILABLE
    return format_percent_change(current_average, baseline_average)


def calculate_consistency_score(
    students: Sequence[StudentRecord],
    events: Sequence[Event],
    *,
    now: datetime,
    settings: ScoringSettings,
) -> ConsistencyResult:
    """Compute the tenant-level consistency result.

    Args:
        students: All students of the tenant.
        events: Qualifying events covering at least the windows of ``now``
            and of one week earlier, in any order.
        now: Evaluation instant.
        settings: Scoring thresholds.

    Returns:
        Average score, band distribution, trend and the top per-student
        rows. The empty result when no student had a qualifying event.
    """
    by_student = group_by_student(events)
    scored = _score_all(students, by_student, now, settings)
    if not scored:
        return ConsistencyResult.empty()

    bands = {band: 0 for band in ScoreBand}
    for record in scored:
        bands[band_for(record.score, settings)] += 1

    average = _average(scored)
    baseline = _score_all(students, by_student, now - timedelta(days=7), settings)
    trend = calculate_trend(average, baseline)

    ranked = sorted(scored, key=lambda s: (-s.score, s.entity_id))
    logger.debug(
        "Scored consistency for %d students (baseline %d)", len(scored), len(baseline)
    )

    return ConsistencyResult(
        average_score=round_half_up(average, 1),
        distribution=ConsistencyDistribution(
            high=bands[ScoreBand.HIGH],
            medium=bands[ScoreBand.MEDIUM],
            low=bands[ScoreBand.LOW],
        ),
        trend=trend,
        student_scores=ranked[: settings.consistency_student_limit],
        total_students=len(scored),
    )
