# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Commitment probability score.

A rule-based estimate of how likely a student is to stick with a course,
judged from their first week after sign-up. Three components add up to a
0-100 score:

- Time to first activity (up to 40 points): how soon after creation the
  first qualifying event arrived.
- Engagement frequency (up to 35 points): distinct UTC calendar days with
  at least one event inside the window.
- Exploration breadth (up to 25 points): distinct experiences touched.

Students without any event in their window are not scored and do not count
towards the distribution. Tier boundaries and band thresholds come from
:class:`~cohortlens.core.config.settings.ScoringSettings`.

Example:
    >>> result = calculate_commitment_score(students, events, settings=ScoringSettings())
    >>> result.distribution.high + result.distribution.medium + result.distribution.at_risk
    12
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import timedelta

from cohortlens.core.config.settings import ScoringSettings
from cohortlens.domains.metrics.dataset import event_sort_key, group_by_student
from cohortlens.domains.metrics.events import Event, StudentRecord
from cohortlens.domains.metrics.formatting import clamp_score, round_half_up, round_int
from cohortlens.domains.metrics.schemas import (
    AtRiskStudent,
    CommitmentDistribution,
    CommitmentResult,
)
from cohortlens.domains.metrics.types import ScoreBand
from cohortlens.utils.datetime import hours_between

logger = logging.getLogger(__name__)

RISK_SLOW_START = "Slow to start (took >24 hours)"
RISK_LOW_FREQUENCY = "Low engagement frequency"
RISK_NARROW_EXPLORATION = "Limited content exploration"
RISK_FEW_ACTIVITIES = "Very few activities"
RISK_LONG_GAPS = "Long gaps between activities"
RISK_LOW_OVERALL = "Low overall engagement"


@dataclass(frozen=True)
class StudentCommitment:
    """Commitment score of one student with its components.

    Attributes:
        entity_id: Student id.
        name: Display name.
        score: Total score, 0-100.
        time_points: Time-to-first-activity component.
        frequency_points: Engagement frequency component.
        exploration_points: Exploration breadth component.
        risk_factors: Human-readable reasons for a low score.
    """

    entity_id: str
    name: str
    score: int
    time_points: int
    frequency_points: int
    exploration_points: int
    risk_factors: list[str] = field(default_factory=list)


def _points_below(value: float, tiers: Sequence[tuple[float, int]], fallback: int) -> int:
    for threshold, points in tiers:
        if value < threshold:
            return points
    return fallback


def _points_at_least(value: int, tiers: Sequence[tuple[int, int]]) -> int:
    for threshold, points in tiers:
        if value >= threshold:
            return points
    return 0


def band_for(score: float, settings: ScoringSettings) -> ScoreBand:
    """Band of a 0-100 score under the configured thresholds."""
    if score >= settings.high_band_min:
        return ScoreBand.HIGH
    if score >= settings.medium_band_min:
        return ScoreBand.MEDIUM
    return ScoreBand.LOW


def _risk_factors(
    events: Sequence[Event],
    time_points: int,
    frequency_points: int,
    exploration_points: int,
    settings: ScoringSettings,
) -> list[str]:
    factors: list[str] = []
    if time_points < settings.slow_start_below:
        factors.append(RISK_SLOW_START)
    if frequency_points < settings.low_frequency_below:
        factors.append(RISK_LOW_FREQUENCY)
    if exploration_points < settings.narrow_exploration_below:
        factors.append(RISK_NARROW_EXPLORATION)
    if len(events) < settings.min_activity_events:
        factors.append(RISK_FEW_ACTIVITIES)
    for previous, current in zip(events, events[1:]):
        if hours_between(previous.created_at, current.created_at) > settings.max_gap_hours:
            factors.append(RISK_LONG_GAPS)
            break
    return factors or [RISK_LOW_OVERALL]


def score_student_commitment(
    student: StudentRecord,
    events: Sequence[Event],
    settings: ScoringSettings,
) -> StudentCommitment | None:
    """Score one student from their own events.

    Args:
        student: The student.
        events: The student's qualifying events, in any order. Events outside
            the first-week window are ignored.
        settings: Scoring thresholds.

    Returns:
        The student's score, or None when they had no event in the window.
    """
    window_end = student.created_at + timedelta(days=settings.commitment_window_days)
    in_window = sorted(
        (e for e in events if student.created_at <= e.created_at <= window_end),
        key=event_sort_key,
    )
    if not in_window:
        return None

    hours_to_first = hours_between(student.created_at, in_window[0].created_at)
    time_points = _points_below(
        hours_to_first, settings.time_to_first_tiers, settings.time_to_first_fallback_points
    )
    active_days = {e.created_at.date() for e in in_window}
    frequency_points = _points_at_least(len(active_days), settings.frequency_tiers)
    experiences = {e.experience_key for e in in_window if e.experience_key is not None}
    exploration_points = _points_at_least(len(experiences), settings.exploration_tiers)

    score = round_int(clamp_score(time_points + frequency_points + exploration_points))
    return StudentCommitment(
        entity_id=student.id,
        name=student.display_name,
        score=score,
        time_points=time_points,
        frequency_points=frequency_points,
        exploration_points=exploration_points,
        risk_factors=_risk_factors(
            in_window, time_points, frequency_points, exploration_points, settings
        ),
    )


def calculate_commitment_score(
    students: Sequence[StudentRecord],
    events: Sequence[Event],
    *,
    settings: ScoringSettings,
) -> CommitmentResult:
    """Compute the tenant-level commitment result.

    Args:
        students: All students of the tenant.
        events: The tenant's qualifying events, in any order.
        settings: Scoring thresholds.

    Returns:
        Average score, band distribution and the lowest-scoring at-risk
        students. The empty result when no student had a qualifying event.
    """
    by_student = group_by_student(events)
    scored = [
        record
        for student in students
        if (record := score_student_commitment(student, by_student.get(student.id, []), settings))
    ]
    if not scored:
        return CommitmentResult.empty()

    bands = {band: 0 for band in ScoreBand}
    for record in scored:
        bands[band_for(record.score, settings)] += 1

    at_risk = sorted(
        (r for r in scored if band_for(r.score, settings) is ScoreBand.LOW),
        key=lambda r: (r.score, r.entity_id),
    )[: settings.at_risk_limit]

    average = sum(r.score for r in scored) / len(scored)
    logger.debug("Scored commitment for %d of %d students", len(scored), len(students))

    return CommitmentResult(
        average_score=round_half_up(average, 1),
        distribution=CommitmentDistribution(
            high=bands[ScoreBand.HIGH],
            medium=bands[ScoreBand.MEDIUM],
            at_risk=bands[ScoreBand.LOW],
        ),
        at_risk_students=[
            AtRiskStudent(
                entity_id=r.entity_id,
                name=r.name,
                score=r.score,
                risk_factors=r.risk_factors,
            )
            for r in at_risk
        ],
        total_students=len(scored),
    )
