# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Content pathway analysis.

Builds each student's journey (the experiences they touched, in time order,
with consecutive repeats collapsed) and mines it for:

- top pathways: contiguous 2-3 step sequences and how often students kept
  going after finishing them;
- dead ends: experiences after which most students never touched anything
  else;
- power combinations: experience pairs whose students almost always moved
  on to further content.
"""

import itertools
import logging
import statistics
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime

from cohortlens.core.config.settings import ScoringSettings
from cohortlens.domains.metrics.dataset import group_by_student
from cohortlens.domains.metrics.events import Event
from cohortlens.domains.metrics.formatting import (
    format_experience_name,
    format_short_duration,
    round_half_up,
)
from cohortlens.domains.metrics.schemas import (
    ContentPathwaysResult,
    DeadEnd,
    Pathway,
    PowerCombination,
)
from cohortlens.utils.datetime import hours_between

logger = logging.getLogger(__name__)

MIN_SEQUENCE_LENGTH = 2
MAX_SEQUENCE_LENGTH = 3


@dataclass(frozen=True)
class Touch:
    """A visit to one experience."""

    experience_id: str
    at: datetime


@dataclass
class _SequenceStats:
    attempts: int = 0
    completions: int = 0
    students: set[str] = field(default_factory=set)
    hours_to_next: list[float] = field(default_factory=list)


def build_journeys(events: Sequence[Event]) -> dict[str, list[Touch]]:
    """Per-student experience journeys, oldest first.

    Events without an experience key are skipped and consecutive touches of
    the same experience collapse into the first of them.
    """
    journeys: dict[str, list[Touch]] = {}
    for entity_id, student_events in group_by_student(events).items():
        journey: list[Touch] = []
        for event in student_events:
            key = event.experience_key
            if key is None or (journey and journey[-1].experience_id == key):
                continue
            journey.append(Touch(key, event.created_at))
        if journey:
            journeys[entity_id] = journey
    return journeys


def find_top_pathways(
    journeys: dict[str, list[Touch]],
    settings: ScoringSettings,
) -> list[Pathway]:
    """Rank contiguous sequences by how often students continued past them."""
    stats: dict[tuple[str, ...], _SequenceStats] = defaultdict(_SequenceStats)
    for entity_id, journey in journeys.items():
        for length in range(MIN_SEQUENCE_LENGTH, MAX_SEQUENCE_LENGTH + 1):
            for start in range(len(journey) - length + 1):
                sequence = tuple(t.experience_id for t in journey[start : start + length])
                entry = stats[sequence]
                entry.attempts += 1
                entry.students.add(entity_id)
                if start + length < len(journey):
                    entry.completions += 1
                    entry.hours_to_next.append(
                        hours_between(journey[start].at, journey[start + length].at)
                    )

    pathways = [
        Pathway(
            sequence=list(sequence),
            completion_rate=round_half_up(entry.completions / entry.attempts * 100, 1),
            student_count=len(entry.students),
            avg_time_to_complete=format_short_duration(
                statistics.fmean(entry.hours_to_next) if entry.hours_to_next else 0
            ),
        )
        for sequence, entry in stats.items()
        if entry.attempts >= settings.pathway_min_attempts
    ]
    pathways.sort(key=lambda p: (-p.completion_rate, -p.student_count, p.sequence))
    return pathways


def find_dead_ends(
    journeys: dict[str, list[Touch]],
    settings: ScoringSettings,
) -> list[DeadEnd]:
    """Experiences most students never moved on from."""
    touched: dict[str, set[str]] = defaultdict(set)
    continued: dict[str, set[str]] = defaultdict(set)
    for entity_id, journey in journeys.items():
        for index, touch in enumerate(journey):
            touched[touch.experience_id].add(entity_id)
            if index + 1 < len(journey):
                continued[touch.experience_id].add(entity_id)

    dead_ends = []
    for experience_id, students in touched.items():
        if len(students) < settings.dead_end_min_students:
            continue
        drop_off = (len(students) - len(continued[experience_id])) / len(students) * 100
        if drop_off > settings.dead_end_drop_off_pct:
            dead_ends.append(
                DeadEnd(
                    experience_id=experience_id,
                    experience_name=format_experience_name(experience_id),
                    drop_off_rate=round_half_up(drop_off, 1),
                    student_count=len(students),
                )
            )
    dead_ends.sort(key=lambda d: (-d.drop_off_rate, -d.student_count, d.experience_id))
    return dead_ends


def find_power_combinations(
    journeys: dict[str, list[Touch]],
    settings: ScoringSettings,
) -> list[PowerCombination]:
    """Experience pairs whose students continued to further content.

    A student counts for every unordered pair they touched and succeeds when
    their journey goes on after both experiences of the pair were reached.
    """
    frequency: dict[tuple[str, str], int] = defaultdict(int)
    successes: dict[tuple[str, str], int] = defaultdict(int)
    for journey in journeys.values():
        first_index: dict[str, int] = {}
        for index, touch in enumerate(journey):
            first_index.setdefault(touch.experience_id, index)
        last = len(journey) - 1
        for pair in itertools.combinations(sorted(first_index), 2):
            frequency[pair] += 1
            if max(first_index[pair[0]], first_index[pair[1]]) < last:
                successes[pair] += 1

    combinations = []
    for pair, count in frequency.items():
        if count < settings.power_min_frequency:
            continue
        rate = successes[pair] / count * 100
        if rate > settings.power_success_pct:
            combinations.append(
                PowerCombination(
                    combination=list(pair),
                    success_rate=round_half_up(rate, 1),
                    frequency=count,
                )
            )
    combinations.sort(key=lambda c: (-c.success_rate, -c.frequency, c.combination))
    return combinations


def calculate_content_pathways(
    events: Sequence[Event],
    *,
    settings: ScoringSettings,
) -> ContentPathwaysResult:
    """Compute the content pathway result for a tenant.

    Args:
        events: Qualifying events, in any order.
        settings: Limits and thresholds.

    Returns:
        Top pathways, dead ends and power combinations; the empty result
        when no event carries an experience key.
    """
    journeys = build_journeys(events)
    if not journeys:
        return ContentPathwaysResult.empty()

    logger.debug("Analysing pathways across %d journeys", len(journeys))
    return ContentPathwaysResult(
        top_pathways=find_top_pathways(journeys, settings)[: settings.top_pathways_limit],
        dead_ends=find_dead_ends(journeys, settings)[: settings.dead_end_limit],
        power_combinations=find_power_combinations(journeys, settings)[
            : settings.power_combination_limit
        ],
    )
