# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Metric registry.

Maps each :class:`MetricType` to its scorer, the event tags it reads and how
far back its data has to reach. The refresher uses this to load a tenant's
data once per tier and run every scorer of that tier against it.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime

from cohortlens.core.config.settings import ScoringSettings
from cohortlens.domains.metrics.aha_moment import calculate_aha_moments
from cohortlens.domains.metrics.commitment import calculate_commitment_score
from cohortlens.domains.metrics.consistency import calculate_consistency_score
from cohortlens.domains.metrics.dataset import TenantDataset
from cohortlens.domains.metrics.feedback_themes import calculate_feedback_themes
from cohortlens.domains.metrics.pathways import calculate_content_pathways
from cohortlens.domains.metrics.popular_content import calculate_popular_content
from cohortlens.domains.metrics.schemas import MetricResult
from cohortlens.domains.metrics.types import EventType, MetricType

Calculator = Callable[[TenantDataset, datetime, ScoringSettings], MetricResult]
Lookback = Callable[[ScoringSettings], int | None]

_LEARNING_EVENTS = frozenset(
    {EventType.ACTIVITY, EventType.ENGAGEMENT, EventType.COURSE_ENROLLMENT}
)
_JOURNEY_EVENTS = frozenset(
    {EventType.ACTIVITY, EventType.ENGAGEMENT, EventType.SUBSCRIPTION}
)
_ALL_EVENTS = frozenset(EventType)


@dataclass(frozen=True)
class MetricDefinition:
    """How one metric type is computed.

    Attributes:
        metric_type: The metric.
        event_types: Event tags the scorer reads.
        lookback_days: Days of history needed, None for the full history.
        uses_feedback: Whether survey submissions and insights are read.
        calculate: Scorer entry point.
    """

    metric_type: MetricType
    event_types: frozenset[EventType]
    lookback_days: Lookback
    calculate: Calculator
    uses_feedback: bool = False

    def run(self, dataset: TenantDataset, now: datetime, settings: ScoringSettings) -> MetricResult:
        """Run the scorer on a dataset."""
        return self.calculate(dataset, now, settings)


def _all_history(_: ScoringSettings) -> int | None:
    return None


def _commitment(dataset: TenantDataset, now: datetime, settings: ScoringSettings) -> MetricResult:
    return calculate_commitment_score(
        dataset.students,
        dataset.events_of_types(_ALL_EVENTS),
        settings=settings,
    )


def _consistency(dataset: TenantDataset, now: datetime, settings: ScoringSettings) -> MetricResult:
    return calculate_consistency_score(
        dataset.students,
        dataset.events_of_types(_LEARNING_EVENTS),
        now=now,
        settings=settings,
    )


def _aha(dataset: TenantDataset, now: datetime, settings: ScoringSettings) -> MetricResult:
    return calculate_aha_moments(
        dataset.students,
        dataset.events_of_types(_JOURNEY_EVENTS),
        now=now,
        settings=settings,
    )


def _pathways(dataset: TenantDataset, now: datetime, settings: ScoringSettings) -> MetricResult:
    return calculate_content_pathways(dataset.events_of_types(_JOURNEY_EVENTS), settings=settings)


def _popular(dataset: TenantDataset, now: datetime, settings: ScoringSettings) -> MetricResult:
    return calculate_popular_content(
        dataset.events_of_types(_LEARNING_EVENTS), now=now, settings=settings
    )


def _feedback(dataset: TenantDataset, now: datetime, settings: ScoringSettings) -> MetricResult:
    return calculate_feedback_themes(
        dataset.submissions, dataset.insights, now=now, settings=settings
    )


METRICS: dict[MetricType, MetricDefinition] = {
    MetricType.COMMITMENT: MetricDefinition(
        metric_type=MetricType.COMMITMENT,
        event_types=_ALL_EVENTS,
        lookback_days=_all_history,
        calculate=_commitment,
    ),
    MetricType.CONSISTENCY: MetricDefinition(
        metric_type=MetricType.CONSISTENCY,
        event_types=_LEARNING_EVENTS,
        # Current windows plus the one-week-earlier trend baseline.
        lookback_days=lambda s: 7 * (s.consistency_weeks + 1),
        calculate=_consistency,
    ),
    MetricType.AHA_MOMENTS: MetricDefinition(
        metric_type=MetricType.AHA_MOMENTS,
        event_types=_JOURNEY_EVENTS,
        lookback_days=_all_history,
        calculate=_aha,
    ),
    MetricType.CONTENT_PATHWAYS: MetricDefinition(
        metric_type=MetricType.CONTENT_PATHWAYS,
        event_types=_JOURNEY_EVENTS,
        lookback_days=_all_history,
        calculate=_pathways,
    ),
    MetricType.POPULAR_CONTENT_DAILY: MetricDefinition(
        metric_type=MetricType.POPULAR_CONTENT_DAILY,
        event_types=_LEARNING_EVENTS,
        lookback_days=lambda _: 2,
        calculate=_popular,
    ),
    MetricType.FEEDBACK_THEMES: MetricDefinition(
        metric_type=MetricType.FEEDBACK_THEMES,
        event_types=frozenset(),
        lookback_days=lambda _: 0,
        calculate=_feedback,
        uses_feedback=True,
    ),
}


def get_metric(metric_type: MetricType | str) -> MetricDefinition:
    """Look up a metric definition.

    Raises:
        ValueError: If ``metric_type`` is not a known metric.
    """
    return METRICS[MetricType(metric_type)]


@dataclass(frozen=True)
class DataRequirements:
    """Union of what a set of metrics needs loaded.

    Attributes:
        event_types: Event tags to load.
        lookback_days: Days of history, None for the full history.
        include_feedback: Whether submissions and insights are loaded.
        feedback_days: Look-back for submissions and insights.
    """

    event_types: frozenset[EventType]
    lookback_days: int | None
    include_feedback: bool
    feedback_days: int


def data_requirements(
    metric_types: Iterable[MetricType], settings: ScoringSettings
) -> DataRequirements:
    """Combine the needs of several metrics into one load."""
    definitions = [METRICS[m] for m in metric_types]
    event_types: frozenset[EventType] = frozenset().union(*(d.event_types for d in definitions))
    lookbacks = [d.lookback_days(settings) for d in definitions if d.event_types]
    lookback: int | None
    if any(days is None for days in lookbacks):
        lookback = None
    else:
        lookback = max((days for days in lookbacks if days is not None), default=0)
    return DataRequirements(
        event_types=event_types,
        lookback_days=lookback,
        include_feedback=any(d.uses_feedback for d in definitions),
        feedback_days=settings.feedback_window_days,
    )


def calculate_metric(
    metric_type: MetricType | str,
    dataset: TenantDataset,
    now: datetime,
    settings: ScoringSettings,
) -> MetricResult:
    """Compute one metric for a tenant dataset."""
    return get_metric(metric_type).run(dataset, now, settings)
