# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Engagement metrics domain.

Pure scorers over a tenant's typed events, the registry mapping metric
types to scorers and data needs, refresh tier configuration and the
refresh outcome collector.

The refresh orchestrator lives in :mod:`cohortlens.domains.metrics.refresh`
and is imported from there, since it depends on the database layer.
"""

from cohortlens.domains.metrics.dataset import TenantDataset
from cohortlens.domains.metrics.events import Event, EventBatch, StudentRecord, parse_events
from cohortlens.domains.metrics.registry import (
    METRICS,
    DataRequirements,
    MetricDefinition,
    calculate_metric,
    data_requirements,
    get_metric,
)
from cohortlens.domains.metrics.stats import RefreshStatsCollector
from cohortlens.domains.metrics.tiers import (
    RefreshTier,
    TierAssignment,
    TierConfigError,
    UnknownTierError,
    load_tier_assignment,
)
from cohortlens.domains.metrics.types import EventType, MetricType, ScoreBand

__all__ = [
    "DataRequirements",
    "Event",
    "EventBatch",
    "EventType",
    "METRICS",
    "MetricDefinition",
    "MetricType",
    "RefreshStatsCollector",
    "RefreshTier",
    "ScoreBand",
    "StudentRecord",
    "TenantDataset",
    "TierAssignment",
    "TierConfigError",
    "UnknownTierError",
    "calculate_metric",
    "data_requirements",
    "get_metric",
    "load_tier_assignment",
    "parse_events",
]
