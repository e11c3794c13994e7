# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Metric and event type enumerations."""

from enum import Enum


class MetricType(str, Enum):
    """Cached metric families, one cache row per tenant each."""

    COMMITMENT = "commitment"
    CONSISTENCY = "consistency"
    AHA_MOMENTS = "aha_moments"
    CONTENT_PATHWAYS = "content_pathways"
    POPULAR_CONTENT_DAILY = "popular_content_daily"
    FEEDBACK_THEMES = "feedback_themes"


class EventType(str, Enum):
    """Event tags read by the scorers.

    The event store holds other tags as well (orders, custom events);
    those never reach a scorer.
    """

    ACTIVITY = "activity"
    ENGAGEMENT = "engagement"
    COURSE_ENROLLMENT = "course_enrollment"
    SUBSCRIPTION = "subscription"


class ScoreBand(str, Enum):
    """Bands used by tenant-level score distributions."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
