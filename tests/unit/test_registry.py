# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the metric registry."""

from datetime import timedelta

import pytest

from cohortlens.domains.metrics.dataset import TenantDataset
from cohortlens.domains.metrics.registry import (
    METRICS,
    calculate_metric,
    data_requirements,
    get_metric,
)
from cohortlens.domains.metrics.schemas import (
    FeedbackThemesResult,
    PopularContentResult,
)
from cohortlens.domains.metrics.types import EventType, MetricType


class TestRegistry:
    """Tests for metric lookup."""

    def test_every_metric_type_is_registered(self) -> None:
        """Test that each metric type has a definition."""
        assert set(METRICS) == set(MetricType)

    def test_lookup_by_value(self) -> None:
        """Test lookup with the string value."""
        assert get_metric("commitment").metric_type is MetricType.COMMITMENT

    def test_unknown_metric_raises(self) -> None:
        """Test that an unknown metric name raises ValueError."""
        with pytest.raises(ValueError):
            get_metric("revenue")


class TestDataRequirements:
    """Tests for combined data requirements."""

    def test_light_tier_needs_two_days(self, scoring_settings) -> None:
        """Test the popular content requirements."""
        req = data_requirements([MetricType.POPULAR_CONTENT_DAILY], scoring_settings)

        assert req.lookback_days == 2
        assert req.include_feedback is False
        assert EventType.SUBSCRIPTION not in req.event_types

    def test_consistency_includes_trend_baseline(self, scoring_settings) -> None:
        """Test that one extra week is loaded for the trend."""
        req = data_requirements([MetricType.CONSISTENCY], scoring_settings)

        assert req.lookback_days == 63

    def test_full_history_wins(self, scoring_settings) -> None:
        """Test that any unbounded metric makes the load unbounded."""
        req = data_requirements(
            [MetricType.CONSISTENCY, MetricType.COMMITMENT], scoring_settings
        )

        assert req.lookback_days is None
        assert req.event_types == frozenset(EventType)

    def test_feedback_only(self, scoring_settings) -> None:
        """Test that feedback themes load no events."""
        req = data_requirements([MetricType.FEEDBACK_THEMES], scoring_settings)

        assert req.event_types == frozenset()
        assert req.lookback_days == 0
        assert req.include_feedback is True
        assert req.feedback_days == scoring_settings.feedback_window_days


class TestCalculateMetric:
    """Tests for running a scorer through the registry."""

    def test_scorer_sees_only_its_event_types(
        self, now, scoring_settings, event_factory
    ) -> None:
        """Test that subscription events do not count as popular content."""
        dataset = TenantDataset.build(
            "tenant-1",
            events=[
                event_factory("s1", now - timedelta(hours=1), experience_id="intro"),
                event_factory(
                    "s1", now - timedelta(hours=2), event_type="subscription", experience_id="plan"
                ),
            ],
        )

        result = calculate_metric(
            MetricType.POPULAR_CONTENT_DAILY, dataset, now, scoring_settings
        )

        assert isinstance(result, PopularContentResult)
        assert [c.experience_id for c in result.content] == ["intro"]

    def test_empty_dataset_yields_empty_results(self, now, scoring_settings) -> None:
        """Test that every scorer handles an empty tenant."""
        dataset = TenantDataset.build("tenant-1")

        for metric_type in MetricType:
            result = calculate_metric(metric_type, dataset, now, scoring_settings)
            assert result.to_metric_data() is not None

        feedback = calculate_metric(MetricType.FEEDBACK_THEMES, dataset, now, scoring_settings)
        assert isinstance(feedback, FeedbackThemesResult)
        assert feedback.has_data is False
