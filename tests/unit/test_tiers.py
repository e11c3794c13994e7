# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for refresh tier assignment."""

from datetime import timedelta
from pathlib import Path

import pytest

from cohortlens.core.config.yaml_loader import YAMLLoadError
from cohortlens.domains.metrics.tiers import (
    TierConfigError,
    UnknownTierError,
    build_tier_assignment,
    load_tier_assignment,
)
from cohortlens.domains.metrics.types import MetricType

SHIPPED_TIERS = Path(__file__).resolve().parents[2] / "config" / "refresh_tiers.yaml"


def _raw(**tiers):
    return {"tiers": tiers}


class TestLoadTierAssignment:
    """Tests for loading the tier file."""

    def test_shipped_file(self) -> None:
        """Test the bundled light, medium and heavy tiers."""
        assignment = load_tier_assignment(SHIPPED_TIERS)

        assert assignment.names == ["light", "medium", "heavy"]
        light = assignment.get("light")
        assert light.interval == timedelta(minutes=15)
        assert light.ttl == timedelta(minutes=20)
        assert assignment.get("medium").metrics == (
            MetricType.CONSISTENCY,
            MetricType.COMMITMENT,
        )
        assert assignment.get("heavy").ttl_minutes == 360

    def test_every_metric_has_a_tier(self) -> None:
        """Test that the bundled file covers all metric types."""
        assignment = load_tier_assignment(SHIPPED_TIERS)

        for metric_type in MetricType:
            assert assignment.tier_for(metric_type) is not None

    def test_overrides_are_merged(self) -> None:
        """Test overriding one tier's TTL."""
        assignment = load_tier_assignment(
            SHIPPED_TIERS, overrides={"tiers": {"light": {"ttl_minutes": 5}}}
        )

        assert assignment.get("light").ttl_minutes == 5
        assert assignment.get("light").metrics == (MetricType.POPULAR_CONTENT_DAILY,)

    def test_missing_file(self, tmp_path: Path) -> None:
        """Test that a missing file raises YAMLLoadError."""
        with pytest.raises(YAMLLoadError):
            load_tier_assignment(tmp_path / "missing.yaml")

    def test_invalid_file_names_source(self, tmp_path: Path) -> None:
        """Test that validation errors carry the file path."""
        path = tmp_path / "tiers.yaml"
        path.write_text("tiers:\n  light:\n    interval_minutes: 0\n    ttl_minutes: 5\n")

        with pytest.raises(TierConfigError) as exc_info:
            load_tier_assignment(path)

        assert exc_info.value.source == path
        assert str(path) in str(exc_info.value)


class TestTierValidation:
    """Tests for tier validation rules."""

    def test_metric_in_two_tiers_is_rejected(self) -> None:
        """Test that a metric type may belong to one tier only."""
        raw = _raw(
            light={"interval_minutes": 15, "ttl_minutes": 20, "metrics": ["commitment"]},
            heavy={"interval_minutes": 60, "ttl_minutes": 70, "metrics": ["commitment"]},
        )

        with pytest.raises(TierConfigError) as exc_info:
            build_tier_assignment(raw)

        assert "assigned to both" in str(exc_info.value)

    def test_unknown_metric_is_rejected(self) -> None:
        """Test that metric names must be known."""
        raw = _raw(light={"interval_minutes": 15, "ttl_minutes": 20, "metrics": ["revenue"]})

        with pytest.raises(TierConfigError):
            build_tier_assignment(raw)

    def test_empty_metric_list_is_rejected(self) -> None:
        """Test that a tier must refresh something."""
        raw = _raw(light={"interval_minutes": 15, "ttl_minutes": 20, "metrics": []})

        with pytest.raises(TierConfigError):
            build_tier_assignment(raw)

    def test_no_tiers_is_rejected(self) -> None:
        """Test that an empty assignment is invalid."""
        with pytest.raises(TierConfigError):
            build_tier_assignment({"tiers": {}})

    def test_unknown_keys_are_rejected(self) -> None:
        """Test that typos in tier bodies are caught."""
        raw = _raw(
            light={"interval_minutes": 15, "ttl_minute": 20, "metrics": ["commitment"]}
        )

        with pytest.raises(TierConfigError):
            build_tier_assignment(raw)


class TestTierLookup:
    """Tests for tier lookup."""

    def test_unknown_tier(self) -> None:
        """Test that an unknown name lists the known tiers."""
        assignment = load_tier_assignment(SHIPPED_TIERS)

        with pytest.raises(UnknownTierError) as exc_info:
            assignment.get("hourly")

        assert exc_info.value.tier == "hourly"
        assert "light, medium, heavy" in str(exc_info.value)

    def test_tier_for_unassigned_metric(self) -> None:
        """Test None for a metric no tier refreshes."""
        assignment = build_tier_assignment(
            _raw(light={"interval_minutes": 15, "ttl_minutes": 20, "metrics": ["commitment"]})
        )

        assert assignment.tier_for(MetricType.FEEDBACK_THEMES) is None
