# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for rounding and display helpers."""

import pytest

from cohortlens.domains.metrics.formatting import (
    clamp_score,
    format_duration_hours,
    format_experience_name,
    format_percent_change,
    format_short_duration,
    round_half_up,
    round_int,
)


class TestRounding:
    """Tests for half-up rounding."""

    @pytest.mark.parametrize(
        ("value", "digits", "expected"),
        [(2.5, 0, 3.0), (-2.5, 0, -2.0), (0.25, 1, 0.3), (64.94, 1, 64.9)],
    )
    def test_round_half_up(self, value: float, digits: int, expected: float) -> None:
        """Test that halves round toward positive infinity."""
        assert round_half_up(value, digits) == pytest.approx(expected)

    def test_round_int(self) -> None:
        """Test integer rounding differs from banker's rounding."""
        assert round_int(0.5) == 1
        assert round_int(2.5) == 3
        assert round_int(2.49) == 2

    def test_clamp_score(self) -> None:
        """Test clamping into [0, 100]."""
        assert clamp_score(-3) == 0.0
        assert clamp_score(130) == 100.0
        assert clamp_score(55.5) == 55.5


class TestFormatting:
    """Tests for display strings."""

    def test_experience_name(self) -> None:
        """Test title casing of identifiers."""
        assert format_experience_name("intro_to_python") == "Intro To Python"
        assert format_experience_name("unknown") == "Unknown Content"

    @pytest.mark.parametrize(
        ("hours", "expected"),
        [(0.5, "30 minutes"), (3, "3 hours"), (2.25, "2.3 hours"), (36, "1.5 days"), (48, "2 days")],
    )
    def test_duration_hours(self, hours: float, expected: str) -> None:
        """Test adaptive units."""
        assert format_duration_hours(hours) == expected

    @pytest.mark.parametrize(
        ("hours", "expected"),
        [(0.75, "45m"), (3, "3h"), (48, "2d")],
    )
    def test_short_duration(self, hours: float, expected: str) -> None:
        """Test compact units."""
        assert format_short_duration(hours) == expected

    @pytest.mark.parametrize(
        ("current", "previous", "expected"),
        [(100, 95, "+5.3%"), (60, 80, "-25%"), (50, 50, "+0%")],
    )
    def test_percent_change(self, current: float, previous: float, expected: str) -> None:
        """Test signed relative change."""
        assert format_percent_change(current, previous) == expected
