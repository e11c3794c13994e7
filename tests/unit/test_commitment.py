# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the commitment probability score."""

from datetime import datetime, timedelta, timezone

import pytest

from cohortlens.core.config.settings import ScoringSettings
from cohortlens.domains.metrics.commitment import (
    RISK_FEW_ACTIVITIES,
    RISK_LOW_FREQUENCY,
    RISK_LOW_OVERALL,
    RISK_LONG_GAPS,
    RISK_NARROW_EXPLORATION,
    band_for,
    calculate_commitment_score,
    score_student_commitment,
)
from cohortlens.domains.metrics.types import ScoreBand

CREATED = datetime(2025, 3, 3, 8, 0, tzinfo=timezone.utc)


class TestBandFor:
    """Tests for score banding."""

    @pytest.mark.parametrize(
        ("score", "band"),
        [
            (100, ScoreBand.HIGH),
            (70, ScoreBand.HIGH),
            (69.9, ScoreBand.MEDIUM),
            (40, ScoreBand.MEDIUM),
            (39, ScoreBand.LOW),
            (0, ScoreBand.LOW),
        ],
    )
    def test_thresholds(self, score: float, band: ScoreBand, scoring_settings) -> None:
        """Test that band boundaries are inclusive at the lower end."""
        assert band_for(score, scoring_settings) is band


class TestScoreStudentCommitment:
    """Tests for scoring a single student."""

    def test_medium_student_scores_65(
        self, scoring_settings, student_factory, event_factory
    ) -> None:
        """Test first event after 3h, 3 active days and 2 experiences."""
        student = student_factory("s1", CREATED)
        events = [
            event_factory("s1", CREATED + timedelta(hours=3), experience_id="intro"),
            event_factory("s1", CREATED + timedelta(days=1), experience_id="intro"),
            event_factory("s1", CREATED + timedelta(days=2), experience_id="module_1"),
        ]

        record = score_student_commitment(student, events, scoring_settings)

        assert record is not None
        assert record.time_points == 40
        assert record.frequency_points == 15
        assert record.exploration_points == 10
        assert record.score == 65
        assert band_for(record.score, scoring_settings) is ScoreBand.MEDIUM

    def test_student_without_window_events_is_not_scored(
        self, scoring_settings, student_factory, event_factory
    ) -> None:
        """Test that events after the first week are ignored."""
        student = student_factory("s1", CREATED)
        events = [event_factory("s1", CREATED + timedelta(days=8), experience_id="intro")]

        assert score_student_commitment(student, events, scoring_settings) is None

    def test_event_at_window_end_counts(
        self, scoring_settings, student_factory, event_factory
    ) -> None:
        """Test that the window end is inclusive."""
        student = student_factory("s1", CREATED)
        events = [event_factory("s1", CREATED + timedelta(days=7))]

        record = score_student_commitment(student, events, scoring_settings)

        assert record is not None
        assert record.time_points == scoring_settings.time_to_first_fallback_points

    def test_action_counts_as_experience(
        self, scoring_settings, student_factory, event_factory
    ) -> None:
        """Test that the action name stands in for a missing experience id."""
        student = student_factory("s1", CREATED)
        events = [
            event_factory("s1", CREATED + timedelta(hours=1), action="watched_video"),
            event_factory("s1", CREATED + timedelta(hours=2), experience_id="quiz"),
        ]

        record = score_student_commitment(student, events, scoring_settings)

        assert record is not None
        assert record.exploration_points == 10

    def test_low_student_risk_factors(
        self, scoring_settings, student_factory, event_factory
    ) -> None:
        """Test risk factors of a slow, sparse, narrow student."""
        student = student_factory("s1", CREATED)
        events = [event_factory("s1", CREATED + timedelta(hours=30), experience_id="intro")]

        record = score_student_commitment(student, events, scoring_settings)

        assert record is not None
        assert record.score == 30
        assert record.risk_factors == [
            RISK_LOW_FREQUENCY,
            RISK_NARROW_EXPLORATION,
            RISK_FEW_ACTIVITIES,
        ]

    def test_long_gap_is_reported(
        self, scoring_settings, student_factory, event_factory
    ) -> None:
        """Test that a gap above the limit between two events is a risk."""
        student = student_factory("s1", CREATED)
        events = [
            event_factory("s1", CREATED + timedelta(hours=1), experience_id="a"),
            event_factory("s1", CREATED + timedelta(hours=2), experience_id="b"),
            event_factory("s1", CREATED + timedelta(hours=80), experience_id="c"),
        ]

        record = score_student_commitment(student, events, scoring_settings)

        assert record is not None
        assert RISK_LONG_GAPS in record.risk_factors

    def test_fallback_risk_factor(self, student_factory, event_factory) -> None:
        """Test the generic factor when no specific rule fires."""
        settings = ScoringSettings(
            slow_start_below=0,
            low_frequency_below=0,
            narrow_exploration_below=0,
            min_activity_events=0,
        )
        student = student_factory("s1", CREATED)
        events = [event_factory("s1", CREATED + timedelta(hours=1))]

        record = score_student_commitment(student, events, settings)

        assert record is not None
        assert record.risk_factors == [RISK_LOW_OVERALL]


class TestCalculateCommitmentScore:
    """Tests for the tenant-level commitment result."""

    def test_no_students_returns_empty_result(self, scoring_settings) -> None:
        """Test that a tenant with no entities gets the zero result."""
        result = calculate_commitment_score([], [], settings=scoring_settings)

        assert result.to_metric_data() == {
            "averageScore": 0,
            "distribution": {"high": 0, "medium": 0, "atRisk": 0},
            "atRiskStudents": [],
            "totalStudents": 0,
        }

    def test_single_medium_student(
        self, scoring_settings, student_factory, event_factory
    ) -> None:
        """Test the distribution for one medium student."""
        students = [student_factory("s1", CREATED)]
        events = [
            event_factory("s1", CREATED + timedelta(hours=3), experience_id="intro"),
            event_factory("s1", CREATED + timedelta(days=1), experience_id="intro"),
            event_factory("s1", CREATED + timedelta(days=2), experience_id="module_1"),
        ]

        result = calculate_commitment_score(students, events, settings=scoring_settings)

        assert result.average_score == 65.0
        assert result.distribution.medium == 1
        assert result.distribution.high == 0
        assert result.distribution.at_risk == 0
        assert result.total_students == 1
        assert result.at_risk_students == []

    def test_bucket_counts_sum_to_scored_students(
        self, scoring_settings, student_factory, event_factory
    ) -> None:
        """Test that only students with qualifying events are counted."""
        students = [student_factory(f"s{i}", CREATED) for i in range(5)]
        events = [
            event_factory(f"s{i}", CREATED + timedelta(hours=1 + i), experience_id=f"e{i}")
            for i in range(3)
        ]

        result = calculate_commitment_score(students, events, settings=scoring_settings)
        dist = result.distribution

        assert result.total_students == 3
        assert dist.high + dist.medium + dist.at_risk == result.total_students

    def test_at_risk_students_sorted_and_capped(
        self, student_factory, event_factory
    ) -> None:
        """Test at-risk ordering by score, then id, and the cap."""
        settings = ScoringSettings(at_risk_limit=2)
        students = [student_factory(sid, CREATED) for sid in ("c", "b", "a")]
        events = [
            event_factory("c", CREATED + timedelta(hours=30)),
            event_factory("b", CREATED + timedelta(hours=30)),
            event_factory("a", CREATED + timedelta(hours=60)),
        ]

        result = calculate_commitment_score(students, events, settings=settings)

        assert [s.entity_id for s in result.at_risk_students] == ["a", "b"]
        assert result.distribution.at_risk == 3

    def test_average_rounds_half_up(self, student_factory, event_factory) -> None:
        """Test one-decimal half-up rounding of the average."""
        settings = ScoringSettings()
        students = [student_factory(sid, CREATED) for sid in ("a", "b")]
        # a: 40 + 5 + 0 = 45; b: 30 + 5 + 0 = 35 -> 40.0
        events = [
            event_factory("a", CREATED + timedelta(hours=1)),
            event_factory("b", CREATED + timedelta(hours=10)),
        ]

        result = calculate_commitment_score(students, events, settings=settings)

        assert result.average_score == 40.0
        assert result.distribution.medium == 1
        assert result.distribution.at_risk == 1

    def test_anonymous_events_are_ignored(
        self, scoring_settings, student_factory, event_factory
    ) -> None:
        """Test that events without an entity id are never attributed."""
        students = [student_factory("s1", CREATED)]
        events = [event_factory(None, CREATED + timedelta(hours=1), experience_id="x")]

        result = calculate_commitment_score(students, events, settings=scoring_settings)

        assert result.total_students == 0

    def test_result_is_independent_of_input_order(
        self, scoring_settings, student_factory, event_factory
    ) -> None:
        """Test that reversed events give the same first event, gaps and bands."""
        students = [student_factory("a", CREATED), student_factory("b", CREATED)]
        events = [
            event_factory("a", CREATED + timedelta(hours=2), experience_id="intro"),
            event_factory("b", CREATED + timedelta(hours=20), experience_id="intro"),
            event_factory("a", CREATED + timedelta(days=1), experience_id="quiz"),
            event_factory("b", CREATED + timedelta(days=4), experience_id="quiz"),
            event_factory("a", CREATED + timedelta(days=2), experience_id="module_1"),
            event_factory("a", CREATED + timedelta(days=3), experience_id="module_2"),
            event_factory("b", CREATED + timedelta(days=5), experience_id="forum"),
        ]

        forward = calculate_commitment_score(students, events, settings=scoring_settings)
        backward = calculate_commitment_score(
            students, list(reversed(events)), settings=scoring_settings
        )

        assert forward.to_metric_data() == backward.to_metric_data()

    def test_single_student_reversed_events(
        self, scoring_settings, student_factory, event_factory
    ) -> None:
        """Test that the time-to-first points use the earliest event."""
        student = student_factory("s1", CREATED)
        events = [
            event_factory("s1", CREATED + timedelta(hours=3), experience_id="intro"),
            event_factory("s1", CREATED + timedelta(days=1), experience_id="intro"),
            event_factory("s1", CREATED + timedelta(days=2), experience_id="module_1"),
        ]

        record = score_student_commitment(student, list(reversed(events)), scoring_settings)

        assert record is not None
        assert record.time_points == 40
        assert record.score == 65
