# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for metric result serialization."""

import pytest

from cohortlens.domains.metrics.schemas import (
    NO_FEEDBACK_CTA,
    AhaMomentResult,
    AtRiskStudent,
    CommitmentDistribution,
    CommitmentResult,
    ConsistencyDistribution,
    ConsistencyResult,
    ContentPathwaysResult,
    DeadEnd,
    ExperienceSpike,
    FeedbackTheme,
    FeedbackThemesResult,
    MetricModel,
    Pathway,
    PopularContentItem,
    PopularContentResult,
    PowerCombination,
    StagnantStudent,
    StudentConsistency,
)

UPDATED = "2025-03-12T15:30:00.000Z"

POPULATED = [
    CommitmentResult(
        average_score=47.5,
        distribution=CommitmentDistribution(high=1, medium=0, at_risk=1),
        at_risk_students=[
            AtRiskStudent(
                entity_id="s2",
                name="Student s2",
                score=30,
                risk_factors=["Few activities in first week"],
            )
        ],
        total_students=2,
    ),
    ConsistencyResult(
        average_score=62.25,
        distribution=ConsistencyDistribution(high=0, medium=1, low=0),
        trend="+12%",
        student_scores=[
            StudentConsistency(
                entity_id="s1", score=62.25, weeks_active=5, pattern_consistency=80, decay_rate=10
            )
        ],
        total_students=1,
    ),
    AhaMomentResult(
        top_experiences=[
            ExperienceSpike(
                experience_id="deep_dive",
                experience_name="Deep Dive",
                spike_percent=150.5,
                student_count=3,
            )
        ],
        avg_time_to_first_breakthrough="2 days",
        stagnant_students=1,
        stagnant_students_list=[StagnantStudent(entity_id="s4", days_since_last_activity=21)],
    ),
    ContentPathwaysResult(
        top_pathways=[
            Pathway(
                sequence=["intro", "quiz"],
                completion_rate=66.67,
                student_count=3,
                avg_time_to_complete="5 hours",
            )
        ],
        dead_ends=[
            DeadEnd(
                experience_id="forum",
                experience_name="Forum",
                drop_off_rate=75.0,
                student_count=4,
            )
        ],
        power_combinations=[
            PowerCombination(combination=["intro", "quiz"], success_rate=90.0, frequency=10)
        ],
    ),
    PopularContentResult(
        content=[
            PopularContentItem(
                experience_id="intro_video",
                name="Intro Video",
                engagements=4,
                unique_students=2,
                trend="+100%",
            )
        ],
        total_engagements=4,
        total_unique_students=2,
        last_updated=UPDATED,
    ),
    FeedbackThemesResult(
        has_data=True,
        themes=[
            FeedbackTheme(
                title="Pacing",
                sentiment="negative",
                share_pct=42.5,
                urgency="high",
                suggested_action="Slow down week two",
            )
        ],
        total_submissions=6,
        last_updated=UPDATED,
    ),
]

EMPTY = [
    CommitmentResult.empty(),
    ConsistencyResult.empty(),
    AhaMomentResult.empty(),
    ContentPathwaysResult.empty(),
    PopularContentResult.empty(UPDATED),
    FeedbackThemesResult.empty(UPDATED, total_submissions=3),
]


def _ids(results: list[MetricModel]) -> list[str]:
    return [type(r).__name__ for r in results]


class TestMetricDataRoundTrip:
    """Tests for rebuilding results from cached metric_data."""

    @pytest.mark.parametrize("result", POPULATED, ids=_ids(POPULATED))
    def test_populated_result_survives_cache(self, result: MetricModel) -> None:
        """Test that a stored payload rebuilds into an equal result."""
        data = result.to_metric_data()

        rebuilt = type(result).from_metric_data(data)

        assert rebuilt == result
        assert rebuilt.to_metric_data() == data

    @pytest.mark.parametrize("result", EMPTY, ids=_ids(EMPTY))
    def test_empty_result_survives_cache(self, result: MetricModel) -> None:
        """Test that empty() payloads rebuild unchanged."""
        data = result.to_metric_data()

        assert type(result).from_metric_data(data).to_metric_data() == data

    def test_payload_keys_are_camel_case(self) -> None:
        """Test the dashboard-facing keys of a nested payload."""
        data = POPULATED[2].to_metric_data()

        assert set(data) == {
            "topExperiences",
            "avgTimeToFirstBreakthrough",
            "stagnantStudents",
            "stagnantStudentsList",
        }
        assert data["stagnantStudentsList"] == [{"entityId": "s4", "daysSinceLastActivity": 21}]


class TestFeedbackThemesPayload:
    """Tests for the optional call to action."""

    def test_missing_cta_is_not_stored(self) -> None:
        """Test that ctaMessage is dropped and restored as None."""
        data = POPULATED[5].to_metric_data()

        assert "ctaMessage" not in data
        assert FeedbackThemesResult.from_metric_data(data).cta_message is None

    def test_cta_is_kept_when_set(self) -> None:
        """Test that the empty result keeps its call to action through the cache."""
        data = FeedbackThemesResult.empty(UPDATED).to_metric_data()

        rebuilt = FeedbackThemesResult.from_metric_data(data)

        assert data["ctaMessage"] == NO_FEEDBACK_CTA
        assert rebuilt.cta_message == NO_FEEDBACK_CTA
        assert rebuilt.has_data is False

    def test_snake_case_input_is_accepted(self) -> None:
        """Test that a payload written with field names also validates."""
        rebuilt = FeedbackThemesResult.from_metric_data(
            {"has_data": False, "total_submissions": 2, "last_updated": UPDATED}
        )

        assert rebuilt.to_metric_data() == {
            "hasData": False,
            "themes": [],
            "totalSubmissions": 2,
            "lastUpdated": UPDATED,
        }
