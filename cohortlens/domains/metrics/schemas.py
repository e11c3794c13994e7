# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Result models for the metric scorers.

Each scorer returns one of the ``*Result`` models below. Field names are
snake_case in Python and serialize to the camelCase keys stored in
``cached_metrics.metric_data`` and read by the dashboard. Every result has
an ``empty()`` constructor so consumers never see a null metric.
"""

from typing import Any, Literal, Self

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class MetricModel(BaseModel):
    """Base for all persisted metric payload models."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_metric_data(self) -> dict[str, Any]:
        """Serialize to the JSON-ready camelCase dict stored in the cache."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_metric_data(cls, data: dict[str, Any]) -> Self:
        """Rebuild a model from a cached ``metric_data`` dict."""
        return cls.model_validate(data)


# =============================================================================
# Commitment
# =============================================================================


class CommitmentDistribution(MetricModel):
    """Scored students per commitment band."""

    high: int = 0
    medium: int = 0
    at_risk: int = 0


class AtRiskStudent(MetricModel):
    """A low-commitment student with the reasons behind the score."""

    entity_id: str
    name: str
    score: int = Field(ge=0, le=100)
    risk_factors: list[str]


class CommitmentResult(MetricModel):
    """Tenant-level commitment probability result."""

    average_score: float = Field(default=0, ge=0, le=100)
    distribution: CommitmentDistribution = Field(default_factory=CommitmentDistribution)
    at_risk_students: list[AtRiskStudent] = Field(default_factory=list)
    total_students: int = 0

    @classmethod
    def empty(cls) -> "CommitmentResult":
        return cls()


# =============================================================================
# Consistency
# =============================================================================


class ConsistencyDistribution(MetricModel):
    """Scored students per consistency band."""

    high: int = 0
    medium: int = 0
    low: int = 0


class StudentConsistency(MetricModel):
    """Per-student week-over-week consistency."""

    entity_id: str
    score: float = Field(ge=0, le=100)
    weeks_active: int
    pattern_consistency: int
    decay_rate: int


class ConsistencyResult(MetricModel):
    """Tenant-level consistency result."""

    average_score: float = Field(default=0, ge=0, le=100)
    distribution: ConsistencyDistribution = Field(default_factory=ConsistencyDistribution)
    trend: str = "N/A"
    student_scores: list[StudentConsistency] = Field(default_factory=list)
    total_students: int = 0

    @classmethod
    def empty(cls) -> "ConsistencyResult":
        return cls()


# =============================================================================
# Aha moments
# =============================================================================


class ExperienceSpike(MetricModel):
    """An experience followed by a measurable engagement spike."""

    experience_id: str
    experience_name: str
    spike_percent: float
    student_count: int


class StagnantStudent(MetricModel):
    """A student with no qualifying activity for a while."""

    entity_id: str
    days_since_last_activity: int


class AhaMomentResult(MetricModel):
    """Breakthrough and stagnation result."""

    top_experiences: list[ExperienceSpike] = Field(default_factory=list)
    avg_time_to_first_breakthrough: str = "N/A"
    stagnant_students: int = 0
    stagnant_students_list: list[StagnantStudent] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> "AhaMomentResult":
        return cls()


# =============================================================================
# Content pathways
# =============================================================================


class Pathway(MetricModel):
    """A frequently followed content sequence."""

    sequence: list[str]
    completion_rate: float
    student_count: int
    avg_time_to_complete: str


class DeadEnd(MetricModel):
    """An experience after which most students stop."""

    experience_id: str
    experience_name: str
    drop_off_rate: float
    student_count: int


class PowerCombination(MetricModel):
    """An experience pair whose students usually keep going."""

    combination: list[str]
    success_rate: float
    frequency: int


class ContentPathwaysResult(MetricModel):
    """Content sequence effectiveness result."""

    top_pathways: list[Pathway] = Field(default_factory=list)
    dead_ends: list[DeadEnd] = Field(default_factory=list)
    power_combinations: list[PowerCombination] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> "ContentPathwaysResult":
        return cls()


# =============================================================================
# Popular content
# =============================================================================


class PopularContentItem(MetricModel):
    """Today's engagement with one experience."""

    experience_id: str
    name: str
    engagements: int
    unique_students: int
    trend: str


class PopularContentResult(MetricModel):
    """Daily popular content result."""

    content: list[PopularContentItem] = Field(default_factory=list)
    total_engagements: int = 0
    total_unique_students: int = 0
    last_updated: str

    @classmethod
    def empty(cls, last_updated: str) -> "PopularContentResult":
        return cls(last_updated=last_updated)


# =============================================================================
# Feedback themes
# =============================================================================

Sentiment = Literal["positive", "negative", "neutral"]
Urgency = Literal["low", "medium", "high"]

NO_FEEDBACK_CTA = "Create surveys to start collecting feedback themes"


class FeedbackTheme(MetricModel):
    """A recurring theme surfaced from survey feedback."""

    title: str
    sentiment: Sentiment = "neutral"
    share_pct: float = 0
    urgency: Urgency = "low"
    suggested_action: str


class FeedbackThemesResult(MetricModel):
    """Feedback themes result."""

    has_data: bool = False
    themes: list[FeedbackTheme] = Field(default_factory=list)
    total_submissions: int = 0
    last_updated: str
    cta_message: str | None = None

    def to_metric_data(self) -> dict[str, Any]:
        data = super().to_metric_data()
        if data["ctaMessage"] is None:
            del data["ctaMessage"]
        return data

    @classmethod
    def empty(cls, last_updated: str, total_submissions: int = 0) -> "FeedbackThemesResult":
        return cls(
            last_updated=last_updated,
            total_submissions=total_submissions,
            cta_message=NO_FEEDBACK_CTA,
        )


MetricResult = (
    CommitmentResult
    | ConsistencyResult
    | AhaMomentResult
    | ContentPathwaysResult
    | PopularContentResult
    | FeedbackThemesResult
)
