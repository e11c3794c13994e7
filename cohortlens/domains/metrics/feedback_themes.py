# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Top feedback themes.

Surfaces recurring themes from survey feedback once a tenant has collected
enough submissions. Themes come from the insights generated about those
submissions; until the submission floor is reached the result carries a
call to action instead.
"""

import logging
from collections.abc import Sequence
from datetime import datetime, timedelta
from typing import Any, get_args

from cohortlens.core.config.settings import ScoringSettings
from cohortlens.domains.metrics.dataset import InsightRecord, SubmissionRecord
from cohortlens.domains.metrics.schemas import (
    FeedbackTheme,
    FeedbackThemesResult,
    Sentiment,
    Urgency,
)
from cohortlens.utils.datetime import to_iso

logger = logging.getLogger(__name__)

NO_ACTION_SUGGESTED = "No action suggested"

_SENTIMENTS = frozenset(get_args(Sentiment))
_URGENCIES = frozenset(get_args(Urgency))


def _share_pct(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return 0.0
    return float(value)


def insight_to_theme(insight: InsightRecord) -> FeedbackTheme | None:
    """Map an insight to a theme; untitled insights yield None."""
    if not insight.title:
        return None
    metadata = insight.metadata
    sentiment = metadata.get("sentiment")
    urgency = metadata.get("urgency")
    return FeedbackTheme(
        title=insight.title,
        sentiment=sentiment if sentiment in _SENTIMENTS else "neutral",
        share_pct=_share_pct(metadata.get("share_pct")),
        urgency=urgency if urgency in _URGENCIES else "low",
        suggested_action=insight.content or NO_ACTION_SUGGESTED,
    )


def calculate_feedback_themes(
    submissions: Sequence[SubmissionRecord],
    insights: Sequence[InsightRecord],
    *,
    now: datetime,
    settings: ScoringSettings,
) -> FeedbackThemesResult:
    """Compute the feedback themes result.

    Args:
        submissions: Form submissions of the tenant.
        insights: Insights of the tenant, newest first.
        now: Evaluation instant.
        settings: Window, floor and limits.

    Returns:
        Themes when enough submissions arrived in the window, otherwise the
        empty result with a call to action.
    """
    since = now - timedelta(days=settings.feedback_window_days)
    recent_submissions = [s for s in submissions if s.submitted_at >= since]
    if len(recent_submissions) < settings.feedback_min_submissions:
        return FeedbackThemesResult.empty(
            last_updated=to_iso(now), total_submissions=len(recent_submissions)
        )

    recent_insights = [i for i in insights if i.created_at >= since]
    recent_insights = recent_insights[: settings.feedback_insight_limit]
    themes = [t for i in recent_insights if (t := insight_to_theme(i)) is not None]
    logger.debug(
        "Built %d themes from %d insights", len(themes), len(recent_insights)
    )

    return FeedbackThemesResult(
        has_data=True,
        themes=themes[: settings.feedback_theme_limit],
        total_submissions=len(recent_submissions),
        last_updated=to_iso(now),
    )
