# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Read-only access to tenant events, students and survey data.

Every query is scoped by ``tenant_id``. Raw event rows pass through the
ingestion boundary (:func:`parse_events`) before they reach a scorer.
"""

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cohortlens.domains.metrics.dataset import (
    InsightRecord,
    SubmissionRecord,
    TenantDataset,
)
from cohortlens.domains.metrics.events import Event as TypedEvent
from cohortlens.domains.metrics.events import StudentRecord, parse_events
from cohortlens.domains.metrics.registry import DataRequirements
from cohortlens.domains.metrics.types import EventType
from cohortlens.infrastructure.database.models import (
    Event,
    FormSubmission,
    Insight,
    Student,
    Tenant,
)

logger = logging.getLogger(__name__)

ACTIVE_STATUS = "active"


class EventStore:
    """Queries one session's view of the event store.

    Args:
        session: Open async session; the caller owns its lifecycle.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_active_tenant_ids(self) -> list[str]:
        """Ids of tenants with an active subscription, sorted."""
        result = await self._session.execute(
            select(Tenant.id)
            .where(Tenant.subscription_status == ACTIVE_STATUS)
            .order_by(Tenant.id)
        )
        return [str(tenant_id) for tenant_id in result.scalars().all()]

    async def list_students(self, tenant_id: str) -> list[StudentRecord]:
        """All students of a tenant."""
        result = await self._session.execute(
            select(Student.id, Student.name, Student.created_at)
            .where(Student.tenant_id == tenant_id)
            .order_by(Student.id)
        )
        return [
            StudentRecord(id=row.id, name=row.name, created_at=row.created_at)
            for row in result.all()
        ]

    async def list_events(
        self,
        tenant_id: str,
        event_types: Iterable[EventType],
        since: datetime | None = None,
    ) -> list[TypedEvent]:
        """Typed events of the given tags, oldest first.

        Args:
            tenant_id: Tenant to read.
            event_types: Tags to include.
            since: Inclusive lower bound on ``created_at``; None for all history.

        Returns:
            Events that passed validation; rejected rows are logged and dropped.
        """
        tags = sorted(t.value for t in event_types)
        if not tags:
            return []
        stmt = (
            select(Event.entity_id, Event.event_type, Event.payload, Event.created_at)
            .where(Event.tenant_id == tenant_id, Event.event_type.in_(tags))
            .order_by(Event.created_at, Event.id)
        )
        if since is not None:
            stmt = stmt.where(Event.created_at >= since)
        result = await self._session.execute(stmt)
        batch = parse_events(row._asdict() for row in result.all())
        if batch.rejected:
            logger.warning(
                "Tenant %s: dropped %d malformed events", tenant_id, batch.rejected_count
            )
        return batch.events

    async def list_submissions(self, tenant_id: str, since: datetime) -> list[SubmissionRecord]:
        """Form submissions received at or after ``since``."""
        result = await self._session.execute(
            select(FormSubmission.id, FormSubmission.submitted_at)
            .where(FormSubmission.tenant_id == tenant_id, FormSubmission.submitted_at >= since)
            .order_by(FormSubmission.submitted_at.desc())
        )
        return [SubmissionRecord(id=str(row.id), submitted_at=row.submitted_at) for row in result.all()]

    async def list_insights(
        self, tenant_id: str, since: datetime, limit: int
    ) -> list[InsightRecord]:
        """Most recent insights created at or after ``since``, newest first."""
        result = await self._session.execute(
            select(Insight.title, Insight.content, Insight.insight_metadata, Insight.created_at)
            .where(Insight.tenant_id == tenant_id, Insight.created_at >= since)
            .order_by(Insight.created_at.desc())
            .limit(limit)
        )
        return [
            InsightRecord(
                title=row.title,
                content=row.content,
                metadata=row.insight_metadata,
                created_at=row.created_at,
            )
            for row in result.all()
        ]

    async def load_dataset(
        self,
        tenant_id: str,
        requirements: DataRequirements,
        now: datetime,
        insight_limit: int = 20,
    ) -> TenantDataset:
        """Load everything a set of metrics needs for one tenant.

        Args:
            tenant_id: Tenant to load.
            requirements: Combined needs of the metrics to compute.
            now: Evaluation instant the look-back windows are measured from.
            insight_limit: Maximum insights read.

        Returns:
            The tenant's dataset in canonical order.
        """
        students: list[StudentRecord] = []
        events: list[TypedEvent] = []
        if requirements.event_types:
            since = (
                now - timedelta(days=requirements.lookback_days)
                if requirements.lookback_days is not None
                else None
            )
            students = await self.list_students(tenant_id)
            events = await self.list_events(tenant_id, requirements.event_types, since)

        submissions: list[SubmissionRecord] = []
        insights: list[InsightRecord] = []
        if requirements.include_feedback:
            feedback_since = now - timedelta(days=requirements.feedback_days)
            submissions = await self.list_submissions(tenant_id, feedback_since)
            insights = await self.list_insights(tenant_id, feedback_since, insight_limit)

        logger.debug(
            "Loaded tenant %s: %d students, %d events, %d submissions, %d insights",
            tenant_id,
            len(students),
            len(events),
            len(submissions),
            len(insights),
        )
        return TenantDataset.build(
            tenant_id=tenant_id,
            students=students,
            events=events,
            submissions=submissions,
            insights=insights,
        )
