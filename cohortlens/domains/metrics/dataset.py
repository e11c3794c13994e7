# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""In-memory snapshot of one tenant's scorer inputs."""

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cohortlens.domains.metrics.events import Event, StudentRecord
from cohortlens.domains.metrics.types import EventType
from cohortlens.utils.datetime import ensure_utc


class SubmissionRecord(BaseModel):
    """A survey form submission."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str | None = None
    submitted_at: datetime

    @field_validator("submitted_at")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class InsightRecord(BaseModel):
    """A generated insight about a tenant's feedback."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    title: str | None = None
    content: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    @field_validator("metadata", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("created_at")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


@dataclass(frozen=True)
class TenantDataset:
    """Everything the scorers of one refresh read for a tenant.

    Events are held in chronological order (ties broken by entity id) so
    scorers see the same sequence regardless of how the store returned them.

    Attributes:
        tenant_id: Tenant the data belongs to.
        students: Students of the tenant.
        events: Qualifying events, oldest first.
        submissions: Survey submissions in the feedback window.
        insights: Insights in the feedback window, newest first.
    """

    tenant_id: str
    students: tuple[StudentRecord, ...] = ()
    events: tuple[Event, ...] = ()
    submissions: tuple[SubmissionRecord, ...] = ()
    insights: tuple[InsightRecord, ...] = ()

    @classmethod
    def build(
        cls,
        tenant_id: str,
        students: Iterable[StudentRecord] = (),
        events: Iterable[Event] = (),
        submissions: Iterable[SubmissionRecord] = (),
        insights: Iterable[InsightRecord] = (),
    ) -> "TenantDataset":
        """Create a dataset with students, events and insights in canonical order."""
        return cls(
            tenant_id=tenant_id,
            students=tuple(sorted(students, key=lambda s: s.id)),
            events=tuple(sorted(events, key=event_sort_key)),
            submissions=tuple(sorted(submissions, key=lambda s: s.submitted_at)),
            insights=tuple(
                sorted(insights, key=lambda i: (i.created_at, i.title or ""), reverse=True)
            ),
        )

    def events_of_types(self, event_types: frozenset[EventType]) -> list[Event]:
        """Events whose tag is in ``event_types``, oldest first."""
        wanted = {t.value for t in event_types}
        return [e for e in self.events if e.event_type in wanted]


def event_sort_key(event: Event) -> tuple[datetime, str, str, str]:
    """Chronological sort key with deterministic tie-breaks."""
    return (
        event.created_at,
        event.entity_id or "",
        event.event_type,
        event.experience_key or "",
    )


def group_by_student(events: Iterable[Event]) -> dict[str, list[Event]]:
    """Group events by entity id, oldest first, skipping anonymous ones.

    Students appear in id order so the result does not depend on how the
    input was ordered.
    """
    grouped: dict[str, list[Event]] = defaultdict(list)
    for event in events:
        if event.entity_id is not None:
            grouped[event.entity_id].append(event)
    return {
        entity_id: sorted(grouped[entity_id], key=event_sort_key)
        for entity_id in sorted(grouped)
    }
