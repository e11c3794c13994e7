# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Typed events and students consumed by the scorers.

Raw event-store rows carry a free-form ``payload`` map. This module is the
ingestion boundary: each row is validated into one variant of a closed
tagged union keyed on ``event_type``. A variant carries only the fields the
scorers read (``entity_id``, ``created_at``, ``experience_id``, ``action``).
Rows with an unknown tag or a malformed shape are rejected here, logged,
and counted, so scorers never check for optional payload keys.

Example:
    >>> batch = parse_events([
    ...     {"event_type": "activity", "entity_id": "s1",
    ...      "created_at": "2025-01-01T10:00:00Z",
    ...      "payload": {"experience_id": "intro_video"}},
    ...     {"event_type": "order", "entity_id": "s1",
    ...      "created_at": "2025-01-01T10:00:00Z", "payload": {}},
    ... ])
    >>> len(batch.events), batch.rejected_count
    (1, 1)
"""

import logging
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

from cohortlens.utils.datetime import ensure_utc

logger = logging.getLogger(__name__)


class _EventBase(BaseModel):
    """Fields shared by every event variant."""

    model_config = ConfigDict(frozen=True, extra="ignore", coerce_numbers_to_str=True)

    entity_id: str | None = None
    created_at: datetime
    experience_id: str | None = None
    action: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _lift_payload(cls, data: Any) -> Any:
        """Copy the payload keys scorers read onto the event itself."""
        if not isinstance(data, Mapping):
            return data
        payload = data.get("payload")
        if payload is None:
            return data
        if not isinstance(payload, Mapping):
            raise ValueError("payload must be a mapping")
        lifted = dict(data)
        for key in ("experience_id", "action"):
            if lifted.get(key) is None and payload.get(key) is not None:
                lifted[key] = payload[key]
        return lifted

    @field_validator("entity_id", "experience_id", "action", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("created_at")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @property
    def experience_key(self) -> str | None:
        """Experience identifier, falling back to the action name."""
        return self.experience_id or self.action


class ActivityEvent(_EventBase):
    """A learner did something inside a content experience."""

    event_type: Literal["activity"] = "activity"


class EngagementEvent(_EventBase):
    """A learner interacted with community or content."""

    event_type: Literal["engagement"] = "engagement"


class EnrollmentEvent(_EventBase):
    """A learner enrolled in a course."""

    event_type: Literal["course_enrollment"] = "course_enrollment"


class SubscriptionEvent(_EventBase):
    """A learner's subscription changed."""

    event_type: Literal["subscription"] = "subscription"


Event = Annotated[
    ActivityEvent | EngagementEvent | EnrollmentEvent | SubscriptionEvent,
    Field(discriminator="event_type"),
]

_event_adapter: TypeAdapter[Event] = TypeAdapter(Event)


class StudentRecord(BaseModel):
    """A student (entity) of one tenant."""

    model_config = ConfigDict(frozen=True, extra="ignore", coerce_numbers_to_str=True)

    id: str
    created_at: datetime
    name: str | None = None

    @field_validator("created_at")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @property
    def display_name(self) -> str:
        """Name for display, with a short-id fallback."""
        return self.name or f"Student {self.id[:8]}"


@dataclass
class EventBatch:
    """Result of validating a sequence of raw event rows.

    Attributes:
        events: Accepted events, in input order.
        rejected: Rejection counts keyed by reason.
    """

    events: list[Event] = field(default_factory=list)
    rejected: Counter[str] = field(default_factory=Counter)

    @property
    def rejected_count(self) -> int:
        """Total number of rejected rows."""
        return sum(self.rejected.values())


def _rejection_reason(error: ValidationError) -> str:
    first = error.errors()[0]
    if first["type"] == "union_tag_invalid":
        return "unknown_event_type"
    if first["type"] == "union_tag_not_found":
        return "missing_event_type"
    location = ".".join(str(part) for part in first["loc"][1:]) or "event"
    return f"invalid_{location}"


def parse_event(row: Mapping[str, Any]) -> Event:
    """Validate one raw row into a typed event.

    Args:
        row: Mapping with ``event_type``, ``entity_id``, ``created_at`` and
            an optional ``payload`` map.

    Returns:
        The matching event variant.

    Raises:
        pydantic.ValidationError: If the tag is unknown or the shape invalid.
    """
    return _event_adapter.validate_python(row)


def parse_events(rows: Iterable[Mapping[str, Any]]) -> EventBatch:
    """Validate raw rows, dropping and counting the ones that do not fit.

    Args:
        rows: Raw event-store rows.

    Returns:
        EventBatch with accepted events and rejection counts.
    """
    batch = EventBatch()
    for row in rows:
        try:
            batch.events.append(parse_event(row))
        except ValidationError as e:
            batch.rejected[_rejection_reason(e)] += 1
    if batch.rejected:
        logger.warning(
            "Rejected %d event rows at ingestion: %s",
            batch.rejected_count,
            dict(batch.rejected),
        )
    return batch
