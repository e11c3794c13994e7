# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tables read and written by the metrics refresh.

``events``, ``students``, ``form_submissions`` and ``insights`` are written
by the ingestion and survey services and only read here. ``cached_metrics``
is written exclusively by the refresh, one row per (tenant, metric type).
"""

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from cohortlens.infrastructure.database.models.base import (
    Base,
    created_at_column,
    tenant_fk,
    uuid_pk,
)


class Tenant(Base):
    """A course creator account; the isolation boundary for all data."""

    __tablename__ = "tenants"

    id: Mapped[str] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    subscription_status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="active", index=True
    )
    created_at: Mapped[datetime] = created_at_column()


class Student(Base):
    """A learner belonging to one tenant."""

    __tablename__ = "students"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    tenant_id: Mapped[str] = tenant_fk()
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = created_at_column()


class Event(Base):
    """Append-only platform event."""

    __tablename__ = "events"
    __table_args__ = (
        Index("ix_events_tenant_type_created", "tenant_id", "event_type", "created_at"),
    )

    id: Mapped[str] = uuid_pk()
    tenant_id: Mapped[str] = tenant_fk()
    entity_id: Mapped[str | None] = mapped_column(
        String(128), ForeignKey("students.id", ondelete="SET NULL"), nullable=True
    )
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)
    created_at: Mapped[datetime] = created_at_column()


class CachedMetric(Base):
    """Last computed value of one metric for one tenant."""

    __tablename__ = "cached_metrics"
    __table_args__ = (
        UniqueConstraint("tenant_id", "metric_type", name="uq_cached_metrics_tenant_metric"),
    )

    id: Mapped[str] = uuid_pk()
    tenant_id: Mapped[str] = tenant_fk()
    metric_type: Mapped[str] = mapped_column(String(64), nullable=False)
    metric_data: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    calculated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # "metadata" is reserved on declarative classes
    extra_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSONB, nullable=False, default=dict
    )


class FormSubmission(Base):
    """A survey response."""

    __tablename__ = "form_submissions"

    id: Mapped[str] = uuid_pk()
    tenant_id: Mapped[str] = tenant_fk()
    responses: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)
    submitted_at: Mapped[datetime] = created_at_column()


class Insight(Base):
    """A generated insight about a tenant's feedback."""

    __tablename__ = "insights"

    id: Mapped[str] = uuid_pk()
    tenant_id: Mapped[str] = tenant_fk()
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    insight_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSONB, nullable=False, default=dict
    )
    created_at: Mapped[datetime] = created_at_column()
