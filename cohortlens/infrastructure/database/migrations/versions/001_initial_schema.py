# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Initial metrics schema.

Revision ID: 001_initial_schema
Revises: None
Create Date: 2025-06-02
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=False),
        server_default=sa.text("gen_random_uuid()"),
        primary_key=True,
    )


def _tenant_fk() -> sa.Column:
    return sa.Column(
        "tenant_id",
        postgresql.UUID(as_uuid=False),
        sa.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("now()"),
    )


def upgrade() -> None:
    """Create metrics tables."""
    op.create_table(
        "tenants",
        _uuid_pk(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column(
            "subscription_status", sa.String(32), nullable=False, server_default="active"
        ),
        _timestamp("created_at"),
    )
    op.create_index("ix_tenants_subscription_status", "tenants", ["subscription_status"])

    op.create_table(
        "students",
        sa.Column("id", sa.String(128), primary_key=True),
        _tenant_fk(),
        sa.Column("name", sa.String(255), nullable=True),
        _timestamp("created_at"),
    )
    op.create_index("ix_students_tenant_id", "students", ["tenant_id"])

    op.create_table(
        "events",
        _uuid_pk(),
        _tenant_fk(),
        sa.Column(
            "entity_id",
            sa.String(128),
            sa.ForeignKey("students.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column(
            "payload",
            postgresql.JSONB,
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        _timestamp("created_at"),
    )
    op.create_index("ix_events_tenant_id", "events", ["tenant_id"])
    op.create_index(
        "ix_events_tenant_type_created", "events", ["tenant_id", "event_type", "created_at"]
    )

    op.create_table(
        "cached_metrics",
        _uuid_pk(),
        _tenant_fk(),
        sa.Column("metric_type", sa.String(64), nullable=False),
        sa.Column("metric_data", postgresql.JSONB, nullable=False),
        sa.Column("calculated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "metadata",
            postgresql.JSONB,
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.UniqueConstraint(
            "tenant_id", "metric_type", name="uq_cached_metrics_tenant_metric"
        ),
        sa.CheckConstraint(
            "metric_type IN ('commitment', 'consistency', 'aha_moments', "
            "'content_pathways', 'popular_content_daily', 'feedback_themes')",
            name="ck_cached_metrics_metric_type",
        ),
    )
    op.create_index("ix_cached_metrics_tenant_id", "cached_metrics", ["tenant_id"])

    op.create_table(
        "form_submissions",
        _uuid_pk(),
        _tenant_fk(),
        sa.Column(
            "responses",
            postgresql.JSONB,
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        _timestamp("submitted_at"),
    )
    op.create_index(
        "ix_form_submissions_tenant_submitted", "form_submissions", ["tenant_id", "submitted_at"]
    )

    op.create_table(
        "insights",
        _uuid_pk(),
        _tenant_fk(),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("content", sa.Text, nullable=True),
        sa.Column(
            "metadata",
            postgresql.JSONB,
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        _timestamp("created_at"),
    )
    op.create_index("ix_insights_tenant_created", "insights", ["tenant_id", "created_at"])


def downgrade() -> None:
    """Drop metrics tables."""
    # Reverse order for foreign keys
    op.drop_table("insights")
    op.drop_table("form_submissions")
    op.drop_table("cached_metrics")
    op.drop_table("events")
    op.drop_table("students")
    op.drop_table("tenants")
