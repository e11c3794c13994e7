# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Metrics cache repository.

One row per ``(tenant_id, metric_type)``. Rows are only ever upserted:
writing a metric replaces its previous value and no history is kept. A row
past its ``expires_at`` is stale but stays in place; whoever reads it
decides whether stale data is acceptable.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import Insert, insert
from sqlalchemy.ext.asyncio import AsyncSession

from cohortlens.domains.metrics.types import MetricType
from cohortlens.infrastructure.database.models import CachedMetric
from cohortlens.utils.datetime import ensure_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedMetricRow:
    """A cached metric as read back from the store."""

    tenant_id: str
    metric_type: MetricType
    metric_data: dict[str, Any]
    calculated_at: datetime
    expires_at: datetime
    metadata: dict[str, Any]

    def is_stale(self, now: datetime) -> bool:
        """Whether the row has outlived its TTL at ``now``."""
        return ensure_utc(now) > self.expires_at


def build_upsert(
    tenant_id: str,
    metric_type: MetricType,
    metric_data: dict[str, Any],
    calculated_at: datetime,
    expires_at: datetime,
    metadata: dict[str, Any] | None = None,
) -> Insert:
    """``INSERT ... ON CONFLICT (tenant_id, metric_type) DO UPDATE`` statement."""
    table = CachedMetric.__table__
    stmt = insert(table).values(
        tenant_id=tenant_id,
        metric_type=metric_type.value,
        metric_data=metric_data,
        calculated_at=calculated_at,
        expires_at=expires_at,
        metadata=metadata or {},
    )
    return stmt.on_conflict_do_update(
        index_elements=[table.c.tenant_id, table.c.metric_type],
        set_={
            "metric_data": stmt.excluded.metric_data,
            "calculated_at": stmt.excluded.calculated_at,
            "expires_at": stmt.excluded.expires_at,
            "metadata": stmt.excluded["metadata"],
        },
    )


class MetricsCacheRepository:
    """Reads and upserts cached metric rows within a session."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def upsert(
        self,
        tenant_id: str,
        metric_type: MetricType,
        metric_data: dict[str, Any],
        calculated_at: datetime,
        expires_at: datetime,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Write a metric, replacing any previous value.

        The statement runs in the caller's transaction; committing is the
        caller's responsibility.
        """
        await self._session.execute(
            build_upsert(tenant_id, metric_type, metric_data, calculated_at, expires_at, metadata)
        )
        logger.debug(
            "Upserted %s for tenant %s (expires %s)",
            metric_type.value,
            tenant_id,
            expires_at.isoformat(),
        )

    async def get(self, tenant_id: str, metric_type: MetricType) -> CachedMetricRow | None:
        """Read a cached metric, stale or not.

        Returns:
            The row, or None if the metric was never computed for the tenant.
        """
        result = await self._session.execute(
            select(CachedMetric).where(
                CachedMetric.tenant_id == tenant_id,
                CachedMetric.metric_type == metric_type.value,
            )
        )
        row = result.scalar_one_or_none()
        return _to_row(row) if row is not None else None

    async def list_for_tenant(self, tenant_id: str) -> list[CachedMetricRow]:
        """All cached metrics of a tenant, ordered by metric type."""
        result = await self._session.execute(
            select(CachedMetric)
            .where(CachedMetric.tenant_id == tenant_id)
            .order_by(CachedMetric.metric_type)
        )
        return [_to_row(row) for row in result.scalars().all()]


def _to_row(row: CachedMetric) -> CachedMetricRow:
    return CachedMetricRow(
        tenant_id=str(row.tenant_id),
        metric_type=MetricType(row.metric_type),
        metric_data=row.metric_data,
        calculated_at=ensure_utc(row.calculated_at),
        expires_at=ensure_utc(row.expires_at),
        metadata=dict(row.extra_metadata or {}),
    )
