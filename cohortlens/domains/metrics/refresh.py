# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tiered metrics refresh.

The :class:`MetricsRefresher` recomputes every metric of one refresh tier
for all active tenants and upserts the results into the metrics cache.

Per tenant:

1. The union of the tier's data needs is loaded once.
2. The tier's scorers run concurrently in worker threads.
3. Successful results are upserted in one transaction with
   ``expires_at = now + tier ttl``.

A failing scorer leaves only its own row untouched (stale). A failing load
or write leaves all of that tenant's rows untouched. Other tenants always
continue. Tenants are processed concurrently up to ``max_concurrency``.

Usage:
    from cohortlens.domains.metrics.refresh import MetricsRefresher

    refresher = MetricsRefresher(
        session_factory=get_session,
        tiers=load_tier_assignment(settings.refresh.tiers_path),
        settings=settings.scoring,
    )
    summary = await refresher.refresh_tier("medium")
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from cohortlens.core.config.settings import ScoringSettings
from cohortlens.domains.metrics.dataset import TenantDataset
from cohortlens.domains.metrics.registry import data_requirements, get_metric
from cohortlens.domains.metrics.schemas import MetricResult
from cohortlens.domains.metrics.stats import TENANT_SCOPE, RefreshStatsCollector
from cohortlens.domains.metrics.tiers import RefreshTier, TierAssignment
from cohortlens.domains.metrics.types import MetricType
from cohortlens.infrastructure.database.connection import SessionFactory
from cohortlens.infrastructure.database.event_store import EventStore
from cohortlens.infrastructure.database.metrics_cache import MetricsCacheRepository
from cohortlens.utils.datetime import to_iso, utc_now
from cohortlens.utils.logging import bind_context, get_logger, unbind_context

logger = get_logger(__name__)


class MetricComputationError(Exception):
    """A scorer failed for one tenant and metric.

    Attributes:
        tenant_id: Tenant being refreshed.
        metric_type: Metric whose scorer failed.
        original_error: The exception raised by the scorer.
    """

    def __init__(
        self,
        tenant_id: str,
        metric_type: MetricType,
        original_error: BaseException,
    ) -> None:
        self.tenant_id = tenant_id
        self.metric_type = metric_type
        self.original_error = original_error
        super().__init__(
            f"Failed to compute {metric_type.value} for tenant {tenant_id}: "
            f"{type(original_error).__name__}: {original_error}"
        )


@dataclass
class TenantRefreshResult:
    """Outcome of refreshing one tenant.

    Attributes:
        tenant_id: Tenant refreshed.
        written: Metric types upserted.
        failed: Metric types left untouched.
        error: Tenant-level error, if the whole tenant failed.
        metric_errors: Error text per failed metric type.
    """

    tenant_id: str
    written: list[MetricType] = field(default_factory=list)
    failed: list[MetricType] = field(default_factory=list)
    error: str | None = None
    metric_errors: dict[MetricType, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.error is None and not self.failed


@dataclass
class RefreshSummary:
    """Outcome of one tier invocation.

    Attributes:
        tier: Tier refreshed.
        started_at: Evaluation start.
        tenants_total: Tenants attempted.
        tenants_processed: Tenants with every metric written.
        tenants_failed: Tenants with at least one metric not written.
        metrics_written: Rows upserted.
        metrics_failed: Metrics left untouched.
        errors: One line per failure, prefixed with the tenant id.
        stats: Stats collector snapshot.
    """

    tier: str
    started_at: datetime
    tenants_total: int = 0
    tenants_processed: int = 0
    tenants_failed: int = 0
    metrics_written: int = 0
    metrics_failed: int = 0
    errors: list[str] = field(default_factory=list)
    stats: dict[str, Any] = field(default_factory=dict)

    def add(self, result: TenantRefreshResult) -> None:
        """Fold one tenant's outcome into the totals."""
        self.tenants_total += 1
        self.metrics_written += len(result.written)
        self.metrics_failed += len(result.failed)
        if result.succeeded:
            self.tenants_processed += 1
            return
        self.tenants_failed += 1
        if result.error is not None:
            self.errors.append(f"Tenant {result.tenant_id}: {result.error}")
        for metric, message in result.metric_errors.items():
            self.errors.append(f"Tenant {result.tenant_id} [{metric.value}]: {message}")

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation, returned by the background task."""
        return {
            "tier": self.tier,
            "started_at": to_iso(self.started_at),
            "tenants_total": self.tenants_total,
            "tenants_processed": self.tenants_processed,
            "tenants_failed": self.tenants_failed,
            "metrics_written": self.metrics_written,
            "metrics_failed": self.metrics_failed,
            "errors": self.errors,
            "stats": self.stats,
        }


class MetricsRefresher:
    """Recomputes and caches the metrics of a refresh tier.

    Attributes:
        tiers: Tier assignment.
        settings: Scoring thresholds passed to every scorer.
        stats: Collector receiving one outcome per tenant and metric.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        tiers: TierAssignment,
        settings: ScoringSettings,
        *,
        stats: RefreshStatsCollector | None = None,
        max_concurrency: int = 4,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the refresher.

        Args:
            session_factory: Returns a transactional session context manager
                that commits on success and rolls back on error.
            tiers: Tier assignment.
            settings: Scoring thresholds.
            stats: Collector for this invocation; a new one when omitted.
            max_concurrency: Tenants refreshed in parallel.
            clock: Source of "now".
        """
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be positive")
        self._session_factory = session_factory
        self.tiers = tiers
        self.settings = settings
        self.stats = stats if stats is not None else RefreshStatsCollector()
        self._max_concurrency = max_concurrency
        self._clock = clock

    async def list_tenants(self) -> list[str]:
        """Active tenant ids."""
        async with self._session_factory() as session:
            return await EventStore(session).list_active_tenant_ids()

    async def refresh_tier(self, tier_name: str) -> RefreshSummary:
        """Refresh every metric of ``tier_name`` for all active tenants.

        Args:
            tier_name: Configured tier name.

        Returns:
            Summary of the invocation.

        Raises:
            UnknownTierError: If the tier is not configured.
            DatabaseError: If the tenant list cannot be read.
        """
        tier = self.tiers.get(tier_name)
        bind_context(tier=tier.name)
        try:
            tenant_ids = await self.list_tenants()
            logger.info(
                "Refreshing tier %s (%s) for %d tenants",
                tier.name,
                ", ".join(m.value for m in tier.metrics),
                len(tenant_ids),
            )
            return await self._refresh_many(tier, tenant_ids)
        finally:
            unbind_context("tier")

    async def refresh_tenant(self, tier_name: str, tenant_id: str) -> RefreshSummary:
        """Refresh every metric of ``tier_name`` for a single tenant.

        Raises:
            UnknownTierError: If the tier is not configured.
        """
        tier = self.tiers.get(tier_name)
        bind_context(tier=tier.name)
        try:
            return await self._refresh_many(tier, [tenant_id])
        finally:
            unbind_context("tier")

    async def _refresh_many(self, tier: RefreshTier, tenant_ids: list[str]) -> RefreshSummary:
        summary = RefreshSummary(tier=tier.name, started_at=self._clock())
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def bounded(tenant_id: str) -> TenantRefreshResult:
            async with semaphore:
                return await self._refresh_tenant_isolated(tier, tenant_id)

        results = await asyncio.gather(*(bounded(t) for t in tenant_ids))
        for result in results:
            summary.add(result)
        summary.stats = self.stats.summary()

        logger.info(
            "Tier %s done: %d/%d tenants fully refreshed, %d metrics written, %d failed",
            tier.name,
            summary.tenants_processed,
            summary.tenants_total,
            summary.metrics_written,
            summary.metrics_failed,
        )
        return summary

    async def _refresh_tenant_isolated(
        self, tier: RefreshTier, tenant_id: str
    ) -> TenantRefreshResult:
        started = time.perf_counter()
        bind_context(tenant_id=tenant_id)
        try:
            return await self.refresh_tenant_metrics(tier, tenant_id)
        except Exception as e:
            logger.error(
                "Tenant %s: refresh of tier %s failed: %s",
                tenant_id,
                tier.name,
                e,
                exc_info=True,
            )
            self.stats.record(
                tenant_id,
                TENANT_SCOPE,
                duration_ms=(time.perf_counter() - started) * 1000,
                error=str(e),
            )
            return TenantRefreshResult(
                tenant_id=tenant_id,
                failed=list(tier.metrics),
                error=str(e),
            )
        finally:
            unbind_context("tenant_id")

    async def refresh_tenant_metrics(
        self, tier: RefreshTier, tenant_id: str
    ) -> TenantRefreshResult:
        """Load, score and upsert one tenant's metrics for ``tier``.

        Scorer failures are contained per metric. Load and write failures
        propagate to the caller.

        Raises:
            DatabaseError: If loading or writing fails.
        """
        now = self._clock()
        requirements = data_requirements(tier.metrics, self.settings)
        async with self._session_factory() as session:
            dataset = await EventStore(session).load_dataset(
                tenant_id, requirements, now, self.settings.feedback_insight_limit
            )

        outcomes = await asyncio.gather(
            *(self._compute(metric, dataset, now) for metric in tier.metrics)
        )

        result = TenantRefreshResult(tenant_id=tenant_id)
        successes: list[tuple[MetricType, MetricResult]] = []
        for metric, value in zip(tier.metrics, outcomes):
            if isinstance(value, MetricComputationError):
                result.failed.append(metric)
                result.metric_errors[metric] = str(value.original_error)
            else:
                successes.append((metric, value))

        if successes:
            expires_at = now + tier.ttl
            metadata = {"tier": tier.name, "calculated_at": to_iso(now)}
            async with self._session_factory() as session:
                cache = MetricsCacheRepository(session)
                for metric, value in successes:
                    await cache.upsert(
                        tenant_id,
                        metric,
                        value.to_metric_data(),
                        calculated_at=now,
                        expires_at=expires_at,
                        metadata=metadata,
                    )
            result.written = [metric for metric, _ in successes]

        logger.debug(
            "Tenant %s: wrote %s, failed %s",
            tenant_id,
            [m.value for m in result.written],
            [m.value for m in result.failed],
        )
        return result

    async def _compute(
        self,
        metric: MetricType,
        dataset: TenantDataset,
        now: datetime,
    ) -> MetricResult | MetricComputationError:
        definition = get_metric(metric)
        started = time.perf_counter()
        try:
            value = await asyncio.to_thread(definition.run, dataset, now, self.settings)
        except Exception as e:
            error = MetricComputationError(dataset.tenant_id, metric, e)
            logger.error("%s", error, exc_info=True)
            self.stats.record(
                dataset.tenant_id,
                metric,
                duration_ms=(time.perf_counter() - started) * 1000,
                error=str(e),
            )
            return error
        self.stats.record(
            dataset.tenant_id,
            metric,
            duration_ms=(time.perf_counter() - started) * 1000,
        )
        return value
