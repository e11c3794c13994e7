# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Metrics refresh actors.

One message refreshes one tier, either for every active tenant or for a
single tenant. The scheduler sends a ``refresh_tier_metrics`` message per
tier on the tier's interval.

Actors:
    - refresh_tier_metrics: Refresh a tier for all active tenants
    - refresh_tenant_metrics: Refresh a tier for one tenant
"""

import logging
from typing import Any

import dramatiq

from cohortlens.core.config import get_settings
from cohortlens.domains.metrics.refresh import MetricsRefresher
from cohortlens.domains.metrics.stats import RefreshStatsCollector
from cohortlens.domains.metrics.tiers import UnknownTierError, load_tier_assignment
from cohortlens.infrastructure.background.broker import Priority, Queues, setup_dramatiq
from cohortlens.infrastructure.background.tasks.base import run_async
from cohortlens.infrastructure.database.connection import get_worker_session
from cohortlens.utils.logging import clear_context

setup_dramatiq()

logger = logging.getLogger(__name__)


def build_refresher() -> MetricsRefresher:
    """Refresher wired to the worker thread's sessions and current settings.

    Each invocation gets its own stats collector, so a summary only covers
    the run that produced it.
    """
    settings = get_settings()
    return MetricsRefresher(
        session_factory=get_worker_session,
        tiers=load_tier_assignment(settings.refresh.tiers_path),
        settings=settings.scoring,
        stats=RefreshStatsCollector(capacity=settings.refresh.stats_capacity),
        max_concurrency=settings.refresh.max_concurrency,
    )


@dramatiq.actor(
    queue_name=Queues.METRICS,
    max_retries=2,
    time_limit=1800000,  # 30 minutes
    priority=Priority.NORMAL,
)
def refresh_tier_metrics(tier: str) -> dict[str, Any]:
    """Refresh every metric of a tier for all active tenants.

    Args:
        tier: Configured tier name (``light``, ``medium``, ``heavy``).

    Returns:
        Run summary. An unknown tier yields ``{"status": "failed"}`` without
        retrying; database errors while listing tenants propagate so that
        Dramatiq retries the message.
    """
    logger.info("Refreshing metrics tier: %s", tier)

    async def _process() -> dict[str, Any]:
        summary = await build_refresher().refresh_tier(tier)
        return summary.to_dict()

    try:
        result = run_async(_process())
    except UnknownTierError as e:
        logger.error("Refresh rejected: %s", e)
        return {"status": "failed", "tier": tier, "error": str(e)}
    finally:
        clear_context()

    logger.info(
        "Tier %s refreshed: %d tenants ok, %d failed",
        tier,
        result["tenants_processed"],
        result["tenants_failed"],
    )
    return result


@dramatiq.actor(
    queue_name=Queues.METRICS,
    max_retries=2,
    time_limit=600000,  # 10 minutes
    priority=Priority.HIGH,
)
def refresh_tenant_metrics(tenant_id: str, tier: str) -> dict[str, Any]:
    """Refresh every metric of a tier for one tenant.

    Args:
        tenant_id: Tenant to refresh.
        tier: Configured tier name.

    Returns:
        Run summary covering the single tenant.
    """
    logger.info("Refreshing tier %s for tenant %s", tier, tenant_id)

    async def _process() -> dict[str, Any]:
        summary = await build_refresher().refresh_tenant(tier, tenant_id)
        return summary.to_dict()

    try:
        return run_async(_process())
    except UnknownTierError as e:
        logger.error("Refresh rejected: %s", e)
        return {"status": "failed", "tier": tier, "tenant_id": tenant_id, "error": str(e)}
    finally:
        clear_context()


def get_metrics_refresh_actors() -> list:
    """Get all metrics refresh actors."""
    return [refresh_tier_metrics, refresh_tenant_metrics]
