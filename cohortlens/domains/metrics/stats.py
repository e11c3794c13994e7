# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Per-run refresh statistics.

A :class:`RefreshStatsCollector` is created for one refresh invocation and
passed to the refresher explicitly. It keeps the most recent outcomes in a
bounded ring buffer (older entries are evicted once ``capacity`` is
reached) while running totals keep counting every outcome.

Example:
    >>> stats = RefreshStatsCollector(capacity=2)
    >>> stats.record("t1", MetricType.COMMITMENT, duration_ms=12.5)
    >>> stats.record("t2", MetricType.COMMITMENT, duration_ms=8.0, error="boom")
    >>> stats.summary()["failed"]
    1
"""

from collections import defaultdict, deque
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from cohortlens.domains.metrics.types import MetricType
from cohortlens.utils.datetime import utc_now

# Pseudo metric for failures that happen before any scorer runs.
TENANT_SCOPE = "tenant"


@dataclass(frozen=True)
class MetricOutcome:
    """Outcome of refreshing one metric (or one whole tenant) once.

    Attributes:
        tenant_id: Tenant refreshed.
        metric: Metric type value, or ``"tenant"`` for tenant-wide failures.
        duration_ms: Wall time spent.
        error: Error description when the refresh failed.
        recorded_at: When the outcome was recorded.
    """

    tenant_id: str
    metric: str
    duration_ms: float
    error: str | None
    recorded_at: datetime

    @property
    def succeeded(self) -> bool:
        return self.error is None


class RefreshStatsCollector:
    """Bounded collector of refresh outcomes for one invocation."""

    def __init__(self, capacity: int = 500) -> None:
        """Initialize the collector.

        Args:
            capacity: Maximum outcomes retained; must be positive.

        Raises:
            ValueError: If capacity is not positive.
        """
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._outcomes: deque[MetricOutcome] = deque(maxlen=capacity)
        self._recorded = 0
        self._failed = 0
        self._per_metric: dict[str, dict[str, float]] = defaultdict(
            lambda: {"succeeded": 0, "failed": 0, "total_ms": 0.0}
        )

    def record(
        self,
        tenant_id: str,
        metric: MetricType | str,
        duration_ms: float,
        error: str | None = None,
    ) -> MetricOutcome:
        """Record one outcome."""
        name = metric.value if isinstance(metric, MetricType) else metric
        outcome = MetricOutcome(
            tenant_id=tenant_id,
            metric=name,
            duration_ms=duration_ms,
            error=error,
            recorded_at=utc_now(),
        )
        self._outcomes.append(outcome)
        self._recorded += 1
        bucket = self._per_metric[name]
        bucket["total_ms"] += duration_ms
        if error is None:
            bucket["succeeded"] += 1
        else:
            bucket["failed"] += 1
            self._failed += 1
        return outcome

    @property
    def outcomes(self) -> list[MetricOutcome]:
        """Retained outcomes, oldest first."""
        return list(self._outcomes)

    @property
    def evicted(self) -> int:
        """Outcomes dropped from the buffer."""
        return self._recorded - len(self._outcomes)

    def failures(self) -> list[MetricOutcome]:
        """Retained failed outcomes."""
        return [o for o in self._outcomes if not o.succeeded]

    def summary(self, slowest: int = 5) -> dict[str, Any]:
        """Snapshot of the collected statistics.

        Args:
            slowest: Number of slowest retained outcomes to include.

        Returns:
            Totals, per-metric counts and average durations, and the
            slowest retained outcomes.
        """
        per_metric = {
            name: {
                "succeeded": int(b["succeeded"]),
                "failed": int(b["failed"]),
                "avg_duration_ms": round(b["total_ms"] / (b["succeeded"] + b["failed"]), 2),
            }
            for name, b in sorted(self._per_metric.items())
        }
        ranked = sorted(self._outcomes, key=lambda o: o.duration_ms, reverse=True)
        return {
            "recorded": self._recorded,
            "retained": len(self._outcomes),
            "evicted": self.evicted,
            "succeeded": self._recorded - self._failed,
            "failed": self._failed,
            "per_metric": per_metric,
            "slowest": [
                {"tenant_id": o.tenant_id, "metric": o.metric, "duration_ms": round(o.duration_ms, 2)}
                for o in ranked[:slowest]
            ],
        }
