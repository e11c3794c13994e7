# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background task actors.

Usage:
    from cohortlens.infrastructure.background.tasks import refresh_tier_metrics

    refresh_tier_metrics.send("light")

Running Workers:
    dramatiq cohortlens.infrastructure.background.tasks --processes 2 --threads 4
"""

from cohortlens.infrastructure.background.tasks.base import run_async
from cohortlens.infrastructure.background.tasks.metrics_refresh import (
    build_refresher,
    get_metrics_refresh_actors,
    refresh_tenant_metrics,
    refresh_tier_metrics,
)

__all__ = [
    "build_refresher",
    "get_all_actors",
    "refresh_tenant_metrics",
    "refresh_tier_metrics",
    "run_async",
]


def get_all_actors() -> list:
    """Get list of all defined actors."""
    return list(get_metrics_refresh_actors())
