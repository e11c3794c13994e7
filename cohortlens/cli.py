# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Command line entry points.

    cohortlens migrate                 apply pending schema migrations
    cohortlens refresh medium          refresh a tier in-process
    cohortlens refresh heavy --tenant <id>
    cohortlens enqueue light           send a refresh message to the workers
    cohortlens scheduler               run the tier scheduler until interrupted
    cohortlens tiers                   print the tier assignment
    cohortlens status                  database, migration and queue health

Workers are started with the Dramatiq CLI:
    dramatiq cohortlens.infrastructure.background.tasks
"""

import asyncio
import json
import logging

import typer

from cohortlens.core.config import get_settings
from cohortlens.utils.logging import setup_logging

app = typer.Typer(help="Engagement metrics refresh pipeline.")

logger = logging.getLogger(__name__)


@app.callback()
def main() -> None:
    setup_logging(get_settings())


@app.command()
def migrate(
    target: str | None = typer.Option(None, "--target", help="Revision to stop at."),
) -> None:
    """Apply pending database migrations."""
    from cohortlens.infrastructure.database.migrations.runner import run_migrations

    applied = asyncio.run(run_migrations(get_settings().db.url, target))
    typer.echo(f"Applied {len(applied)} migrations" + (f": {', '.join(applied)}" if applied else ""))


@app.command()
def refresh(
    tier: str = typer.Argument(..., help="Tier name from the tier file."),
    tenant: str | None = typer.Option(None, "--tenant", help="Refresh a single tenant."),
) -> None:
    """Refresh a tier in this process and print the run summary."""
    from cohortlens.domains.metrics.tiers import UnknownTierError

    try:
        summary = asyncio.run(_refresh(tier, tenant))
    except UnknownTierError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=2) from e
    typer.echo(json.dumps(summary, indent=2))
    if summary["tenants_failed"]:
        raise typer.Exit(code=1)


async def _refresh(tier: str, tenant: str | None) -> dict:
    from cohortlens.domains.metrics.refresh import MetricsRefresher
    from cohortlens.domains.metrics.stats import RefreshStatsCollector
    from cohortlens.domains.metrics.tiers import load_tier_assignment
    from cohortlens.infrastructure.database import close_database, get_session, init_database

    settings = get_settings()
    await init_database(settings)
    try:
        refresher = MetricsRefresher(
            session_factory=get_session,
            tiers=load_tier_assignment(settings.refresh.tiers_path),
            settings=settings.scoring,
            stats=RefreshStatsCollector(capacity=settings.refresh.stats_capacity),
            max_concurrency=settings.refresh.max_concurrency,
        )
        if tenant is None:
            summary = await refresher.refresh_tier(tier)
        else:
            summary = await refresher.refresh_tenant(tier, tenant)
        return summary.to_dict()
    finally:
        await close_database()


@app.command()
def enqueue(
    tier: str = typer.Argument(..., help="Tier name from the tier file."),
    tenant: str | None = typer.Option(None, "--tenant", help="Refresh a single tenant."),
) -> None:
    """Send a refresh message to the worker queue."""
    from cohortlens.domains.metrics.tiers import UnknownTierError, load_tier_assignment
    from cohortlens.infrastructure.background.tasks import (
        refresh_tenant_metrics,
        refresh_tier_metrics,
    )

    try:
        load_tier_assignment(get_settings().refresh.tiers_path).get(tier)
    except UnknownTierError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=2) from e

    if tenant is None:
        message = refresh_tier_metrics.send(tier)
    else:
        message = refresh_tenant_metrics.send(tenant, tier)
    typer.echo(f"Enqueued {message.actor_name} ({message.message_id})")


@app.command()
def scheduler() -> None:
    """Send one refresh message per tier interval until interrupted."""
    try:
        asyncio.run(_run_scheduler())
    except KeyboardInterrupt:
        logger.info("Scheduler interrupted")


async def _run_scheduler() -> None:
    from cohortlens.infrastructure.background import (
        setup_dramatiq,
        shutdown_dramatiq,
        start_scheduler,
        stop_scheduler,
    )

    setup_dramatiq()
    await start_scheduler()
    try:
        await asyncio.Event().wait()
    finally:
        await stop_scheduler()
        shutdown_dramatiq()


@app.command()
def tiers() -> None:
    """Print the configured tier assignment."""
    from cohortlens.domains.metrics.tiers import load_tier_assignment

    assignment = load_tier_assignment(get_settings().refresh.tiers_path)
    for tier in assignment.tiers.values():
        typer.echo(
            f"{tier.name}: every {tier.interval_minutes}m, ttl {tier.ttl_minutes}m, "
            f"metrics {', '.join(m.value for m in tier.metrics)}"
        )


@app.command()
def status() -> None:
    """Print database reachability, migration state and queue depths."""
    from cohortlens.infrastructure.background import get_broker_manager

    report = asyncio.run(_status())
    manager = get_broker_manager()
    if not manager.is_initialized:
        manager.setup()
    report["queues"] = manager.get_queue_stats()
    typer.echo(json.dumps(report, indent=2))
    if not report["database"]["reachable"] or report["queues"].get("status") != "healthy":
        raise typer.Exit(code=1)


async def _status() -> dict:
    from cohortlens.infrastructure.database import (
        check_database_connection,
        close_database,
        init_database,
    )
    from cohortlens.infrastructure.database.migrations.runner import get_migration_status

    settings = get_settings()
    await init_database(settings)
    try:
        reachable = await check_database_connection()
    finally:
        await close_database()

    report: dict = {"database": {"reachable": reachable}}
    if reachable:
        report["migrations"] = await get_migration_status(settings.db.url)
    return report


if __name__ == "__main__":
    app()
