# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database migration runner.

Applies the revisions in :data:`MIGRATIONS` programmatically, without the
alembic CLI, tracking progress in the standard ``alembic_version`` table.

Example:
    from cohortlens.infrastructure.database.migrations.runner import run_migrations

    applied = await run_migrations(settings.db.url)
"""

import importlib
import logging
from typing import Any, Callable

from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

logger = logging.getLogger(__name__)

# Revisions in order (must be maintained manually)
MIGRATIONS = [
    "001_initial_schema",
]

_VERSIONS_PACKAGE = "cohortlens.infrastructure.database.migrations.versions"


class MigrationError(Exception):
    """Raised when a revision cannot be loaded or applied."""

    def __init__(self, revision: str, reason: str) -> None:
        self.revision = revision
        self.reason = reason
        super().__init__(f"Migration {revision} failed: {reason}")


async def run_migrations(
    db_url: str,
    target_revision: str | None = None,
) -> list[str]:
    """Apply pending migrations.

    Args:
        db_url: Database connection URL (asyncpg format).
        target_revision: Revision to stop at; None applies all pending.

    Returns:
        Revisions applied, in order.

    Raises:
        MigrationError: If a revision cannot be imported or has no upgrade().
    """
    engine = create_async_engine(db_url, echo=False)

    try:
        await _ensure_version_table(engine)
        current_version = await _get_current_version(engine)
        logger.info("Current migration version: %s", current_version or "None")

        pending = get_pending_migrations(current_version, target_revision)
        if not pending:
            logger.info("No pending migrations")
            return []

        logger.info("Applying %d migrations: %s", len(pending), ", ".join(pending))
        for revision in pending:
            await _apply_migration(engine, revision)
            logger.info("Applied migration: %s", revision)
        return pending
    finally:
        await engine.dispose()


async def _ensure_version_table(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.execute(
            text("""
                CREATE TABLE IF NOT EXISTS alembic_version (
                    version_num VARCHAR(128) NOT NULL,
                    CONSTRAINT alembic_version_pkc PRIMARY KEY (version_num)
                )
            """)
        )


async def _get_current_version(engine: AsyncEngine) -> str | None:
    async with engine.connect() as conn:
        result = await conn.execute(text("SELECT version_num FROM alembic_version LIMIT 1"))
        row = result.fetchone()
        return row[0] if row else None


def get_pending_migrations(
    current_version: str | None,
    target_revision: str | None = None,
) -> list[str]:
    """Revisions to apply to move from ``current_version`` to ``target_revision``.

    Unknown current or target revisions yield an empty list and a warning.
    """
    if current_version is None:
        start = 0
    elif current_version in MIGRATIONS:
        start = MIGRATIONS.index(current_version) + 1
    else:
        logger.warning("Current version %s not in known migrations list", current_version)
        return []

    if target_revision is None:
        end = len(MIGRATIONS)
    elif target_revision in MIGRATIONS:
        end = MIGRATIONS.index(target_revision) + 1
    else:
        logger.warning("Target revision %s not found", target_revision)
        return []

    return MIGRATIONS[start:end]


def load_upgrade(revision: str) -> Callable[[], None]:
    """Import a revision module and return its upgrade function.

    Raises:
        MigrationError: If the module is missing or defines no upgrade().
    """
    try:
        module = importlib.import_module(f"{_VERSIONS_PACKAGE}.{revision}")
    except ImportError as e:
        raise MigrationError(revision, f"cannot import: {e}") from e

    upgrade_fn = getattr(module, "upgrade", None)
    if upgrade_fn is None:
        raise MigrationError(revision, "no upgrade() function")
    return upgrade_fn


async def _apply_migration(engine: AsyncEngine, revision: str) -> None:
    upgrade_fn = load_upgrade(revision)

    async with engine.begin() as conn:
        await conn.run_sync(_run_upgrade_sync, upgrade_fn)
        await conn.execute(text("DELETE FROM alembic_version"))
        await conn.execute(
            text("INSERT INTO alembic_version (version_num) VALUES (:version)"),
            {"version": revision},
        )


def _run_upgrade_sync(connection: Connection, upgrade_fn: Callable[[], None]) -> None:
    """Run an upgrade function with alembic operations bound to ``connection``."""
    from alembic.operations import Operations
    from alembic.runtime.migration import MigrationContext

    context = MigrationContext.configure(connection)
    with context.begin_transaction():
        with Operations.context(context):
            upgrade_fn()


async def get_migration_status(db_url: str) -> dict[str, Any]:
    """Current version and pending revisions of a database."""
    engine = create_async_engine(db_url, echo=False)

    try:
        await _ensure_version_table(engine)
        current_version = await _get_current_version(engine)
        pending = get_pending_migrations(current_version)
        return {
            "current_version": current_version,
            "latest_version": MIGRATIONS[-1] if MIGRATIONS else None,
            "pending_count": len(pending),
            "pending_migrations": pending,
        }
    finally:
        await engine.dispose()
