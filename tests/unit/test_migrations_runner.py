# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the migration runner."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from cohortlens.infrastructure.database.migrations.runner import (
    MIGRATIONS,
    MigrationError,
    get_migration_status,
    get_pending_migrations,
    load_upgrade,
)

RUNNER = "cohortlens.infrastructure.database.migrations.runner"


class TestGetPendingMigrations:
    """Tests for pending revision resolution."""

    def test_fresh_database_gets_everything(self) -> None:
        """Test that no current version means all revisions."""
        assert get_pending_migrations(None) == MIGRATIONS

    def test_up_to_date(self) -> None:
        """Test that the latest version has nothing pending."""
        assert get_pending_migrations(MIGRATIONS[-1]) == []

    def test_unknown_current_version(self) -> None:
        """Test that an unknown version applies nothing."""
        assert get_pending_migrations("999_future") == []

    def test_unknown_target(self) -> None:
        """Test that an unknown target applies nothing."""
        assert get_pending_migrations(None, "999_future") == []

    def test_target_is_inclusive(self) -> None:
        """Test stopping at the target revision."""
        assert get_pending_migrations(None, MIGRATIONS[0]) == MIGRATIONS[:1]


class TestLoadUpgrade:
    """Tests for revision loading."""

    def test_initial_schema_has_upgrade(self) -> None:
        """Test that the first revision is importable."""
        assert callable(load_upgrade("001_initial_schema"))

    def test_missing_revision(self) -> None:
        """Test that a missing module raises MigrationError."""
        with pytest.raises(MigrationError) as exc_info:
            load_upgrade("000_missing")

        assert exc_info.value.revision == "000_missing"


class TestGetMigrationStatus:
    """Tests for the migration status report."""

    @pytest.mark.asyncio
    async def test_fresh_database_reports_all_pending(self) -> None:
        """Test the report for a database without a version row."""
        engine = MagicMock()
        engine.dispose = AsyncMock()

        with (
            patch(f"{RUNNER}.create_async_engine", return_value=engine),
            patch(f"{RUNNER}._ensure_version_table", AsyncMock()),
            patch(f"{RUNNER}._get_current_version", AsyncMock(return_value=None)),
        ):
            status = await get_migration_status("postgresql+asyncpg://x/y")

        assert status == {
            "current_version": None,
            "latest_version": MIGRATIONS[-1],
            "pending_count": len(MIGRATIONS),
            "pending_migrations": MIGRATIONS,
        }
        engine.dispose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_engine_is_disposed_on_error(self) -> None:
        """Test that the engine is released when the version query fails."""
        engine = MagicMock()
        engine.dispose = AsyncMock()

        with (
            patch(f"{RUNNER}.create_async_engine", return_value=engine),
            patch(f"{RUNNER}._ensure_version_table", AsyncMock(side_effect=OSError("refused"))),
        ):
            with pytest.raises(OSError):
                await get_migration_status("postgresql+asyncpg://x/y")

        engine.dispose.assert_awaited_once()
