# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

Scorer tests build events and students through the factories below so that
every test states only the fields it cares about.
"""

import os
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import pytest

# Actors declared at import time must bind to the in-memory broker.
os.environ.setdefault("DRAMATIQ_TEST_MODE", "true")

from cohortlens.core.config.settings import ScoringSettings  # noqa: E402
from cohortlens.domains.metrics.events import Event, StudentRecord, parse_event  # noqa: E402

# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (requires services)"
    )
    config.addinivalue_line("markers", "slow: mark test as slow running")


# =============================================================================
# Helper Fixtures
# =============================================================================


@pytest.fixture
def scoring_settings() -> ScoringSettings:
    """Default scoring thresholds."""
    return ScoringSettings()


@pytest.fixture
def now() -> datetime:
    """A fixed evaluation instant (a Wednesday, mid-afternoon UTC)."""
    return datetime(2025, 3, 12, 15, 30, tzinfo=timezone.utc)


@pytest.fixture
def sample_tenant_id() -> str:
    """Provide a sample tenant ID for testing."""
    return "550e8400-e29b-41d4-a716-446655440000"


def make_event(
    entity_id: str | None,
    created_at: datetime,
    event_type: str = "activity",
    experience_id: str | None = None,
    action: str | None = None,
) -> Event:
    """Build a typed event through the ingestion boundary."""
    payload: dict[str, Any] = {}
    if experience_id is not None:
        payload["experience_id"] = experience_id
    if action is not None:
        payload["action"] = action
    return parse_event(
        {
            "event_type": event_type,
            "entity_id": entity_id,
            "created_at": created_at,
            "payload": payload,
        }
    )


def make_student(
    student_id: str, created_at: datetime, name: str | None = None
) -> StudentRecord:
    """Build a student record."""
    return StudentRecord(id=student_id, created_at=created_at, name=name)


@pytest.fixture
def event_factory() -> Callable[..., Event]:
    """Factory for typed events."""
    return make_event


@pytest.fixture
def student_factory() -> Callable[..., StudentRecord]:
    """Factory for student records."""
    return make_student
