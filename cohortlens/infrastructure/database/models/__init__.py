# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy models."""

from cohortlens.infrastructure.database.models.base import Base
from cohortlens.infrastructure.database.models.metrics import (
    CachedMetric,
    Event,
    FormSubmission,
    Insight,
    Student,
    Tenant,
)

__all__ = [
    "Base",
    "CachedMetric",
    "Event",
    "FormSubmission",
    "Insight",
    "Student",
    "Tenant",
]
