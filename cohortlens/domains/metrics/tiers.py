# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Refresh tier assignment.

Which metric types are refreshed on which cadence is configuration, kept in
a versioned YAML file rather than derived at runtime:

    tiers:
      light:
        interval_minutes: 15
        ttl_minutes: 20
        metrics: [popular_content_daily]

Example:
    >>> assignment = load_tier_assignment(Path("config/refresh_tiers.yaml"))
    >>> assignment.get("medium").ttl_minutes
    70
"""

import logging
from datetime import timedelta
from pathlib import Path
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from cohortlens.core.config.yaml_loader import deep_merge, load_yaml
from cohortlens.domains.metrics.types import MetricType

logger = logging.getLogger(__name__)


class TierConfigError(Exception):
    """Raised when the tier assignment is invalid."""

    def __init__(self, message: str, source: Path | None = None) -> None:
        self.message = message
        self.source = source
        where = f" ({source})" if source else ""
        super().__init__(f"Invalid refresh tier configuration{where}: {message}")


class UnknownTierError(Exception):
    """Raised when a tier name is not configured."""

    def __init__(self, tier: str, known: list[str]) -> None:
        self.tier = tier
        self.known = known
        super().__init__(f"Unknown refresh tier '{tier}'. Known tiers: {', '.join(known)}")


class RefreshTier(BaseModel):
    """One refresh cadence.

    Attributes:
        name: Tier name (light, medium, heavy).
        interval_minutes: How often the tier runs.
        ttl_minutes: Lifetime of rows written by the tier.
        metrics: Metric types refreshed by the tier.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    interval_minutes: int = Field(gt=0)
    ttl_minutes: int = Field(gt=0)
    metrics: tuple[MetricType, ...] = Field(min_length=1)

    @property
    def ttl(self) -> timedelta:
        return timedelta(minutes=self.ttl_minutes)

    @property
    def interval(self) -> timedelta:
        return timedelta(minutes=self.interval_minutes)


class TierAssignment(BaseModel):
    """All configured tiers, keyed by name."""

    model_config = ConfigDict(frozen=True)

    tiers: dict[str, RefreshTier]

    @model_validator(mode="before")
    @classmethod
    def _inject_names(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("tiers"), dict):
            data = dict(data)
            data["tiers"] = {
                name: {"name": name, **body} if isinstance(body, dict) else body
                for name, body in data["tiers"].items()
            }
        return data

    @model_validator(mode="after")
    def _metric_in_one_tier(self) -> Self:
        if not self.tiers:
            raise ValueError("at least one tier must be configured")
        owner: dict[MetricType, str] = {}
        for tier in self.tiers.values():
            for metric in tier.metrics:
                if metric in owner:
                    raise ValueError(
                        f"metric '{metric.value}' is assigned to both "
                        f"'{owner[metric]}' and '{tier.name}'"
                    )
                owner[metric] = tier.name
        return self

    @property
    def names(self) -> list[str]:
        return list(self.tiers)

    def get(self, name: str) -> RefreshTier:
        """Return the tier called ``name``.

        Raises:
            UnknownTierError: If no such tier is configured.
        """
        try:
            return self.tiers[name]
        except KeyError:
            raise UnknownTierError(name, self.names) from None

    def tier_for(self, metric_type: MetricType) -> RefreshTier | None:
        """Tier that refreshes ``metric_type``, if any."""
        for tier in self.tiers.values():
            if metric_type in tier.metrics:
                return tier
        return None


def build_tier_assignment(
    data: dict[str, Any],
    overrides: dict[str, Any] | None = None,
    source: Path | None = None,
) -> TierAssignment:
    """Validate a raw tier mapping, applying optional overrides first.

    Raises:
        TierConfigError: If the merged mapping is not a valid assignment.
    """
    merged = deep_merge(data, overrides) if overrides else data
    try:
        return TierAssignment.model_validate(merged)
    except ValidationError as e:
        raise TierConfigError(str(e), source) from e


def load_tier_assignment(
    path: Path,
    overrides: dict[str, Any] | None = None,
) -> TierAssignment:
    """Load and validate the tier assignment file.

    Args:
        path: YAML file with a top-level ``tiers`` mapping.
        overrides: Values deep-merged over the file, e.g. a shorter TTL
            for one tier in a test environment.

    Returns:
        The validated assignment.

    Raises:
        YAMLLoadError: If the file cannot be read or parsed.
        TierConfigError: If the content is invalid.
    """
    assignment = build_tier_assignment(load_yaml(path), overrides, source=path)
    logger.info(
        "Loaded refresh tiers from %s: %s",
        path,
        {name: [m.value for m in t.metrics] for name, t in assignment.tiers.items()},
    )
    return assignment
