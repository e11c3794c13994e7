# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Configuration module for CohortLens.

Exports the settings singleton accessors and the YAML loading helpers.
"""

from cohortlens.core.config.settings import (
    DatabaseSettings,
    RedisSettings,
    RefreshSettings,
    ScoringSettings,
    Settings,
    WorkerSettings,
    clear_settings_cache,
    get_settings,
)
from cohortlens.core.config.yaml_loader import YAMLLoadError, deep_merge, load_yaml

__all__ = [
    "DatabaseSettings",
    "RedisSettings",
    "RefreshSettings",
    "ScoringSettings",
    "Settings",
    "WorkerSettings",
    "YAMLLoadError",
    "clear_settings_cache",
    "deep_merge",
    "get_settings",
    "load_yaml",
]
