# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Configuration package for Adeline Brain.

This package provides centralized configuration management:
- Settings: Pydantic-based infrastructure settings from environment variables
- Tutor: YAML-based persona, credit rules, model tiers and grade expectations
- YAML loader: Utilities for loading and merging YAML configuration files

Example:
    >>> from src.core.config import get_settings, load_tutor_config
    >>> settings = get_settings()
    >>> tutor = load_tutor_config(settings.pipeline.tutor_config_path)
"""

from src.core.config.settings import (
    APISettings,
    DatabaseSettings,
    EmbeddingSettings,
    LLMSettings,
    PipelineSettings,
    QdrantSettings,
    RedisSettings,
    Settings,
    WorkerSettings,
    clear_settings_cache,
    get_settings,
)
from src.core.config.tutor import (
    ModelProfile,
    ModelsConfig,
    PersonaConfig,
    RoutingRules,
    TutorConfig,
    TutorConfigError,
    load_tutor_config,
)
from src.core.config.yaml_loader import (
    YAMLLoadError,
    deep_merge,
    load_yaml,
    load_yaml_with_override,
)

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    "clear_settings_cache",
    # Subsettings
    "DatabaseSettings",
    "RedisSettings",
    "QdrantSettings",
    "LLMSettings",
    "EmbeddingSettings",
    "WorkerSettings",
    "PipelineSettings",
    "APISettings",
    # Tutor configuration
    "TutorConfig",
    "TutorConfigError",
    "ModelProfile",
    "ModelsConfig",
    "PersonaConfig",
    "RoutingRules",
    "load_tutor_config",
    # YAML utilities
    "load_yaml",
    "load_yaml_with_override",
    "deep_merge",
    "YAMLLoadError",
]
