# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Service wiring shared by the API and background workers."""

from src.services.tutor import build_job_runner, build_learning_pipeline, get_tutor_config

__all__ = [
    "build_job_runner",
    "build_learning_pipeline",
    "get_tutor_config",
]
