# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQL-backed store implementations."""

from src.infrastructure.database.repositories.jobs import SqlJobStore
from src.infrastructure.database.repositories.learning import SqlLearningStore

__all__ = ["SqlJobStore", "SqlLearningStore"]
