# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database infrastructure for the PostgreSQL learning database.

Example:
    from src.infrastructure.database import init_database, SqlLearningStore

    database = await init_database(settings)
    store = SqlLearningStore(database)
"""

from src.infrastructure.database.connection import (
    Database,
    DatabaseError,
    _clear_thread_database,
    close_database,
    get_database,
    get_worker_database,
    init_database,
)
from src.infrastructure.database.repositories import SqlJobStore, SqlLearningStore

__all__ = [
    "Database",
    "DatabaseError",
    "SqlJobStore",
    "SqlLearningStore",
    "close_database",
    "get_database",
    "get_worker_database",
    "init_database",
    "_clear_thread_database",
]
