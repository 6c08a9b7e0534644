# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Programmatic migration runner.

Applies the revisions under ``migrations/versions`` without the alembic
CLI. The API runs it on startup when ``DB_AUTO_MIGRATE`` is enabled.

Example:
    from src.infrastructure.database.migrations.runner import run_migrations

    applied = await run_migrations(settings.database.url)
"""

import importlib
import logging
from typing import Any, Callable

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, create_async_engine

logger = logging.getLogger(__name__)

# Revision modules in apply order
MIGRATIONS = [
    "001_initial_schema",
]

_VERSION_TABLE_DDL = """
    CREATE TABLE IF NOT EXISTS alembic_version (
        version_num VARCHAR(128) NOT NULL,
        CONSTRAINT alembic_version_pkc PRIMARY KEY (version_num)
    )
"""


def pending_after(current: str | None) -> list[str]:
    """Revisions that follow ``current``.

    An unknown ``current`` yields nothing; the database was migrated by
    something this runner does not know about.
    """
    if current is None:
        return list(MIGRATIONS)
    if current not in MIGRATIONS:
        logger.warning("Current version %s not in known migrations list", current)
        return []
    return MIGRATIONS[MIGRATIONS.index(current) + 1 :]


async def _current_version(conn: AsyncConnection) -> str | None:
    await conn.execute(text(_VERSION_TABLE_DDL))
    row = (await conn.execute(text("SELECT version_num FROM alembic_version LIMIT 1"))).first()
    return row[0] if row else None


def _upgrade_sync(connection: Any, upgrade_fn: Callable[[], None]) -> None:
    # Alembic operations are sync and bound to a thread-local context
    from alembic.operations import Operations
    from alembic.runtime.migration import MigrationContext

    context = MigrationContext.configure(connection)
    with Operations.context(context):
        upgrade_fn()


async def run_migrations(db_url: str) -> list[str]:
    """Apply every pending revision, each in its own transaction.

    Returns:
        Revision ids applied, in order.
    """
    engine = create_async_engine(db_url, echo=False)
    applied: list[str] = []
    try:
        async with engine.begin() as conn:
            pending = pending_after(await _current_version(conn))

        if not pending:
            logger.info("No pending migrations")
            return applied

        for revision in pending:
            module = importlib.import_module(
                f"src.infrastructure.database.migrations.versions.{revision}"
            )
            async with engine.begin() as conn:
                await conn.run_sync(_upgrade_sync, module.upgrade)
                await conn.execute(text("DELETE FROM alembic_version"))
                await conn.execute(
                    text("INSERT INTO alembic_version (version_num) VALUES (:version)"),
                    {"version": revision},
                )
            applied.append(revision)
            logger.info("Applied migration: %s", revision)
        return applied
    finally:
        await engine.dispose()
