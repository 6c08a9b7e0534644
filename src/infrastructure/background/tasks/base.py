# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Base utilities for Dramatiq tasks.

Thread-Local Event Loop Management:
    Dramatiq workers run actors on several threads. SQLAlchemy async
    engines and asyncpg connections are bound to the event loop that
    created them, so each worker thread keeps one persistent loop and
    reuses it for every task it runs. When a thread gets a new loop its
    cached Database is dropped and rebuilt on the next access.
"""

import asyncio
import logging
import threading
from typing import Any, Coroutine, TypeVar

from src.infrastructure.database import _clear_thread_database

logger = logging.getLogger(__name__)

T = TypeVar("T")

_thread_local = threading.local()


def _get_thread_event_loop() -> asyncio.AbstractEventLoop:
    """Get or create the persistent event loop for the current thread."""
    loop = getattr(_thread_local, "event_loop", None)

    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        _thread_local.event_loop = loop

        # Engines from a previous loop cannot be reused
        _clear_thread_database()

        logger.debug("Created new event loop for thread %s", threading.current_thread().name)

    return loop


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine from a sync Dramatiq actor.

    Args:
        coro: Coroutine to run.

    Returns:
        Result of the coroutine.

    Example:
        @dramatiq.actor
        def my_task():
            async def _process():
                store = SqlJobStore(get_worker_database())
                ...
            return run_async(_process())
    """
    return _get_thread_event_loop().run_until_complete(coro)
