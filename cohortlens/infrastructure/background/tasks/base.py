# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Bridge between synchronous Dramatiq actors and the async refresh code.

Dramatiq workers run several threads per process. SQLAlchemy async engines
and asyncpg connections are bound to the event loop they were created on,
so each worker thread keeps one persistent loop and reuses it for every
message it handles. The thread's database engine lives on that same loop.
"""

import asyncio
import logging
import threading
from typing import Any, Coroutine, TypeVar

from cohortlens.infrastructure.database.connection import _clear_thread_db_connections

logger = logging.getLogger(__name__)

T = TypeVar("T")

_thread_local = threading.local()


def _get_thread_event_loop() -> asyncio.AbstractEventLoop:
    """Get or create the current thread's persistent event loop.

    When a new loop is created, the thread's cached database engine is
    dropped so it is rebuilt on the new loop.
    """
    loop = getattr(_thread_local, "event_loop", None)

    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        _thread_local.event_loop = loop

        _clear_thread_db_connections()

        logger.debug(
            "Created new event loop for thread %s",
            threading.current_thread().name,
        )

    return loop


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine to completion on the thread's persistent loop.

    Args:
        coro: Coroutine to run.

    Returns:
        Result of the coroutine.

    Example:
        @dramatiq.actor
        def my_task(tier: str):
            async def _process():
                async with get_worker_session() as session:
                    ...
            return run_async(_process())
    """
    loop = _get_thread_event_loop()
    return loop.run_until_complete(coro)
