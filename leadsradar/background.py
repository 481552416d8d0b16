"""Fire-and-forget side effects that must never fail the request that spawned them.

Used for bookkeeping writes such as an API key's ``last_used_at``.  The event
loop only keeps weak references to tasks, so spawned tasks are held in
``_pending`` until they finish.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable

logger = logging.getLogger(__name__)

_pending: set[asyncio.Task] = set()


async def _guarded(awaitable: Awaitable, description: str) -> None:
    try:
        await awaitable
    except Exception:
        logger.warning("Background task failed: %s", description, exc_info=True)


def fire_and_forget(awaitable: Awaitable, description: str) -> asyncio.Task:
    """Schedule ``awaitable`` on the running loop; failures are logged, not raised."""
    task = asyncio.create_task(_guarded(awaitable, description))
    _pending.add(task)
    task.add_done_callback(_pending.discard)
    return task


async def drain() -> None:
    """Wait for every pending background task (shutdown and tests)."""
    while _pending:
        await asyncio.gather(*list(_pending), return_exceptions=True)
