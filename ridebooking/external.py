"""Timeout-bounded calls to external collaborators.

Calendar, distance, messaging and extraction calls all go through
:func:`call_external`. A timeout is retried once after a short backoff;
any other error is raised so the calling component can apply its own
fail-open or fail-closed policy.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from ridebooking.config import settings

log = logging.getLogger("ridebooking.external")


async def call_external(
    name: str,
    factory: Callable[[], Awaitable[Any]],
    timeout: float | None = None,
    backoff: float | None = None,
) -> Any:
    """Await ``factory()`` with a timeout, retrying once on timeout.

    ``factory`` must build a fresh awaitable on every call since a
    coroutine cannot be awaited twice.
    """
    timeout = settings.external_timeout_seconds if timeout is None else timeout
    backoff = settings.external_retry_backoff_seconds if backoff is None else backoff

    try:
        return await asyncio.wait_for(factory(), timeout=timeout)
    except asyncio.TimeoutError:
        log.warning("%s timed out after %.1fs, retrying once", name, timeout)

    await asyncio.sleep(backoff)
    return await asyncio.wait_for(factory(), timeout=timeout)
