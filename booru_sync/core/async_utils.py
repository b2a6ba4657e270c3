"""Async helper utilities."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Coroutine
    from typing import Any

T = TypeVar("T")


def raise_if_cancelled(exc: BaseException) -> None:
    """Re-raise ``asyncio.CancelledError`` instances to preserve cancellation semantics."""

    if isinstance(exc, asyncio.CancelledError):  # pragma: no cover - simple guard
        raise exc


async def race_with_timeout(coro: Coroutine[Any, Any, T], timeout: float) -> T:
    """Run ``coro`` against an independent timer and return the winner's outcome.

    The work and the timer are spawned as separate tasks and joined at a single
    point. Whichever finishes second is cancelled and awaited so no task leaks.
    If the timer wins, ``TimeoutError`` is raised; if the work wins, its result
    is returned or its exception propagated.

    This does not rely on the transport's own timeout: some downloads stall
    without ever firing it.
    """
    work = asyncio.ensure_future(coro)
    timer = asyncio.ensure_future(asyncio.sleep(timeout))
    try:
        await asyncio.wait({work, timer}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (work, timer):
            if not task.done():
                task.cancel()
        await asyncio.gather(work, timer, return_exceptions=True)

    if work.cancelled() or not work.done():
        msg = f"operation did not finish within {timeout:.1f}s"
        raise TimeoutError(msg)
    return work.result()
