"""Concurrency primitives shared by the pipeline and the batch services.

* **throttled_gather** -- ``asyncio.gather`` with each awaitable wrapped in
  a semaphore acquire/release.  Results come back in submission order.
* **PauseToken** -- cooperative pause flag checked between batch items.
  Setting it never interrupts an in-flight external call.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

_T = TypeVar("_T")


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore | None = None,
    limit: int = 4,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently with semaphore throttling.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Optional shared semaphore.  When omitted a fresh one sized
        ``limit`` is created for this call.
    limit:
        Maximum number of awaitables running at once when no semaphore
        is supplied.
    return_exceptions:
        Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input coroutines.
    """
    if semaphore is None:
        semaphore = asyncio.Semaphore(max(1, limit))

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    tasks = [_wrapped(c) for c in coros]
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)


class PauseToken:
    """Cooperative pause flag for long-running batch loops.

    Batch loops call :attr:`is_paused` between items; the current item
    always runs to completion.
    """

    def __init__(self) -> None:
        self._paused = False

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        self._paused = False

    @property
    def is_paused(self) -> bool:
        return self._paused
