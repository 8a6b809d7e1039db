"""
Run-scoped cancellation.

One ``CancelToken`` is created per probe run and handed to every phase.
Phases check ``token.cancelled`` before issuing the next request and wrap
every network await in ``token.race(...)`` so the request in flight is
aborted as soon as the token fires, not only the ones after it.
"""
from __future__ import annotations

import asyncio
import inspect
from typing import Awaitable, TypeVar

T = TypeVar("T")


class ProbeCancelled(Exception):
    """Raised inside a phase when its run has been cancelled."""


class CancelToken:
    """Shared cancellation signal backed by an ``asyncio.Event``."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    async def race(self, aw: Awaitable[T]) -> T:
        """
        Await *aw* unless the token fires first.

        When the token wins, the pending operation is cancelled (aiohttp
        drops the underlying connection) and ``ProbeCancelled`` is raised.
        If both finish together the operation's result wins; the caller's
        loop observes the token on its next check.
        """
        if self.cancelled:
            if inspect.iscoroutine(aw):
                aw.close()
            raise ProbeCancelled()

        op = asyncio.ensure_future(aw)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({op, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            op.cancel()
            raise
        finally:
            waiter.cancel()

        if op.done():
            return op.result()

        op.cancel()
        await asyncio.gather(op, return_exceptions=True)
        raise ProbeCancelled()
