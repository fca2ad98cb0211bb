"""
Cancellation token passed through every suspending step of an analysis.

Steps either check the token between awaits (``raise_if_cancelled``) or
let the token race their awaitable (``sleep`` / ``run``) so that a cancel
aborts the pending work instead of merely ignoring its outcome.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from modules.errors import AnalysisCancelledError

T = TypeVar("T")


class CancellationToken:
    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason = ""

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "Analysis cancelled.") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise AnalysisCancelledError(self.reason)

    async def sleep(self, seconds: float) -> None:
        """Sleep for *seconds* unless cancelled first."""
        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise AnalysisCancelledError(self.reason)

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await *awaitable*, cancelling it as soon as the token fires."""
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise AnalysisCancelledError(self.reason)
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()

        if work.done():
            return work.result()

        work.cancel()
        try:
            await work
        except asyncio.CancelledError:
            pass
        raise AnalysisCancelledError(self.reason)
