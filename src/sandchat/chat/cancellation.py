"""Cooperative cancellation for a streaming turn.

One ``AbortController`` is created per sent message. Aborting is idempotent
and is never reported as an error.
"""

import asyncio
from collections.abc import AsyncIterator
from typing import Any, TypeVar

_T = TypeVar("_T")


class AbortSignal:
    """Read side of an abort controller."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Any = None

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        """Block until the signal is aborted."""
        await self._event.wait()


class AbortController:
    """Owner of one abort signal."""

    def __init__(self) -> None:
        self.signal = AbortSignal()

    def abort(self, reason: Any = None) -> bool:
        """Abort the signal.

        Returns:
            True if this call aborted it, False if it was already aborted
        """
        if self.signal.aborted:
            return False
        self.signal.reason = reason
        self.signal._event.set()
        return True


async def iterate_with_abort(stream: AsyncIterator[_T], signal: AbortSignal) -> AsyncIterator[_T]:
    """Iterate a stream until it ends or the signal aborts.

    Waiting for the next item races against the abort, so an abort stops
    consumption even while the stream is blocked. Items that arrive after
    the abort are dropped. The stream is closed on every exit path.
    """
    async def next_item() -> _T:
        return await anext(stream)

    abort_wait = asyncio.create_task(signal.wait())
    try:
        while not signal.aborted:
            pending = asyncio.create_task(next_item())
            done, _ = await asyncio.wait({pending, abort_wait}, return_when=asyncio.FIRST_COMPLETED)

            if pending not in done:
                pending.cancel()
                await asyncio.wait({pending})
                if not pending.cancelled():
                    # Consume the outcome so it is not reported as unretrieved
                    pending.exception()
                return

            try:
                item = pending.result()
            except StopAsyncIteration:
                return
            if signal.aborted:
                return
            yield item
    finally:
        abort_wait.cancel()
        aclose = getattr(stream, "aclose", None)
        if aclose is not None:
            await aclose()
