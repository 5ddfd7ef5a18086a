"""Cooperative cancellation shared by a batch and its in-flight upload."""

import asyncio


class CancellationToken:
    """
    One-way flag: once cancelled, stays cancelled.

    Backed by asyncio.Event so awaiting code can race its I/O against
    cancel() instead of polling. is_cancelled is a plain read and safe to
    call from worker threads.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()
