"""Abort signal used to cancel an in-progress chat call."""

import asyncio

from bibble.core.errors import AbortError


class AbortSignal:
    """One-shot cancellation flag that coroutines can await.

    The signal is owned by whoever drives a chat call (usually the CLI) and
    is passed into ``Agent.chat``. Once aborted it stays aborted; create a new
    signal for the next call.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def abort(self) -> None:
        """Fire the signal. Safe to call more than once."""
        self._event.set()

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        """Block until the signal fires."""
        await self._event.wait()

    def raise_if_aborted(self) -> None:
        """Raise AbortError if the signal has fired."""
        if self._event.is_set():
            raise AbortError()
