"""
Single-flight request slots.

One slot per logical channel (a session id, a channel key). Starting a
request takes ownership of the slot and cancels whoever held it before,
so at most one request per channel is ever outstanding. A request that
loses its slot this way raises Cancelled instead of returning a result.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from deskline.errors import Cancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FlightHandle:
    """Cancellation handle for one request occupying a slot."""

    __slots__ = ("key", "task", "reason")

    def __init__(self, key: str):
        self.key = key
        self.task: asyncio.Task | None = None
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self.reason is not None

    def cancel(self, reason: str):
        if self.reason is None:
            self.reason = reason
        if self.task is not None and not self.task.done():
            self.task.cancel()


class SingleFlight:
    """Per-key slots holding at most one in-flight request each."""

    def __init__(self):
        self._slots: dict[str, FlightHandle] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._slots

    async def run(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        """
        Run factory() as the sole request for key.

        Raises Cancelled if a newer request for the same key (or cancel())
        supersedes this one before it settles.
        """
        handle = FlightHandle(key)
        previous = self._slots.get(key)
        self._slots[key] = handle
        if previous is not None:
            logger.debug("Superseding in-flight request for '%s'", key)
            previous.cancel("New message sent")

        handle.task = asyncio.ensure_future(factory())
        try:
            result = await handle.task
        except asyncio.CancelledError:
            if handle.cancelled:
                raise Cancelled(handle.reason) from None
            raise
        finally:
            if self._slots.get(key) is handle:
                del self._slots[key]

        if handle.cancelled:
            raise Cancelled(handle.reason)
        return result

    def cancel(self, key: str | None = None, reason: str = "User cancelled") -> int:
        """Cancel the request for key, or every request if key is None."""
        keys = [key] if key is not None else list(self._slots)
        cancelled = 0
        for k in keys:
            handle = self._slots.pop(k, None)
            if handle is not None:
                handle.cancel(reason)
                cancelled += 1
        return cancelled
