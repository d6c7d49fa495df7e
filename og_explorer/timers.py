"""Cancelable delayed tasks keyed by a token."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, Hashable, Optional

logger = logging.getLogger("og_explorer")


class DelayedTaskScheduler:
    """Schedules callbacks on the event loop, at most one pending per key.

    Scheduling a key that is already pending replaces the earlier callback.
    Cancelling is idempotent and a no-op when nothing is pending.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop
        self._handles: Dict[Hashable, asyncio.TimerHandle] = {}

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def schedule(self, key: Hashable, delay: float, callback: Callable[[], None]) -> None:
        self.cancel(key)

        def fire() -> None:
            self._handles.pop(key, None)
            try:
                callback()
            except Exception:  # pylint: disable=broad-except
                logger.exception("Delayed task %r failed", key)

        self._handles[key] = self.loop.call_later(max(delay, 0.0), fire)

    def cancel(self, key: Hashable) -> bool:
        """Cancel the pending task for ``key``; returns whether one was pending."""
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> None:
        for key in list(self._handles):
            self.cancel(key)

    def pending(self, key: Hashable) -> bool:
        return key in self._handles
