"""Claimed-ticket tracking and the staff inactivity unclaim timer.

The tracker owns every timer task. A timer is armed when the ticket creator
posts and cancelled when the claimer answers; if it runs out, the claim is
handed back through the ``on_expire`` callback.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class ClaimEntry:
    claimer_id: int
    handle: asyncio.Task | None = None

    @property
    def armed(self) -> bool:
        return self.handle is not None and not self.handle.done()


class ClaimTracker:
    def __init__(self, timeout_seconds: float, on_expire=None):
        self.timeout_seconds = timeout_seconds
        # async callable(channel_id, claimer_id) -> None
        self.on_expire = on_expire
        self._entries: dict[int, ClaimEntry] = {}

    def claimer_of(self, channel_id: int) -> int | None:
        entry = self._entries.get(channel_id)
        return entry.claimer_id if entry else None

    def is_armed(self, channel_id: int) -> bool:
        entry = self._entries.get(channel_id)
        return bool(entry and entry.armed)

    def pending_timer_count(self, channel_id: int | None = None) -> int:
        entries = self._entries.values() if channel_id is None else [self._entries.get(channel_id)]
        return sum(1 for e in entries if e is not None and e.armed)

    def track(self, channel_id: int, claimer_id: int) -> None:
        self.release(channel_id)
        self._entries[channel_id] = ClaimEntry(claimer_id)

    def arm(self, channel_id: int) -> bool:
        """Restart the unclaim countdown. Returns False if the channel isn't claimed."""
        entry = self._entries.get(channel_id)
        if entry is None:
            return False
        self._cancel(entry)
        entry.handle = asyncio.create_task(self._countdown(channel_id, entry.claimer_id))
        logger.debug("Unclaim timer armed for %s (%ss)", channel_id, self.timeout_seconds)
        return True

    def disarm(self, channel_id: int) -> bool:
        entry = self._entries.get(channel_id)
        if entry is None or not entry.armed:
            return False
        self._cancel(entry)
        logger.debug("Unclaim timer cancelled for %s", channel_id)
        return True

    def release(self, channel_id: int) -> None:
        entry = self._entries.pop(channel_id, None)
        if entry is not None:
            self._cancel(entry)

    def release_all(self) -> None:
        for channel_id in list(self._entries):
            self.release(channel_id)

    @staticmethod
    def _cancel(entry: ClaimEntry) -> None:
        if entry.handle is not None:
            # never cancel the task we're running in (expiry calls back into release)
            if entry.handle is not asyncio.current_task():
                entry.handle.cancel()
            entry.handle = None

    async def _countdown(self, channel_id: int, claimer_id: int) -> None:
        await asyncio.sleep(self.timeout_seconds)

        entry = self._entries.get(channel_id)
        if entry is None or entry.claimer_id != claimer_id or entry.handle is not asyncio.current_task():
            logger.debug("Stale unclaim timer for %s ignored", channel_id)
            return

        del self._entries[channel_id]
        entry.handle = None
        logger.info("Unclaim timer expired for %s (claimer %s)", channel_id, claimer_id)
        if self.on_expire is None:
            return
        try:
            await self.on_expire(channel_id, claimer_id)
        except Exception:
            logger.exception("Error in unclaim timeout for channel %s", channel_id)
