# src/daybook/tasks/debounce.py

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

Fire = Callable[[], Awaitable[None]]


class Debouncer:
    """
    One cancellable delayed call per key.

    Registering a key again cancels the previous call for that key before it
    was sent. Must be used from inside a running event loop.
    """

    def __init__(self, delay_seconds: float) -> None:
        self._delay = max(0.0, float(delay_seconds))
        self._pending: dict[str, tuple[asyncio.Task[None], Fire]] = {}

    @property
    def delay(self) -> float:
        return self._delay

    def __contains__(self, key: str) -> bool:
        return key in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    def schedule(self, key: str, fire: Fire) -> None:
        prev = self._pending.pop(key, None)
        if prev is not None:
            prev[0].cancel()
            logger.debug("Debounce superseded key=%s", key)

        timer = asyncio.get_running_loop().create_task(self._run_later(key, fire))
        self._pending[key] = (timer, fire)
        logger.debug("Debounce scheduled key=%s delay=%.2fs", key, self._delay)

    async def _run_later(self, key: str, fire: Fire) -> None:
        await asyncio.sleep(self._delay)
        # From here on the call is committed; a late cancel must not cut it in half.
        entry = self._pending.get(key)
        if entry is not None and entry[1] is fire:
            del self._pending[key]
        await fire()

    def cancel(self, key: str) -> bool:
        entry = self._pending.pop(key, None)
        if entry is None:
            return False
        entry[0].cancel()
        return True

    def cancel_all(self) -> int:
        n = len(self._pending)
        for timer, _ in self._pending.values():
            timer.cancel()
        self._pending.clear()
        return n

    async def flush(self) -> None:
        """Fire every pending call now instead of waiting for its window."""
        entries = list(self._pending.items())
        self._pending.clear()
        for key, (timer, fire) in entries:
            timer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await timer
            logger.debug("Debounce flushed key=%s", key)
            await fire()
