"""
Periodic drivers.

TickScheduler runs the authority's simulation tick. CooldownTracker runs the
cosmetic per-action countdown every participant shows next to its buttons;
it never feeds back into authoritative state.
"""

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class TickScheduler:
    """
    Calls an async callback on a fixed cadence until stopped.

    A tick always runs to completion; stop() cancels the loop while it
    sleeps or awaits the callback, never halfway through a state update
    (the callback holds its own critical section).
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[None]],
        interval: float = 1.0,
        name: str = "tick",
    ):
        self.callback = callback
        self.interval = interval
        self.name = name
        self.ticks = 0
        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the loop. Calling start() on a running scheduler is a no-op."""
        if self._running:
            return
        self._running = True

        async def loop():
            while self._running:
                await asyncio.sleep(self.interval)
                if not self._running:
                    break
                try:
                    await self.callback()
                    self.ticks += 1
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception(f"{self.name} callback failed")

        self._task = asyncio.create_task(loop(), name=f"entropy-{self.name}")

    async def stop(self) -> None:
        """Stop the loop and wait for it to unwind."""
        self._running = False
        task, self._task = self._task, None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


class CooldownTracker:
    """
    Whole-second countdowns per action id.

    tick() is driven by a TickScheduler on the participant while its
    replica is PLAYING.
    """

    def __init__(self):
        self._remaining: dict[str, int] = {}

    def start(self, action_id: str, seconds: int) -> None:
        if seconds > 0:
            self._remaining[action_id] = seconds

    def remaining(self, action_id: str) -> int:
        return self._remaining.get(action_id, 0)

    def is_ready(self, action_id: str) -> bool:
        return self.remaining(action_id) == 0

    def tick(self) -> bool:
        """Count every cooldown down by one second. Returns True if anything changed."""
        if not self._remaining:
            return False
        self._remaining = {
            action_id: seconds - 1
            for action_id, seconds in self._remaining.items()
            if seconds > 1
        }
        return True

    def reset(self, keep: str | None = None) -> None:
        """Clear every cooldown except `keep`."""
        self._remaining = {
            action_id: seconds
            for action_id, seconds in self._remaining.items()
            if action_id == keep
        }

    def snapshot(self) -> dict[str, int]:
        return dict(self._remaining)
