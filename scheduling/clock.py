"""
Clocks and delayed tasks for build scheduling.

Debounce and retry timers are DelayedTasks driven by a Clock. Production
code uses SystemClock; tests use ManualClock and advance time explicitly
instead of sleeping.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)


class Clock(Protocol):
    def now(self) -> float: ...

    async def sleep(self, seconds: float) -> None: ...


class SystemClock:
    """Monotonic wall clock backed by asyncio.sleep."""

    def now(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, seconds))


class ManualClock:
    """
    Clock that only moves when advanced.

    Usage:
        clock = ManualClock()
        scheduler = BuildScheduler(build_fn, store, clock=clock)
        scheduler.request_build(key)
        await clock.advance(10)
    """

    def __init__(self, start: float = 0.0, settle_iterations: int = 50):
        self._now = start
        self._sleepers: List[Tuple[float, asyncio.Future]] = []
        self.settle_iterations = settle_iterations

    def now(self) -> float:
        return self._now

    @property
    def pending_sleepers(self) -> int:
        return sum(1 for _, fut in self._sleepers if not fut.done())

    async def sleep(self, seconds: float) -> None:
        if seconds <= 0:
            await asyncio.sleep(0)
            return

        entry = (self._now + seconds, asyncio.get_running_loop().create_future())
        self._sleepers.append(entry)
        try:
            await entry[1]
        finally:
            if entry in self._sleepers:
                self._sleepers.remove(entry)

    async def advance(self, seconds: float) -> None:
        """Move time forward, wake due sleepers and let them run."""
        self._now += seconds
        for deadline, fut in list(self._sleepers):
            if deadline <= self._now and not fut.done():
                fut.set_result(None)
        await self.settle()

    async def settle(self) -> None:
        """Yield to the event loop so woken tasks can make progress."""
        for _ in range(self.settle_iterations):
            await asyncio.sleep(0)


@dataclass
class DelayedTask:
    """A per-key timer: what fires, when, and the task waiting for it."""

    key: Any
    kind: str
    scheduled_for: float
    handle: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def pending(self) -> bool:
        return self.handle is not None and not self.handle.done()

    def cancel(self) -> bool:
        if self.pending:
            self.handle.cancel()
            return True
        return False
