"""
Per-key build scheduling with debounce, single-flight and retry.

States:
- IDLE: nothing pending
- SCHEDULED: a debounce or retry timer is pending
- BUILDING: a build is running, at most one per key
- COMPLETE: last build succeeded
- FAILED: terminal until a new external trigger arrives

Rapid triggers for the same key (e.g. a burst of uploads) reset the
debounce timer so only one build runs once the burst settles. Keys are
independent: each has its own record and at most one pending timer.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Optional

from app.cache import BuildKey, ContextStore
from app.config import SchedulerConfig, get_settings
from shared.errors import NoDocumentsError
from shared.schemas import BuildStatus, CachedContext

from .clock import Clock, DelayedTask, SystemClock

logger = logging.getLogger(__name__)

BuildFunction = Callable[[BuildKey], Awaitable[CachedContext]]

DEBOUNCE = "debounce"
RETRY = "retry"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class BuildRecord:
    """Build state for one (project, document_type) key."""

    key: BuildKey
    status: BuildStatus = BuildStatus.IDLE
    build_timestamp: Optional[datetime] = None
    requested_at: Optional[datetime] = None
    checksum: Optional[str] = None
    error_message: Optional[str] = None
    retry_count: int = 0
    attempts: int = 0
    rebuild_requested: bool = False

    @property
    def in_flight(self) -> bool:
        return self.status in (BuildStatus.SCHEDULED, BuildStatus.BUILDING)


class BuildScheduler:
    """
    Owns every BuildRecord transition.

    Usage:
        scheduler = BuildScheduler(build_fn, store)
        scheduler.request_build(BuildKey("acme", "solicitations"))
        ...
        await scheduler.shutdown()
    """

    def __init__(
        self,
        build_fn: BuildFunction,
        store: ContextStore,
        clock: Optional[Clock] = None,
        config: Optional[SchedulerConfig] = None,
    ):
        """
        Args:
            build_fn: Coroutine building and persisting a context for a key
            store: Context store, told about building/failed transitions
            clock: Time source for timers (SystemClock by default)
            config: Debounce/retry timings (from settings by default)
        """
        self._build_fn = build_fn
        self.store = store
        self.clock = clock or SystemClock()
        self.config = config or get_settings().scheduler

        self._records: Dict[BuildKey, BuildRecord] = {}
        self._timers: Dict[BuildKey, DelayedTask] = {}
        self._running: Dict[BuildKey, asyncio.Task] = {}
        self._closed = False

    def get_record(self, key: BuildKey) -> BuildRecord:
        record = self._records.get(key)
        if record is None:
            record = BuildRecord(key=key)
            self._records[key] = record
        return record

    def pending_timer(self, key: BuildKey) -> Optional[DelayedTask]:
        timer = self._timers.get(key)
        return timer if timer is not None and timer.pending else None

    def is_building(self, key: BuildKey) -> bool:
        task = self._running.get(key)
        return task is not None and not task.done()

    def request_build(self, key: BuildKey, checksum: Optional[str] = None) -> BuildRecord:
        """
        Request a debounced build.

        Leaving COMPLETE or FAILED resets the retry count. A request while
        SCHEDULED restarts the debounce window. A request while BUILDING
        queues one debounced follow-up build, armed once the running build
        settles.

        Args:
            key: Build key
            checksum: Checksum of the document set that triggered the build

        Returns:
            The key's build record
        """
        self._ensure_open()
        record = self.get_record(key)

        if record.status == BuildStatus.BUILDING:
            record.rebuild_requested = True
            if checksum is not None:
                record.checksum = checksum
            logger.info(f"Context already building for {key}, follow-up build queued")
            return record

        if record.status != BuildStatus.SCHEDULED:
            record.retry_count = 0
            record.error_message = None
        if checksum is not None:
            record.checksum = checksum

        self._schedule(key, self.config.debounce_seconds, DEBOUNCE)
        logger.info(
            f"Scheduled context build for {key} in {self.config.debounce_seconds:g} seconds"
        )
        return record

    def cancel_build(self, key: BuildKey) -> bool:
        """
        Cancel a pending timer. Has no effect on a running build.

        Returns:
            True if a pending timer was cancelled
        """
        timer = self._timers.pop(key, None)
        if timer is None or not timer.cancel():
            return False

        record = self.get_record(key)
        if record.status == BuildStatus.SCHEDULED:
            record.status = BuildStatus.IDLE
        logger.info(f"Cancelled context build for {key}")
        return True

    async def run_now(self, key: BuildKey, checksum: Optional[str] = None) -> BuildRecord:
        """
        Build immediately, skipping the debounce window.

        Joins the running build instead if one is in flight.
        """
        self._ensure_open()
        record = self.get_record(key)

        if not self.is_building(key):
            timer = self._timers.pop(key, None)
            if timer is not None:
                timer.cancel()
            record.retry_count = 0
            record.error_message = None
            if checksum is not None:
                record.checksum = checksum

        await self._start_build(key)
        return record

    async def wait_for_build(self, key: BuildKey) -> BuildRecord:
        """Wait for the running build of a key, if any."""
        task = self._running.get(key)
        if task is not None:
            await task
        return self.get_record(key)

    async def shutdown(self, wait: bool = True) -> None:
        """
        Cancel all pending timers and settle running builds.

        Args:
            wait: Wait for running builds to finish; cancel them otherwise
        """
        self._closed = True

        timers = list(self._timers.values())
        self._timers.clear()
        for timer in timers:
            timer.cancel()
            record = self.get_record(timer.key)
            if record.status == BuildStatus.SCHEDULED:
                record.status = BuildStatus.IDLE
        await asyncio.gather(
            *(timer.handle for timer in timers if timer.handle is not None),
            return_exceptions=True,
        )

        running = {key: task for key, task in self._running.items() if not task.done()}
        if not wait:
            for task in running.values():
                task.cancel()
        await asyncio.gather(*running.values(), return_exceptions=True)

        # A task cancelled before it started never reached its own handler
        for key in running:
            record = self.get_record(key)
            if record.status == BuildStatus.BUILDING:
                await self._fail(record, "Build cancelled")

        logger.info(
            f"Build scheduler shut down: {len(timers)} timers cancelled, "
            f"{len(running)} builds settled"
        )

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("BuildScheduler has been shut down")

    def _schedule(self, key: BuildKey, delay: float, kind: str) -> DelayedTask:
        previous = self._timers.pop(key, None)
        if previous is not None:
            previous.cancel()

        timer = DelayedTask(key=key, kind=kind, scheduled_for=self.clock.now() + delay)
        timer.handle = asyncio.ensure_future(self._fire(timer))
        self._timers[key] = timer

        record = self.get_record(key)
        record.status = BuildStatus.SCHEDULED
        record.requested_at = _utcnow()
        return timer

    async def _fire(self, timer: DelayedTask) -> None:
        await self.clock.sleep(timer.scheduled_for - self.clock.now())
        if self._timers.get(timer.key) is not timer:
            return
        del self._timers[timer.key]
        self._start_build(timer.key)

    def _start_build(self, key: BuildKey) -> asyncio.Task:
        running = self._running.get(key)
        if running is not None and not running.done():
            return running

        # Set synchronously so no other caller can start a second build
        record = self.get_record(key)
        record.status = BuildStatus.BUILDING
        record.build_timestamp = _utcnow()
        record.attempts += 1
        record.rebuild_requested = False

        task = asyncio.ensure_future(self._execute(key))
        self._running[key] = task
        return task

    async def _execute(self, key: BuildKey) -> None:
        record = self.get_record(key)
        logger.info(f"Building context for {key} (attempt {record.retry_count + 1})")

        try:
            await self.store.mark_building(key)
            context = await self._build_fn(key)
        except asyncio.CancelledError:
            logger.warning(f"Context build cancelled for {key}")
            await self._fail(record, "Build cancelled")
            raise
        except NoDocumentsError as e:
            logger.warning(f"No documents found for {key}")
            await self._fail(record, str(e))
        except Exception as e:
            record.retry_count += 1
            record.error_message = str(e)
            logger.error(f"Context build failed for {key}: {e}")

            if record.retry_count < self.config.max_attempts and not self._closed:
                logger.info(
                    f"Retrying context build ({record.retry_count + 1}/"
                    f"{self.config.max_attempts}) in {self.config.retry_delay_seconds:g} seconds"
                )
                self._schedule(key, self.config.retry_delay_seconds, RETRY)
            else:
                await self._fail(record, str(e))
        else:
            record.status = BuildStatus.COMPLETE
            record.retry_count = 0
            record.error_message = None
            record.checksum = context.checksum
            record.build_timestamp = context.build_timestamp
            logger.info(
                f"Context built successfully for {key}: {context.token_count} tokens "
                f"from {context.document_count} documents"
            )
        finally:
            if self._running.get(key) is asyncio.current_task():
                del self._running[key]

        self._schedule_follow_up(record)

    def _schedule_follow_up(self, record: BuildRecord) -> None:
        """Arm a debounced build for triggers that arrived while building."""
        if not record.rebuild_requested or self._closed:
            return
        record.rebuild_requested = False
        record.retry_count = 0
        record.error_message = None
        self._schedule(record.key, self.config.debounce_seconds, DEBOUNCE)
        logger.info(
            f"Documents changed during build for {record.key}, rebuilding in "
            f"{self.config.debounce_seconds:g} seconds"
        )

    async def _fail(self, record: BuildRecord, reason: str) -> None:
        record.status = BuildStatus.FAILED
        record.error_message = reason
        try:
            await self.store.mark_failed(record.key, reason)
        except Exception as e:
            logger.error(f"Error marking context as failed for {record.key}: {e}")
