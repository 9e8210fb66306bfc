"""
Build Scheduling Module.

Per-key background build scheduling:
- Debounce bursts of triggers into one build
- Single-flight: at most one running build per key
- Fixed-backoff retry, terminal failure after the last attempt
- Injectable clock so timers can be driven without real waits

Usage:
    from scheduling import BuildScheduler

    scheduler = BuildScheduler(build_fn, store)
    scheduler.request_build(key)
"""

from .build_scheduler import BuildRecord, BuildScheduler
from .clock import Clock, DelayedTask, ManualClock, SystemClock

__all__ = [
    "BuildScheduler",
    "BuildRecord",
    "Clock",
    "DelayedTask",
    "ManualClock",
    "SystemClock",
]
