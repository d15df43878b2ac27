"""
Recurring job scheduler with an injectable clock.

Every due job runs in its own task, so a slow entry/exit cycle never holds
back the touch monitor. A job is not started again while its previous run is
still in flight. The loop alternates ``dispatch_due()`` and
``clock.sleep(tick)``; tests drive ``run_pending()`` directly against a
``VirtualClock``.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional

from botengine.utils.time_utils import utc_now

logger = logging.getLogger("scheduler")


class Clock:
    def monotonic(self) -> float:
        raise NotImplementedError

    def now(self) -> datetime:
        raise NotImplementedError

    async def sleep(self, seconds: float):
        raise NotImplementedError


class SystemClock(Clock):
    def monotonic(self) -> float:
        return time.monotonic()

    def now(self) -> datetime:
        return utc_now()

    async def sleep(self, seconds: float):
        await asyncio.sleep(seconds)


class VirtualClock(Clock):
    """Time moves only through ``advance`` (or ``sleep``, which advances)."""

    def __init__(self, start: Optional[datetime] = None):
        self._start = start or datetime(2024, 1, 1)
        self._elapsed = 0.0

    def advance(self, seconds: float):
        self._elapsed += seconds

    def monotonic(self) -> float:
        return self._elapsed

    def now(self) -> datetime:
        return self._start + timedelta(seconds=self._elapsed)

    async def sleep(self, seconds: float):
        self.advance(seconds)
        await asyncio.sleep(0)


@dataclass
class RecurringJob:
    name: str
    interval: float
    func: Callable[[], Awaitable]
    first_delay: float = 0.0
    next_run: float = 0.0
    runs: int = 0
    failures: int = 0
    last_error: Optional[str] = None


@dataclass
class JobStatus:
    name: str
    interval: float
    runs: int
    failures: int
    next_run_in: float
    in_flight: bool = False
    last_error: Optional[str] = None


class Scheduler:
    def __init__(self, clock: Clock, tick: float = 1.0):
        self.clock = clock
        self.tick = tick
        self.jobs: Dict[str, RecurringJob] = {}
        self._in_flight: Dict[str, asyncio.Task] = {}
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    def add_job(self, name: str, interval: float, func: Callable[[], Awaitable], first_delay: float = 0.0) -> RecurringJob:
        job = RecurringJob(name, interval, func, first_delay, next_run=self.clock.monotonic() + first_delay)
        self.jobs[name] = job
        logger.info("Registered job %s every %ss (first run in %ss)", name, interval, first_delay)
        return job

    def reset(self):
        """Re-arm every job relative to the current clock time."""
        now = self.clock.monotonic()
        for job in self.jobs.values():
            job.next_run = now + job.first_delay

    def is_in_flight(self, name: str) -> bool:
        task = self._in_flight.get(name)
        return task is not None and not task.done()

    async def _run_job(self, job: RecurringJob):
        try:
            await job.func()
        except Exception as e:
            job.failures += 1
            job.last_error = str(e)
            logger.exception("Job %s failed", job.name)
        finally:
            self._in_flight.pop(job.name, None)
        job.runs += 1

    def dispatch_due(self) -> List[str]:
        """Start every due job that is not already running; returns their names."""
        now = self.clock.monotonic()
        started = []
        for job in list(self.jobs.values()):
            if now < job.next_run:
                continue
            if self.is_in_flight(job.name):
                logger.debug("Job %s still running, skipping this tick", job.name)
                continue
            job.next_run = now + job.interval
            self._in_flight[job.name] = asyncio.create_task(self._run_job(job))
            started.append(job.name)
        return started

    async def run_pending(self) -> List[str]:
        """Run each due job once and wait for them; returns the names that ran."""
        started = self.dispatch_due()
        tasks = [self._in_flight[name] for name in started if name in self._in_flight]
        if tasks:
            await asyncio.gather(*tasks)
        return started

    def status(self) -> List[JobStatus]:
        now = self.clock.monotonic()
        return [
            JobStatus(j.name, j.interval, j.runs, j.failures, max(0.0, j.next_run - now),
                      self.is_in_flight(j.name), j.last_error)
            for j in self.jobs.values()
        ]

    async def start(self):
        if self._running:
            return
        self.reset()
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("Scheduler started with %d jobs", len(self.jobs))

    async def stop(self):
        if not self._running:
            return
        self._running = False
        tasks = list(self._in_flight.values())
        if self._task:
            tasks.append(self._task)
            self._task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._in_flight.clear()
        logger.info("Scheduler stopped")

    async def _loop(self):
        while self._running:
            self.dispatch_due()
            await self.clock.sleep(self.tick)
