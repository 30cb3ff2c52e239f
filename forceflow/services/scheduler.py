"""Fixed-cadence asyncio scheduler for recurring pipeline jobs."""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger("forceflow.scheduler")

JobFunc = Callable[[], Awaitable[Any]]
SleepFunc = Callable[[float], Awaitable[Any]]


@dataclass
class ScheduledJob:
    name: str
    interval: float
    func: JobFunc
    initial_delay: float = 0.0
    runs: int = 0
    failures: int = 0


class PeriodicScheduler:
    """Run each registered job on its own cadence until stopped.

    A job's next run is scheduled after the previous one returns, so a single
    job never overlaps itself. Exceptions raised by a job are logged and the
    loop continues. ``sleep`` is injectable so tests can drive the loop
    without wall-clock delays.
    """

    def __init__(self, *, sleep: SleepFunc = asyncio.sleep) -> None:
        self._sleep = sleep
        self._jobs: dict[str, ScheduledJob] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    @property
    def jobs(self) -> dict[str, ScheduledJob]:
        return dict(self._jobs)

    @property
    def started(self) -> bool:
        return bool(self._tasks)

    def add_job(
        self, name: str, interval: float, func: JobFunc, *, initial_delay: float = 0.0
    ) -> ScheduledJob:
        if name in self._jobs:
            raise ValueError(f"Job '{name}' is already registered")
        if interval <= 0:
            raise ValueError("interval must be positive")
        job = ScheduledJob(name=name, interval=interval, func=func, initial_delay=initial_delay)
        self._jobs[name] = job
        return job

    async def run_job_once(self, name: str) -> bool:
        """Run a job immediately in the caller's task; returns False if it raised."""

        job = self._jobs[name]
        job.runs += 1
        try:
            await job.func()
        except asyncio.CancelledError:
            raise
        except Exception:
            job.failures += 1
            logger.exception("Scheduled job %s failed", job.name)
            return False
        return True

    async def _loop(self, job: ScheduledJob) -> None:
        if job.initial_delay > 0:
            await self._sleep(job.initial_delay)
        while True:
            await self.run_job_once(job.name)
            await self._sleep(job.interval)

    def start(self) -> None:
        if self._tasks:
            return
        for job in self._jobs.values():
            self._tasks[job.name] = asyncio.create_task(self._loop(job), name=f"job:{job.name}")
            logger.info("Scheduled job %s every %.0f s", job.name, job.interval)

    async def join(self) -> None:
        """Wait until every job loop has ended (normally only through cancellation)."""

        await asyncio.gather(*self._tasks.values(), return_exceptions=True)

    async def stop(self) -> None:
        """Cancel all job loops and wait for them to unwind."""

        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if tasks:
            logger.info("Scheduler stopped")


__all__ = ["PeriodicScheduler", "ScheduledJob"]
