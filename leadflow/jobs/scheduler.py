from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable

from apscheduler.triggers.cron import CronTrigger

from leadflow.db.encoding import utcnow
from leadflow.metrics import increment_job_run, observe_job_duration
from leadflow.models.errors import NotFoundError

logger = logging.getLogger(__name__)

JobHandler = Callable[[], Awaitable[dict[str, Any] | None]]

_ONE_TICK = timedelta(microseconds=1)


@dataclass
class JobRun:
    job: str
    trigger: str
    started_at: datetime
    finished_at: datetime | None = None
    status: str = "running"
    result: dict[str, Any] | None = None
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "job": self.job,
            "trigger": self.trigger,
            "status": self.status,
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "result": self.result,
            "error": self.error,
        }


@dataclass
class ScheduledJob:
    name: str
    cron_expression: str
    handler: JobHandler
    timezone: str = "UTC"
    running: bool = False
    active_runs: int = 0
    run_count: int = 0
    failure_count: int = 0
    next_run_at: datetime | None = None
    last_run: JobRun | None = None
    trigger: CronTrigger = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.trigger = CronTrigger.from_crontab(self.cron_expression, timezone=self.timezone)

    def next_fire_time(self, after: datetime) -> datetime | None:
        """First fire time at or after ``after``."""
        return self.trigger.get_next_fire_time(None, after)

    def status(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "cronExpression": self.cron_expression,
            "running": self.running,
            "activeRuns": self.active_runs,
            "runCount": self.run_count,
            "failureCount": self.failure_count,
            "nextRunAt": self.next_run_at.isoformat() if self.next_run_at else None,
            "lastRun": self.last_run.as_dict() if self.last_run else None,
        }


class JobScheduler:
    """Fires each job on its cron schedule from its own asyncio timer task.

    A fire starts the handler as a separate task, so a slow run never delays
    the next fire and runs of the same job may overlap. Handler errors are
    logged and recorded on the job; they never stop the scheduler or other
    jobs. ``stop()`` cancels every timer; runs already in flight finish on
    their own and can be awaited with ``wait_closed()``.
    """

    def __init__(
        self,
        jobs: list[ScheduledJob],
        *,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        max_sleep: float = 60.0,
    ) -> None:
        names = [job.name for job in jobs]
        if len(names) != len(set(names)):
            raise ValueError("job names must be unique")
        self.jobs: dict[str, ScheduledJob] = {job.name: job for job in jobs}
        self._clock = clock
        self._sleep = sleep
        self.max_sleep = max_sleep
        self._timers: dict[str, asyncio.Task[None]] = {}
        self._runs: set[asyncio.Task[JobRun]] = set()

    @property
    def running(self) -> bool:
        return bool(self._timers)

    def start(self) -> None:
        if self._timers:
            return
        for job in self.jobs.values():
            job.running = True
            self._timers[job.name] = asyncio.create_task(self._timer(job), name=f"job-timer:{job.name}")
            logger.info("job %s scheduled with %s", job.name, job.cron_expression)
        logger.info("scheduler started with %d jobs", len(self._timers))

    async def stop(self) -> None:
        timers, self._timers = self._timers, {}
        for job in self.jobs.values():
            job.running = False
            job.next_run_at = None
        for task in timers.values():
            task.cancel()
        for task in timers.values():
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if timers:
            logger.info("scheduler stopped")

    async def wait_closed(self, timeout: float | None = None) -> None:
        if not self._runs:
            return
        _, pending = await asyncio.wait(set(self._runs), timeout=timeout)
        if pending:
            logger.warning("%d job runs still in flight after %ss", len(pending), timeout)

    async def _timer(self, job: ScheduledJob) -> None:
        last_fire: datetime | None = None
        while True:
            now = self._clock()
            after = now if last_fire is None else max(now, last_fire + _ONE_TICK)
            fire_at = job.next_fire_time(after)
            if fire_at is None:
                logger.info("job %s has no further fire times", job.name)
                return
            job.next_run_at = fire_at

            while (delay := (fire_at - self._clock()).total_seconds()) > 0:
                await self._sleep(min(delay, self.max_sleep))

            last_fire = fire_at
            self._spawn(job)

    def _spawn(self, job: ScheduledJob) -> None:
        task = asyncio.create_task(self._execute(job, "schedule"), name=f"job-run:{job.name}")
        self._runs.add(task)
        task.add_done_callback(self._runs.discard)

    async def _execute(self, job: ScheduledJob, trigger: str) -> JobRun:
        run = JobRun(job=job.name, trigger=trigger, started_at=self._clock())
        job.active_runs += 1
        started = time.perf_counter()
        logger.info("job %s started (%s)", job.name, trigger)
        try:
            run.result = await job.handler()
            run.status = "success"
        except Exception as exc:
            run.status = "failed"
            run.error = str(exc) or exc.__class__.__name__
            job.failure_count += 1
            logger.exception("job %s failed", job.name)
        finally:
            job.active_runs -= 1
            job.run_count += 1
            run.finished_at = self._clock()
            job.last_run = run
            increment_job_run(job=job.name, status=run.status)
            observe_job_duration(job=job.name, seconds=time.perf_counter() - started)
        if run.status == "success":
            logger.info("job %s completed: %s", job.name, run.result)
        return run

    async def run_now(self, name: str) -> JobRun:
        job = self.jobs.get(name)
        if job is None:
            raise NotFoundError(message=f"Unknown job: {name}", param="name")
        return await self._execute(job, "manual")

    def status(self) -> list[dict[str, Any]]:
        return [job.status() for job in self.jobs.values()]
