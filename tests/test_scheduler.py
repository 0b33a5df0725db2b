from __future__ import annotations

from datetime import UTC, datetime

import pytest

from leadflow.config import REDUCED_SCHEDULES, STANDARD_SCHEDULES
from leadflow.jobs import JOB_NAMES, JobScheduler, ScheduledJob, build_scheduler
from leadflow.models.errors import NotFoundError


class Recorder:
    def __init__(self, fail: bool = False) -> None:
        self.calls = 0
        self.fail = fail

    async def __call__(self):
        self.calls += 1
        if self.fail:
            raise RuntimeError("handler exploded")
        return {"calls": self.calls}


def _scheduler(clock, **handlers) -> JobScheduler:
    jobs = [ScheduledJob(name=name, cron_expression="0 * * * *", handler=handler) for name, handler in handlers.items()]
    return JobScheduler(jobs, clock=clock, sleep=clock.sleep)


def test_next_fire_time_follows_cron():
    job = ScheduledJob(name="nightly", cron_expression="0 2 * * *", handler=Recorder())
    after = datetime(2024, 3, 14, 12, 0, tzinfo=UTC)
    assert job.next_fire_time(after) == datetime(2024, 3, 15, 2, 0, tzinfo=UTC)


def test_invalid_cron_expression_is_rejected():
    with pytest.raises(ValueError):
        ScheduledJob(name="bad", cron_expression="every hour", handler=Recorder())


def test_duplicate_job_names_are_rejected():
    job = ScheduledJob(name="a", cron_expression="0 * * * *", handler=Recorder())
    with pytest.raises(ValueError):
        JobScheduler([job, job])


@pytest.mark.asyncio
async def test_job_fires_on_schedule(clock):
    handler = Recorder()
    scheduler = _scheduler(clock, hourly=handler)
    scheduler.start()

    await clock.advance(60)
    assert handler.calls == 0
    assert scheduler.jobs["hourly"].next_run_at == datetime(2024, 3, 14, 13, 0, tzinfo=UTC)

    await clock.advance(3600)
    assert handler.calls == 1
    assert scheduler.jobs["hourly"].last_run.status == "success"

    await clock.advance(3600)
    assert handler.calls == 2
    await scheduler.stop()


@pytest.mark.asyncio
async def test_stop_cancels_timers_before_next_fire(clock):
    handler = Recorder()
    scheduler = _scheduler(clock, hourly=handler)
    scheduler.start()
    await clock.advance(10)

    await scheduler.stop()
    await clock.advance(7200)

    assert handler.calls == 0
    assert scheduler.running is False
    assert scheduler.jobs["hourly"].running is False


@pytest.mark.asyncio
async def test_failing_job_does_not_stop_other_jobs(clock):
    broken, healthy = Recorder(fail=True), Recorder()
    scheduler = _scheduler(clock, broken=broken, healthy=healthy)
    scheduler.start()

    await clock.advance(3600)
    await clock.advance(3600)

    assert broken.calls == 2
    assert healthy.calls == 2
    assert scheduler.jobs["broken"].failure_count == 2
    assert scheduler.jobs["broken"].last_run.error == "handler exploded"
    assert scheduler.jobs["healthy"].failure_count == 0
    assert scheduler.running is True
    await scheduler.stop()


@pytest.mark.asyncio
async def test_run_now_and_status(clock):
    handler = Recorder()
    scheduler = _scheduler(clock, manual=handler)

    run = await scheduler.run_now("manual")

    assert run.status == "success"
    assert run.trigger == "manual"
    assert run.result == {"calls": 1}
    status = scheduler.status()[0]
    assert status["name"] == "manual"
    assert status["runCount"] == 1
    assert status["running"] is False

    with pytest.raises(NotFoundError):
        await scheduler.run_now("unknown")


@pytest.mark.asyncio
async def test_run_now_records_failures_without_raising(clock):
    scheduler = _scheduler(clock, broken=Recorder(fail=True))
    run = await scheduler.run_now("broken")
    assert run.status == "failed"
    assert scheduler.jobs["broken"].failure_count == 1


def test_build_scheduler_wires_every_job_with_its_schedule():
    handlers = {name: Recorder() for name in JOB_NAMES}
    scheduler = build_scheduler(STANDARD_SCHEDULES, handlers)

    assert set(scheduler.jobs) == set(JOB_NAMES)
    assert scheduler.jobs["cache_warming"].cron_expression == "*/15 * * * *"

    reduced = build_scheduler(REDUCED_SCHEDULES, handlers)
    assert reduced.jobs["analytics"].cron_expression == "0 2 * * 0"

    with pytest.raises(ValueError):
        build_scheduler({"analytics": "0 2 * * *"}, handlers)
