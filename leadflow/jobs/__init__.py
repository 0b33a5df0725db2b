from __future__ import annotations

from typing import Any, Awaitable, Callable

from .analytics import AnalyticsAggregationJob
from .archive import ArchiveJob
from .cache_warming import CacheWarmingJob
from .lead_scoring import LeadScoringJob
from .scheduler import JobRun, JobScheduler, ScheduledJob
from .token_refresh import TokenRefreshJob

JOB_NAMES = ("analytics", "lead_scoring", "token_refresh", "cache_warming", "archive")


def build_scheduler(
    schedules: dict[str, str],
    handlers: dict[str, Callable[[], Awaitable[dict[str, Any] | None]]],
    *,
    timezone: str = "UTC",
    **scheduler_kwargs: Any,
) -> JobScheduler:
    """Pair every job handler with its cron expression from ``schedules``."""
    missing = [name for name in handlers if name not in schedules]
    if missing:
        raise ValueError(f"No schedule configured for jobs: {', '.join(sorted(missing))}")
    jobs = [
        ScheduledJob(name=name, cron_expression=schedules[name], handler=handler, timezone=timezone)
        for name, handler in handlers.items()
    ]
    return JobScheduler(jobs, **scheduler_kwargs)


__all__ = [
    "JOB_NAMES",
    "AnalyticsAggregationJob",
    "ArchiveJob",
    "CacheWarmingJob",
    "JobRun",
    "JobScheduler",
    "LeadScoringJob",
    "ScheduledJob",
    "TokenRefreshJob",
    "build_scheduler",
]
