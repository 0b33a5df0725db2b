from __future__ import annotations

from prometheus_client import Counter

from leadflow.metrics.prometheus import get_prometheus_registry, sanitize_label

cache_hit_metric = Counter(
    "leadflow_cache_hit_total",
    "Total cache hits",
    ["tier", "scope"],
    registry=get_prometheus_registry(),
)

cache_miss_metric = Counter(
    "leadflow_cache_miss_total",
    "Total cache misses",
    ["tier", "scope"],
    registry=get_prometheus_registry(),
)

cache_write_metric = Counter(
    "leadflow_cache_write_total",
    "Total cache writes",
    ["tier", "scope"],
    registry=get_prometheus_registry(),
)

cache_error_metric = Counter(
    "leadflow_cache_error_total",
    "Total cache backend errors, all of which were failed open",
    ["backend", "operation"],
    registry=get_prometheus_registry(),
)

tag_invalidation_metric = Counter(
    "leadflow_cache_tag_invalidated_keys_total",
    "Cache keys removed through tag invalidation",
    ["tag"],
    registry=get_prometheus_registry(),
)

job_runs_metric = Counter(
    "leadflow_job_runs_total",
    "Scheduled job executions",
    ["job", "status"],
    registry=get_prometheus_registry(),
)


def increment_cache_hit(*, tier: str, scope: str) -> None:
    cache_hit_metric.labels(tier=sanitize_label(tier), scope=sanitize_label(scope)).inc()


def increment_cache_miss(*, tier: str, scope: str) -> None:
    cache_miss_metric.labels(tier=sanitize_label(tier), scope=sanitize_label(scope)).inc()


def increment_cache_write(*, tier: str, scope: str) -> None:
    cache_write_metric.labels(tier=sanitize_label(tier), scope=sanitize_label(scope)).inc()


def increment_cache_error(*, backend: str, operation: str) -> None:
    cache_error_metric.labels(backend=sanitize_label(backend), operation=sanitize_label(operation)).inc()


def increment_tag_invalidation(*, tag: str, count: int) -> None:
    tag_invalidation_metric.labels(tag=sanitize_label(tag)).inc(max(0, int(count)))


def increment_job_run(*, job: str, status: str) -> None:
    job_runs_metric.labels(job=sanitize_label(job), status=sanitize_label(status)).inc()
