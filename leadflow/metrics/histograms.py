from __future__ import annotations

from prometheus_client import Histogram

from leadflow.metrics.prometheus import get_prometheus_registry, sanitize_label

job_duration_metric = Histogram(
    "leadflow_job_duration_seconds",
    "Scheduled job duration",
    ["job"],
    buckets=(0.1, 0.5, 1, 5, 15, 30, 60, 120, 300, 600),
    registry=get_prometheus_registry(),
)


def observe_job_duration(*, job: str, seconds: float) -> None:
    job_duration_metric.labels(job=sanitize_label(job)).observe(max(0.0, float(seconds)))
