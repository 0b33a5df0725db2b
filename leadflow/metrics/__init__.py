from leadflow.metrics.counters import (
    increment_cache_error,
    increment_cache_hit,
    increment_cache_miss,
    increment_cache_write,
    increment_job_run,
    increment_tag_invalidation,
)
from leadflow.metrics.histograms import observe_job_duration
from leadflow.metrics.prometheus import get_prometheus_registry

__all__ = [
    "get_prometheus_registry",
    "increment_cache_error",
    "increment_cache_hit",
    "increment_cache_miss",
    "increment_cache_write",
    "increment_job_run",
    "increment_tag_invalidation",
    "observe_job_duration",
]
