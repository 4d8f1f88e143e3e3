"""
Telemetry: Prometheus metrics and Sentry error tracking.
"""

from matchday.telemetry.metrics import (
    record_job_run,
    record_cache_lookup,
    set_cache_entries,
    record_provider_request,
    get_metrics_text,
)
from matchday.telemetry.sentry import init_sentry, capture_exception

__all__ = [
    "record_job_run",
    "record_cache_lookup",
    "set_cache_entries",
    "record_provider_request",
    "get_metrics_text",
    "init_sentry",
    "capture_exception",
]
