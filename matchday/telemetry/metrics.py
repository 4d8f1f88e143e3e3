"""
Prometheus metrics for jobs, caches and upstream providers.

Design principles:
- Low cardinality (controlled labels)
- Best-effort (never block main flow)

ALLOWED LABELS (bounded sets):
- job:      "news_generation", "news_cleanup", "odds_sync", ... (max ~10)
- status:   "ok", "error", "already_running"
- cache:    "countries", "standings", "team_form", "odds"
- provider: "api_football", "claude", "rss"
- endpoint: "fixtures", "odds", "standings", ... (max ~20)

Never use fixture ids, team names, URLs or error messages as labels.
"""

import time
import logging

from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    generate_latest,
    CONTENT_TYPE_LATEST,
    REGISTRY,
)

logger = logging.getLogger(__name__)

# =============================================================================
# JOB HEALTH METRICS
# =============================================================================

job_runs_total = Counter(
    "matchday_job_runs_total",
    "Total job runs by job and status",
    ["job", "status"],  # status: ok, error, already_running
)

job_last_success_timestamp = Gauge(
    "matchday_job_last_success_timestamp",
    "Unix timestamp of last successful job run",
    ["job"],
)

job_duration_ms = Histogram(
    "matchday_job_duration_ms",
    "Job duration in milliseconds",
    ["job"],
    buckets=[100, 500, 1000, 5000, 10000, 30000, 60000, 120000, 300000, 600000],
)

job_items_processed_total = Counter(
    "matchday_job_items_processed_total",
    "Items processed by successful job runs",
    ["job"],
)

# =============================================================================
# CACHE METRICS
# =============================================================================

cache_requests_total = Counter(
    "matchday_cache_requests_total",
    "Cache lookups by cache and result",
    ["cache", "result"],  # result: hit, miss
)

cache_entries = Gauge(
    "matchday_cache_entries",
    "Current number of entries held by a cache",
    ["cache"],
)

# =============================================================================
# PROVIDER METRICS
# =============================================================================

provider_requests_total = Counter(
    "matchday_provider_requests_total",
    "Total requests to upstream providers",
    ["provider", "endpoint", "status_code"],
)

provider_latency_ms = Histogram(
    "matchday_provider_latency_ms",
    "Upstream request latency in milliseconds",
    ["provider", "endpoint"],
    buckets=[10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000],
)


def record_job_run(
    job: str,
    status: str,
    duration_ms: float,
    items_processed: int = 0,
) -> None:
    """
    Record a job run with status and duration.

    Args:
        job: Job identifier (news_generation, odds_sync, ...)
        status: "ok", "error", "already_running"
        duration_ms: Job duration in milliseconds
        items_processed: Items reported by a successful run
    """
    try:
        job_runs_total.labels(job=job, status=status).inc()
        if duration_ms > 0:
            job_duration_ms.labels(job=job).observe(duration_ms)
        if status == "ok":
            job_last_success_timestamp.labels(job=job).set(time.time())
            if items_processed > 0:
                job_items_processed_total.labels(job=job).inc(items_processed)
    except Exception as e:
        logger.warning(f"Failed to record job run metric: {e}")


def record_cache_lookup(cache: str, hit: bool) -> None:
    """Count a cache hit or miss."""
    try:
        cache_requests_total.labels(cache=cache, result="hit" if hit else "miss").inc()
    except Exception as e:
        logger.warning(f"Failed to record cache metric: {e}")


def set_cache_entries(cache: str, total: int) -> None:
    """Set the current entry count gauge for a cache."""
    try:
        cache_entries.labels(cache=cache).set(total)
    except Exception as e:
        logger.warning(f"Failed to set cache entries metric: {e}")


def record_provider_request(
    provider: str,
    endpoint: str,
    status_code: int,
    latency_ms: float,
) -> None:
    """Record one upstream request (status_code 0 = network error / timeout)."""
    try:
        provider_requests_total.labels(
            provider=provider, endpoint=endpoint, status_code=str(status_code)
        ).inc()
        provider_latency_ms.labels(provider=provider, endpoint=endpoint).observe(latency_ms)
    except Exception as e:
        logger.warning(f"Failed to record provider metric: {e}")


def get_metrics_text() -> tuple[str, str]:
    """
    Generate Prometheus metrics text output.

    Returns:
        Tuple of (content, content_type)
    """
    return generate_latest(REGISTRY).decode("utf-8"), CONTENT_TYPE_LATEST
