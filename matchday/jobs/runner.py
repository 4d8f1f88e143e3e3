"""Guarded job execution with timing and running statistics.

A JobRunner owns the state of one job type. Its guard flag makes executions
of that job strictly serial on the event loop: a second run() arriving while
the first is suspended on I/O is rejected with an "already_running" result,
never queued.

Usage:
    runner = JobRunner("news_generation")

    async def task(max_units):
        ...
        return TaskOutcome(items_processed=3)

    job_run = await runner.run(task, max_units=5)
    if job_run.already_running:
        ...
"""

import asyncio
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from matchday.telemetry.metrics import record_job_run
from matchday.telemetry.sentry import capture_exception

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_ERROR = "error"
STATUS_ALREADY_RUNNING = "already_running"


@dataclass
class TaskOutcome:
    """What a task reports back to its runner."""

    items_processed: int = 0
    details: dict = field(default_factory=dict)


Task = Callable[[Optional[int]], Awaitable[TaskOutcome]]


@dataclass(frozen=True)
class JobRun:
    """Result of one run() call. Immutable once built."""

    job: str
    status: str
    started_at: datetime
    ended_at: datetime
    items_processed: int = 0
    error: Optional[str] = None
    details: dict = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == STATUS_OK

    @property
    def already_running(self) -> bool:
        return self.status == STATUS_ALREADY_RUNNING

    @property
    def duration_ms(self) -> int:
        return int((self.ended_at - self.started_at).total_seconds() * 1000)

    @property
    def message(self) -> str:
        if self.already_running:
            return f"Job {self.job} already running"
        if self.succeeded:
            return f"Processed {self.items_processed} items"
        return self.error or "Job failed"

    def to_dict(self) -> dict:
        return {
            "job": self.job,
            "status": self.status,
            "succeeded": self.succeeded,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat(),
            "duration_ms": self.duration_ms,
            "items_processed": self.items_processed,
            "error": self.error,
            "message": self.message,
            "details": self.details,
        }


@dataclass
class JobStats:
    """Running counters. Counts only grow; last_error is overwritten."""

    total_runs: int = 0
    total_items_processed: int = 0
    last_error: Optional[str] = None
    successful_runs: int = 0
    failed_runs: int = 0
    skipped_runs: int = 0


@dataclass
class JobState:
    """Mutable state of one job type."""

    is_running: bool = False
    last_run: Optional[datetime] = None
    last_result: Optional[JobRun] = None
    stats: JobStats = field(default_factory=JobStats)

    def snapshot(self) -> dict:
        return {
            "is_running": self.is_running,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_result": self.last_result.to_dict() if self.last_result else None,
            "stats": asdict(self.stats),
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobRunner:
    """Runs tasks for one job type under a mutual-exclusion guard."""

    def __init__(
        self,
        name: str,
        timeout_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.name = name
        self.timeout_seconds = timeout_seconds or None
        self._clock = clock
        self.state = JobState()
        self._last_token = 0
        self._holder: Optional[int] = None

    @property
    def is_running(self) -> bool:
        return self.state.is_running

    def try_acquire(self) -> Optional[int]:
        """
        Take the guard without awaiting.

        Returns a token to pass to run_acquired() and release(), or None when
        the guard is already held.
        """
        if self.state.is_running:
            return None
        self._last_token += 1
        self._holder = self._last_token
        self.state.is_running = True
        return self._last_token

    def release(self, token: int) -> None:
        """Release the guard if token still holds it; stale tokens are ignored."""
        if self._holder == token:
            self._holder = None
            self.state.is_running = False

    async def run(self, task: Task, max_units: Optional[int] = None) -> JobRun:
        """
        Execute task unless another execution of this job is in progress.

        The guard is taken before the first await and released on every exit
        path. Task exceptions are converted into a failed JobRun and never
        propagate; cancellation releases the guard and propagates.
        """
        token = self.try_acquire()
        if token is None:
            return self._skip()
        return await self.run_acquired(token, task, max_units)

    async def run_acquired(self, token: int, task: Task, max_units: Optional[int] = None) -> JobRun:
        """Execute task under a guard already taken with try_acquire()."""
        started_at = self._clock()
        logger.info(f"[JOB:{self.name}] Started (max_units={max_units})")

        try:
            outcome = await self._invoke(task, max_units)
        except Exception as e:
            job_run = self._finish_failure(started_at, e)
        else:
            job_run = self._finish_success(started_at, outcome)
        finally:
            self.release(token)

        record_job_run(self.name, job_run.status, job_run.duration_ms, job_run.items_processed)
        return job_run

    def _skip(self) -> JobRun:
        now = self._clock()
        logger.info(f"[JOB:{self.name}] Already running, skipping")
        self.state.stats.skipped_runs += 1
        record_job_run(self.name, STATUS_ALREADY_RUNNING, 0)
        return JobRun(
            job=self.name,
            status=STATUS_ALREADY_RUNNING,
            started_at=now,
            ended_at=now,
        )

    async def _invoke(self, task: Task, max_units: Optional[int]) -> TaskOutcome:
        if self.timeout_seconds:
            try:
                return await asyncio.wait_for(task(max_units), timeout=self.timeout_seconds)
            except asyncio.TimeoutError:
                raise TimeoutError(f"timed out after {self.timeout_seconds:g}s")
        return await task(max_units)

    def _finish_success(self, started_at: datetime, outcome: TaskOutcome) -> JobRun:
        ended_at = self._clock()
        job_run = JobRun(
            job=self.name,
            status=STATUS_OK,
            started_at=started_at,
            ended_at=ended_at,
            items_processed=outcome.items_processed,
            details=dict(outcome.details),
        )

        stats = self.state.stats
        stats.total_runs += 1
        stats.successful_runs += 1
        stats.total_items_processed += outcome.items_processed
        stats.last_error = None
        self.state.last_run = ended_at
        self.state.last_result = job_run

        logger.info(
            f"[JOB:{self.name}] Completed: items={outcome.items_processed}, "
            f"duration={job_run.duration_ms}ms"
        )
        return job_run

    def _finish_failure(self, started_at: datetime, error: Exception) -> JobRun:
        ended_at = self._clock()
        message = str(error) or type(error).__name__
        job_run = JobRun(
            job=self.name,
            status=STATUS_ERROR,
            started_at=started_at,
            ended_at=ended_at,
            error=message,
        )

        stats = self.state.stats
        stats.total_runs += 1
        stats.failed_runs += 1
        stats.last_error = message
        self.state.last_run = ended_at
        self.state.last_result = job_run

        logger.error(f"[JOB:{self.name}] Failed after {job_run.duration_ms}ms: {message}")
        capture_exception(error, job_id=self.name)
        return job_run
