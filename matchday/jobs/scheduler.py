"""Scheduler that binds job runners to time triggers and manual triggers.

Each JobScheduler groups the bindings of one feature (news, odds, previews)
and registers them on a shared APScheduler AsyncIOScheduler. Every firing
goes through the bound JobRunner; the scheduler itself adds no locking, so
different bindings may run at the same time while overlapping firings of one
binding are rejected by that binding's runner.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from matchday.jobs.runner import JobRun, JobRunner, Task
from matchday.jobs.triggers import TriggerSpec

logger = logging.getLogger(__name__)


class UnknownJobError(KeyError):
    """Raised when a job id is not bound to the scheduler."""


@dataclass
class JobBinding:
    """A task, the runner that guards it and the triggers that fire it."""

    job_id: str
    runner: JobRunner
    task: Task
    triggers: list[TriggerSpec] = field(default_factory=list)
    max_units: Optional[int] = None
    description: str = ""

    def config(self) -> dict:
        return {
            "description": self.description,
            "triggers": [trigger.describe() for trigger in self.triggers],
            "max_units": self.max_units,
            "timeout_seconds": self.runner.timeout_seconds,
        }


@dataclass
class ManualTrigger:
    """Acknowledgement of a fire-and-forget manual trigger.

    `completion` is the asyncio.Task running the job; await it (or call
    wait()) to get the JobRun. It is None when the submit was not accepted.
    """

    job_id: str
    accepted: bool
    message: str
    completion: Optional["asyncio.Task[JobRun]"] = None

    async def wait(self) -> Optional[JobRun]:
        if self.completion is None:
            return None
        return await self.completion

    def to_dict(self) -> dict:
        return {
            "job_id": self.job_id,
            "accepted": self.accepted,
            "message": self.message,
        }


class JobScheduler:
    """Owns a group of job bindings plus their manual-trigger entry points."""

    def __init__(
        self,
        name: str,
        bindings: list[JobBinding],
        scheduler: AsyncIOScheduler,
    ):
        if not bindings:
            raise ValueError(f"Scheduler {name} needs at least one binding")
        self.name = name
        self.bindings = {binding.job_id: binding for binding in bindings}
        self._primary_job_id = bindings[0].job_id
        self._scheduler = scheduler
        self._started = False
        self._registered_ids: list[str] = []
        self._pending: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._started

    @property
    def primary(self) -> JobBinding:
        return self.bindings[self._primary_job_id]

    def binding(self, job_id: Optional[str] = None) -> JobBinding:
        """Look up a binding; None means the primary (first) binding."""
        key = job_id or self._primary_job_id
        try:
            return self.bindings[key]
        except KeyError:
            raise UnknownJobError(f"Scheduler {self.name} has no job {key!r}") from None

    def start(self) -> bool:
        """
        Register every binding's triggers.

        Returns False (and registers nothing) if already started.
        """
        if self._started:
            logger.warning(f"[SCHEDULER:{self.name}] Already started, skipping duplicate initialization")
            return False

        for binding in self.bindings.values():
            for index, trigger in enumerate(binding.triggers):
                aps_id = f"{self.name}:{binding.job_id}:{index}"
                self._scheduler.add_job(
                    self._fire,
                    trigger=trigger.to_apscheduler(),
                    args=[binding.job_id],
                    id=aps_id,
                    name=f"{binding.job_id} ({trigger.describe()})",
                    replace_existing=True,
                    # Overlap is rejected by the runner guard, not by APScheduler
                    max_instances=3,
                    coalesce=True,
                    misfire_grace_time=300,
                )
                self._registered_ids.append(aps_id)

        self._started = True
        logger.info(
            f"[SCHEDULER:{self.name}] Started:\n"
            + "\n".join(
                f"  - {binding.job_id}: {', '.join(t.describe() for t in binding.triggers) or 'manual only'}"
                f" (max_units={binding.max_units})"
                for binding in self.bindings.values()
            )
        )
        return True

    def stop(self) -> bool:
        """
        Remove this scheduler's triggers so no new firings happen.

        An in-flight run is not cancelled; it finishes and releases its guard.
        """
        if not self._started:
            logger.warning(f"[SCHEDULER:{self.name}] Not running")
            return False

        for aps_id in self._registered_ids:
            try:
                self._scheduler.remove_job(aps_id)
            except JobLookupError:
                logger.debug(f"[SCHEDULER:{self.name}] Job {aps_id} already removed")
        self._registered_ids.clear()
        self._started = False
        logger.info(f"[SCHEDULER:{self.name}] Stopped")
        return True

    async def _fire(self, job_id: str) -> JobRun:
        binding = self.binding(job_id)
        logger.info(f"[SCHEDULER:{self.name}] Scheduled {job_id} triggered")
        return await binding.runner.run(binding.task, binding.max_units)

    async def trigger_manual(
        self,
        job_id: Optional[str] = None,
        max_units: Optional[int] = None,
    ) -> JobRun:
        """Run a bound job now and wait for its JobRun."""
        binding = self.binding(job_id)
        units = max_units if max_units is not None else binding.max_units
        logger.info(f"[SCHEDULER:{self.name}] Manual trigger for {binding.job_id} (max_units={units})")
        return await binding.runner.run(binding.task, units)

    def submit_manual(
        self,
        job_id: Optional[str] = None,
        max_units: Optional[int] = None,
    ) -> ManualTrigger:
        """
        Start a bound job in the background and return immediately.

        The runner guard is reserved before returning, so of several submits
        in the same loop iteration only the first is accepted.
        Must be called from within the running event loop.
        """
        binding = self.binding(job_id)
        runner = binding.runner
        token = runner.try_acquire()
        if token is None:
            return ManualTrigger(
                job_id=binding.job_id,
                accepted=False,
                message=f"Job {binding.job_id} already running",
            )

        units = max_units if max_units is not None else binding.max_units
        logger.info(f"[SCHEDULER:{self.name}] Manual submit for {binding.job_id} (max_units={units})")
        completion = asyncio.create_task(runner.run_acquired(token, binding.task, units))
        self._pending.add(completion)
        completion.add_done_callback(self._pending.discard)
        # A task cancelled before its first step never reaches run_acquired's finally
        completion.add_done_callback(lambda _: runner.release(token))
        return ManualTrigger(
            job_id=binding.job_id,
            accepted=True,
            message=f"Job {binding.job_id} started (max_units={units})",
            completion=completion,
        )

    async def drain(self) -> None:
        """Wait for every submitted background run to finish."""
        while self._pending:
            pending = list(self._pending)
            logger.info(f"[SCHEDULER:{self.name}] Waiting for {len(pending)} background run(s)")
            await asyncio.gather(*pending, return_exceptions=True)

    def next_run_times(self) -> dict[str, Optional[str]]:
        """Earliest upcoming fire time per job id (ISO string), None if unscheduled."""
        earliest = {}
        for aps_id in self._registered_ids:
            aps_job = self._scheduler.get_job(aps_id)
            next_run = getattr(aps_job, "next_run_time", None) if aps_job else None
            if next_run is None:
                continue
            job_id = aps_id.split(":")[1]
            if job_id not in earliest or next_run < earliest[job_id]:
                earliest[job_id] = next_run
        return {
            job_id: earliest[job_id].isoformat() if job_id in earliest else None
            for job_id in self.bindings
        }
