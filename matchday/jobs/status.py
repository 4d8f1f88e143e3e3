"""Read-only status snapshots of a JobScheduler."""

from typing import Optional

from matchday.jobs.scheduler import JobScheduler


class StatusReporter:
    """Builds status dicts for logging and the ops endpoints. Never mutates state."""

    def __init__(self, scheduler: JobScheduler, config: Optional[dict] = None):
        self.scheduler = scheduler
        self.static_config = dict(config or {})

    def status(self) -> dict:
        """
        Current state of the scheduler.

        Top-level last_run / last_result / stats describe the primary job;
        `jobs` holds the same block for every bound job.
        """
        primary = self.scheduler.primary.runner.state.snapshot()
        next_runs = self.scheduler.next_run_times()

        jobs = {}
        for job_id, binding in self.scheduler.bindings.items():
            jobs[job_id] = {
                **binding.runner.state.snapshot(),
                "next_run": next_runs.get(job_id),
                "config": binding.config(),
            }

        return {
            "name": self.scheduler.name,
            "running": self.scheduler.running,
            "is_running": primary["is_running"],
            "last_run": primary["last_run"],
            "last_result": primary["last_result"],
            "stats": primary["stats"],
            "config": {
                **self.static_config,
                "jobs": {job_id: job["config"] for job_id, job in jobs.items()},
            },
            "jobs": jobs,
        }

    def summary_line(self) -> str:
        """One-line summary for heartbeat logging."""
        parts = []
        for job_id, binding in self.scheduler.bindings.items():
            state = binding.runner.state
            stats = state.stats
            flag = "RUNNING" if state.is_running else "idle"
            parts.append(
                f"{job_id}={flag} runs={stats.total_runs} items={stats.total_items_processed}"
                + (f" last_error={stats.last_error!r}" if stats.last_error else "")
            )
        active = "active" if self.scheduler.running else "stopped"
        return f"[SCHEDULER:{self.scheduler.name}] {active}: " + "; ".join(parts)
