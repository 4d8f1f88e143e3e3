"""Guarded job runners, time triggers and schedulers."""

from matchday.jobs.runner import JobRun, JobRunner, JobState, JobStats, TaskOutcome
from matchday.jobs.scheduler import JobBinding, JobScheduler, ManualTrigger, UnknownJobError
from matchday.jobs.status import StatusReporter
from matchday.jobs.triggers import DailyAt, Every, parse_daily_times
from matchday.jobs.cleanup import RetentionCleaner, RetentionPolicy

__all__ = [
    "JobRun",
    "JobRunner",
    "JobState",
    "JobStats",
    "TaskOutcome",
    "JobBinding",
    "JobScheduler",
    "ManualTrigger",
    "UnknownJobError",
    "StatusReporter",
    "DailyAt",
    "Every",
    "parse_daily_times",
    "RetentionCleaner",
    "RetentionPolicy",
]
