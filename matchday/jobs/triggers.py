"""Trigger specifications for scheduled jobs.

A trigger is either a fixed time of day in a timezone or a fixed interval.
Both convert to APScheduler triggers for the shared AsyncIOScheduler.
"""

from dataclasses import dataclass
from typing import Union

from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger


@dataclass(frozen=True)
class DailyAt:
    """Fire every day at hour:minute in timezone."""

    hour: int
    minute: int = 0
    timezone: str = "UTC"

    def __post_init__(self):
        if not 0 <= self.hour <= 23:
            raise ValueError(f"hour out of range: {self.hour}")
        if not 0 <= self.minute <= 59:
            raise ValueError(f"minute out of range: {self.minute}")

    def to_apscheduler(self) -> CronTrigger:
        return CronTrigger(hour=self.hour, minute=self.minute, timezone=self.timezone)

    def describe(self) -> str:
        return f"daily {self.hour:02d}:{self.minute:02d} {self.timezone}"


@dataclass(frozen=True)
class Every:
    """Fire every `seconds` seconds, starting one interval after registration."""

    seconds: int

    def __post_init__(self):
        if self.seconds <= 0:
            raise ValueError(f"interval must be positive: {self.seconds}")

    @classmethod
    def minutes(cls, minutes: int) -> "Every":
        return cls(seconds=minutes * 60)

    @classmethod
    def hours(cls, hours: int) -> "Every":
        return cls(seconds=hours * 3600)

    def to_apscheduler(self) -> IntervalTrigger:
        return IntervalTrigger(seconds=self.seconds)

    def describe(self) -> str:
        if self.seconds % 3600 == 0:
            return f"every {self.seconds // 3600}h"
        if self.seconds % 60 == 0:
            return f"every {self.seconds // 60}m"
        return f"every {self.seconds}s"


TriggerSpec = Union[DailyAt, Every]


def parse_time_of_day(value: str, timezone: str = "UTC") -> DailyAt:
    """Parse "HH:MM" into a DailyAt trigger."""
    try:
        hour_str, minute_str = value.strip().split(":")
        return DailyAt(hour=int(hour_str), minute=int(minute_str), timezone=timezone)
    except ValueError as e:
        raise ValueError(f"Invalid time of day {value!r} (expected HH:MM): {e}") from e


def parse_daily_times(value: str, timezone: str = "UTC") -> list[DailyAt]:
    """Parse "06:00,18:00" into one DailyAt trigger per entry."""
    return [parse_time_of_day(part, timezone) for part in value.split(",") if part.strip()]
