"""Retention cleanup task: delete stored records older than a window."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from matchday.jobs.runner import TaskOutcome
from matchday.models import utcnow
from matchday.store import RecordFilter, RecordStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetentionPolicy:
    window_days: int

    def cutoff(self, now: datetime) -> datetime:
        return now - timedelta(days=self.window_days)


class RetentionCleaner:
    """Task that deletes records with created_at older than the retention window.

    Running it twice in a row deletes nothing the second time.
    """

    def __init__(
        self,
        store: RecordStore,
        policy: RetentionPolicy,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.policy = policy
        self._clock = clock

    async def __call__(self, max_units: Optional[int] = None) -> TaskOutcome:
        cutoff = self.policy.cutoff(self._clock())
        logger.info(
            f"[CLEANUP] Deleting records older than {self.policy.window_days} days "
            f"(before {cutoff.isoformat()})"
        )

        result = await self.store.delete_many(RecordFilter(created_before=cutoff))

        logger.info(f"[CLEANUP] Deleted {result.deleted_count} old records")
        return TaskOutcome(
            items_processed=result.deleted_count,
            details={
                "cutoff": cutoff.isoformat(),
                "retention_days": self.policy.window_days,
            },
        )
