"""Tests for retention cleanup over the SQL store."""

from datetime import datetime, timedelta, timezone

import pytest

from matchday.jobs.cleanup import RetentionCleaner, RetentionPolicy
from matchday.jobs.runner import JobRunner
from matchday.models import Article
from matchday.store import SQLRecordStore

NOW = datetime(2025, 3, 14, 3, 0, tzinfo=timezone.utc)


def article(title: str, age: timedelta) -> Article:
    return Article(
        original_title=title,
        source="VnExpress",
        title=title,
        description="desc",
        content="content",
        created_at=NOW - age,
    )


@pytest.fixture
def store(session_factory):
    return SQLRecordStore(Article, session_factory)


class TestRetentionCleaner:
    @pytest.mark.asyncio
    async def test_deletes_only_records_outside_window(self, store):
        await store.insert(article("old", timedelta(days=15)))
        await store.insert(article("recent", timedelta(days=1)))
        cleaner = RetentionCleaner(store, RetentionPolicy(10), clock=lambda: NOW)

        outcome = await cleaner()

        assert outcome.items_processed == 1
        assert outcome.details["retention_days"] == 10
        remaining = await store.find()
        assert [a.title for a in remaining] == ["recent"]

    @pytest.mark.asyncio
    async def test_second_run_deletes_nothing(self, store):
        await store.insert(article("old", timedelta(days=15)))
        await store.insert(article("recent", timedelta(days=1)))
        cleaner = RetentionCleaner(store, RetentionPolicy(10), clock=lambda: NOW)

        await cleaner()
        again = await cleaner()

        assert again.items_processed == 0
        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_record_exactly_at_cutoff_is_kept(self, store):
        await store.insert(article("boundary", timedelta(days=10)))
        cleaner = RetentionCleaner(store, RetentionPolicy(10), clock=lambda: NOW)

        assert (await cleaner()).items_processed == 0

    @pytest.mark.asyncio
    async def test_runs_through_job_runner(self, store):
        await store.insert(article("old", timedelta(days=30)))
        runner = JobRunner("news_cleanup")
        cleaner = RetentionCleaner(store, RetentionPolicy(10), clock=lambda: NOW)

        job_run = await runner.run(cleaner)

        assert job_run.succeeded
        assert job_run.items_processed == 1
        assert runner.state.stats.total_items_processed == 1

    def test_policy_cutoff(self):
        assert RetentionPolicy(7).cutoff(NOW) == NOW - timedelta(days=7)

    @pytest.mark.asyncio
    async def test_empty_table_with_default_clock(self, store):
        runner = JobRunner("news_cleanup")

        job_run = await runner.run(RetentionCleaner(store, RetentionPolicy(10)))

        assert job_run.succeeded
        assert job_run.items_processed == 0
        assert runner.state.stats.last_error is None
