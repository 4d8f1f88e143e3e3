"""Tests for JobScheduler: registration, manual triggers and shutdown."""

import asyncio

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from matchday.jobs.runner import STATUS_ALREADY_RUNNING, STATUS_OK, JobRunner, TaskOutcome
from matchday.jobs.scheduler import JobBinding, JobScheduler, UnknownJobError
from matchday.jobs.triggers import DailyAt, Every


class GatedTask:
    """Task that blocks until released; counts invocations."""

    def __init__(self):
        self.calls = []
        self.gate = asyncio.Event()

    async def __call__(self, max_units):
        self.calls.append(max_units)
        await self.gate.wait()
        return TaskOutcome(items_processed=max_units or 0)


async def instant_task(max_units):
    return TaskOutcome(items_processed=1)


@pytest.fixture
def aps():
    return AsyncIOScheduler(timezone="UTC")


def news_scheduler(aps, task=instant_task):
    return JobScheduler(
        "news",
        [
            JobBinding(
                job_id="news_generation",
                runner=JobRunner("news_generation"),
                task=task,
                triggers=[Every.hours(6)],
                max_units=5,
            ),
            JobBinding(
                job_id="news_cleanup",
                runner=JobRunner("news_cleanup"),
                task=instant_task,
                triggers=[DailyAt(3, 0, "UTC")],
            ),
        ],
        aps,
    )


class TestStartStop:
    def test_requires_a_binding(self, aps):
        with pytest.raises(ValueError):
            JobScheduler("empty", [], aps)

    def test_start_registers_every_trigger(self, aps):
        scheduler = news_scheduler(aps)

        assert scheduler.start() is True
        assert scheduler.running
        ids = sorted(job.id for job in aps.get_jobs())
        assert ids == ["news:news_cleanup:0", "news:news_generation:0"]

    def test_start_twice_is_a_no_op(self, aps):
        scheduler = news_scheduler(aps)
        scheduler.start()

        assert scheduler.start() is False
        assert len(aps.get_jobs()) == 2

    def test_stop_removes_only_own_jobs(self, aps):
        news = news_scheduler(aps)
        odds = JobScheduler(
            "odds",
            [JobBinding("odds_sync", JobRunner("odds_sync"), instant_task, [Every.minutes(10)])],
            aps,
        )
        news.start()
        odds.start()

        assert news.stop() is True
        assert not news.running
        assert [job.id for job in aps.get_jobs()] == ["odds:odds_sync:0"]
        assert news.stop() is False

    def test_restart_after_stop(self, aps):
        scheduler = news_scheduler(aps)
        scheduler.start()
        scheduler.stop()

        assert scheduler.start() is True
        assert len(aps.get_jobs()) == 2

    @pytest.mark.asyncio
    async def test_next_run_times_once_started(self, aps):
        scheduler = news_scheduler(aps)
        scheduler.start()
        aps.start()
        try:
            next_runs = scheduler.next_run_times()
        finally:
            aps.shutdown(wait=False)

        assert set(next_runs) == {"news_generation", "news_cleanup"}
        assert next_runs["news_cleanup"].startswith("20")
        assert "T03:00:00" in next_runs["news_cleanup"]

    def test_next_run_times_unscheduled(self, aps):
        scheduler = news_scheduler(aps)
        assert scheduler.next_run_times() == {"news_generation": None, "news_cleanup": None}


class TestBindingLookup:
    def test_default_is_primary(self, aps):
        scheduler = news_scheduler(aps)
        assert scheduler.binding().job_id == "news_generation"
        assert scheduler.primary.job_id == "news_generation"

    def test_unknown_job(self, aps):
        scheduler = news_scheduler(aps)
        with pytest.raises(UnknownJobError):
            scheduler.binding("missing")

    def test_binding_config(self, aps):
        config = news_scheduler(aps).binding("news_cleanup").config()
        assert config["triggers"] == ["daily 03:00 UTC"]
        assert config["max_units"] is None


class TestManualTrigger:
    @pytest.mark.asyncio
    async def test_trigger_manual_uses_binding_default_units(self, aps):
        task = GatedTask()
        task.gate.set()
        scheduler = news_scheduler(aps, task)

        job_run = await scheduler.trigger_manual()
        assert job_run.status == STATUS_OK
        assert job_run.items_processed == 5

        await scheduler.trigger_manual("news_generation", max_units=2)
        assert task.calls == [5, 2]

    @pytest.mark.asyncio
    async def test_overlapping_manual_triggers(self, aps):
        """Trigger at t=0 runs; a trigger while it runs is rejected; a later one runs."""
        task = GatedTask()
        scheduler = news_scheduler(aps, task)

        first = scheduler.submit_manual()
        assert first.accepted
        await asyncio.sleep(0)

        second = await scheduler.trigger_manual()
        assert second.status == STATUS_ALREADY_RUNNING

        rejected = scheduler.submit_manual()
        assert rejected.accepted is False
        assert rejected.completion is None
        assert await rejected.wait() is None

        task.gate.set()
        first_run = await first.wait()
        assert first_run.status == STATUS_OK

        third = await scheduler.trigger_manual()
        assert third.status == STATUS_OK
        assert len(task.calls) == 2

        stats = scheduler.primary.runner.state.stats
        assert stats.total_runs == 2
        assert stats.skipped_runs == 1

    @pytest.mark.asyncio
    async def test_submit_returns_before_completion(self, aps):
        task = GatedTask()
        scheduler = news_scheduler(aps, task)

        ack = scheduler.submit_manual(max_units=3)
        assert ack.to_dict() == {
            "job_id": "news_generation",
            "accepted": True,
            "message": "Job news_generation started (max_units=3)",
        }
        assert not ack.completion.done()

        task.gate.set()
        job_run = await ack.wait()
        assert job_run.items_processed == 3

    @pytest.mark.asyncio
    async def test_bindings_run_independently(self, aps):
        task = GatedTask()
        scheduler = news_scheduler(aps, task)

        ack = scheduler.submit_manual("news_generation")
        await asyncio.sleep(0)

        cleanup = await scheduler.trigger_manual("news_cleanup")
        assert cleanup.status == STATUS_OK

        task.gate.set()
        await ack.wait()

    @pytest.mark.asyncio
    async def test_scheduled_fire_goes_through_runner(self, aps):
        scheduler = news_scheduler(aps)
        job_run = await scheduler._fire("news_cleanup")
        assert job_run.succeeded
        assert scheduler.binding("news_cleanup").runner.state.stats.total_runs == 1


class TestBackgroundRuns:
    @pytest.mark.asyncio
    async def test_back_to_back_submits_accept_only_one(self, aps):
        task = GatedTask()
        scheduler = news_scheduler(aps, task)

        first = scheduler.submit_manual()
        second = scheduler.submit_manual()

        assert first.accepted is True
        assert second.accepted is False
        assert second.message == "Job news_generation already running"

        task.gate.set()
        assert (await first.wait()).succeeded
        assert len(task.calls) == 1
        assert scheduler.primary.runner.state.stats.skipped_runs == 0

    @pytest.mark.asyncio
    async def test_cancel_before_start_releases_guard(self, aps):
        task = GatedTask()
        scheduler = news_scheduler(aps, task)

        ack = scheduler.submit_manual()
        ack.completion.cancel()
        with pytest.raises(asyncio.CancelledError):
            await ack.completion
        await asyncio.sleep(0)

        assert task.calls == []
        assert not scheduler.primary.runner.is_running

    @pytest.mark.asyncio
    async def test_drain_waits_for_background_runs(self, aps):
        task = GatedTask()
        scheduler = news_scheduler(aps, task)
        ack = scheduler.submit_manual()
        await asyncio.sleep(0)

        drain = asyncio.create_task(scheduler.drain())
        await asyncio.sleep(0)
        assert not drain.done()

        task.gate.set()
        await drain
        assert ack.completion.done()
        assert scheduler.primary.runner.state.stats.successful_runs == 1

    @pytest.mark.asyncio
    async def test_drain_with_nothing_pending(self, aps):
        await news_scheduler(aps).drain()
