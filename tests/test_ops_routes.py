"""Tests for the health, metrics and ops endpoints."""

import asyncio
from datetime import datetime, timezone

import httpx
import pytest
import pytest_asyncio
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI
from unittest.mock import AsyncMock

from matchday.config import Settings
from matchday.etl.base import FootballDataProvider
from matchday.llm.claude_client import ClaudeClient
from matchday.models import Article, utcnow
from matchday.routes.core import router as core_router
from matchday.routes.ops import router as ops_router
from matchday.runtime import ODDS, build_runtime
from matchday.security import limiter

API_KEY = "ops-secret"
AUTH = {"X-API-Key": API_KEY}


def make_app(runtime) -> FastAPI:
    app = FastAPI()
    app.state.limiter = limiter
    app.state.runtime = runtime
    app.include_router(core_router)
    app.include_router(ops_router)
    return app


@pytest.fixture
def provider():
    provider = AsyncMock(spec=FootballDataProvider)
    provider.get_fixtures.return_value = []
    return provider


@pytest_asyncio.fixture
async def runtime(engine, provider):
    settings = Settings(API_KEY=API_KEY, METRICS_BEARER_TOKEN="metrics-token", ODDS_REQUEST_DELAY_SECONDS=0)
    runtime = build_runtime(
        settings,
        engine=engine,
        provider=provider,
        llm=AsyncMock(spec=ClaudeClient),
        aps=AsyncIOScheduler(),
    )
    yield runtime
    await runtime.news_generator.close()


@pytest_asyncio.fixture
async def client(runtime):
    transport = httpx.ASGITransport(app=make_app(runtime))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


class TestCoreRoutes:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {
            "status": "ok",
            "schedulers": {"news": False, "odds": False, "previews": False},
        }

    @pytest.mark.asyncio
    async def test_metrics_requires_bearer_token(self, client):
        assert (await client.get("/metrics")).status_code == 401
        assert (await client.get("/metrics", headers={"Authorization": "Bearer nope"})).status_code == 401

        response = await client.get("/metrics", headers={"Authorization": "Bearer metrics-token"})
        assert response.status_code == 200
        assert "matchday_job_runs_total" in response.text


class TestAuth:
    @pytest.mark.asyncio
    async def test_missing_key(self, client):
        response = await client.get("/ops/schedulers")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_wrong_key(self, client):
        response = await client.get("/ops/schedulers", headers={"X-API-Key": "wrong"})
        assert response.status_code == 401


class TestSchedulerRoutes:
    @pytest.mark.asyncio
    async def test_list_schedulers(self, client):
        response = await client.get("/ops/schedulers", headers=AUTH)

        assert response.status_code == 200
        body = response.json()
        assert set(body) == {"news", "odds", "previews"}
        assert set(body["news"]["jobs"]) == {"news_generation", "news_cleanup"}

    @pytest.mark.asyncio
    async def test_status_unknown_scheduler(self, client):
        response = await client.get("/ops/schedulers/weather/status", headers=AUTH)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_status(self, client):
        response = await client.get("/ops/schedulers/previews/status", headers=AUTH)

        assert response.status_code == 200
        body = response.json()
        assert body["name"] == "previews"
        assert body["config"]["daily_limit"] == 5

    @pytest.mark.asyncio
    async def test_trigger_and_wait(self, client, provider):
        response = await client.post(
            "/ops/schedulers/odds/trigger",
            json={"job_id": "odds_sync", "wait": True},
            headers=AUTH,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["result"]["job"] == "odds_sync"
        assert body["result"]["status"] == "ok"
        provider.get_fixtures.assert_awaited()

    @pytest.mark.asyncio
    async def test_trigger_in_background(self, client, runtime):
        response = await client.post("/ops/schedulers/odds/trigger", headers=AUTH)

        assert response.status_code == 200
        body = response.json()
        assert body["accepted"] is True
        assert body["job_id"] == "odds_sync"

        runner = runtime.scheduler(ODDS).binding("odds_sync").runner
        for _ in range(50):
            if runner.state.stats.total_runs:
                break
            await asyncio.sleep(0.01)
        assert runner.state.stats.successful_runs == 1

    @pytest.mark.asyncio
    async def test_trigger_rejected_while_running(self, client, runtime, provider):
        release = asyncio.Event()

        async def slow_fixtures(**params):
            await release.wait()
            return []

        provider.get_fixtures.side_effect = slow_fixtures
        first = runtime.scheduler(ODDS).submit_manual("odds_sync")
        await asyncio.sleep(0)

        response = await client.post(
            "/ops/schedulers/odds/trigger",
            json={"job_id": "odds_sync"},
            headers=AUTH,
        )

        assert response.json()["accepted"] is False
        assert response.json()["success"] is False
        release.set()
        assert (await first.wait()).succeeded

    @pytest.mark.asyncio
    async def test_trigger_unknown_job(self, client):
        response = await client.post(
            "/ops/schedulers/news/trigger",
            json={"job_id": "odds_sync", "wait": True},
            headers=AUTH,
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_trigger_validates_max_units(self, client):
        response = await client.post(
            "/ops/schedulers/news/trigger",
            json={"max_units": 0},
            headers=AUTH,
        )
        assert response.status_code == 422


class TestCacheAndCleanupRoutes:
    @pytest.mark.asyncio
    async def test_list_and_clear_cache(self, client, runtime):
        runtime.caches.odds.set("odds-1", {"odds": []})
        runtime.caches.odds.set("odds-2", {"odds": []})

        listing = (await client.get("/ops/caches", headers=AUTH)).json()
        assert listing["odds"]["total"] == 2

        response = await client.delete("/ops/caches/odds", headers=AUTH)
        assert response.json() == {"success": True, "cleared": 2}
        assert len(runtime.caches.odds) == 0

    @pytest.mark.asyncio
    async def test_clear_unknown_cache(self, client):
        response = await client.delete("/ops/caches/weather", headers=AUTH)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_force_cleanup(self, client, runtime):
        for created_at in (datetime(2020, 1, 1, tzinfo=timezone.utc), utcnow()):
            await runtime.article_store.insert(
                Article(
                    original_title="t",
                    source="VnExpress",
                    title="t",
                    description="d",
                    content="c",
                    created_at=created_at,
                )
            )

        response = await client.post("/ops/cleanup", headers=AUTH)

        body = response.json()
        assert body["success"] is True
        assert body["deleted"] == 1
        assert set(body["results"]) == {"news_cleanup", "preview_cleanup"}
        assert await runtime.article_store.count() == 1
