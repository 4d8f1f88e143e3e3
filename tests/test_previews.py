"""Tests for odds extraction helpers and the preview generation task."""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest
from unittest.mock import AsyncMock

from matchday.cache import TTLCache
from matchday.etl.base import FootballDataProvider, RemoteFetchError
from matchday.jobs.odds_sync import odds_cache_key
from matchday.llm.claude_client import ClaudeClient, ClaudeResult
from matchday.models import PreviewArticle
from matchday.news.previews import (
    PreviewGenerationError,
    PreviewGenerator,
    build_preview_slug,
    extract_odds_values,
    format_odds,
)
from matchday.services.football import FootballCaches, FootballDataService
from matchday.store import SQLRecordStore

from tests.conftest import FakeDateTimeClock, make_bookmakers, make_fixture

PREVIEW_TEXT = """---TITLE---
Soi kèo Manchester United vs Liverpool
---DESCRIPTION---
Đại chiến tại Old Trafford.
---CONTENT---
## Nhận định
Nội dung.
---TAGS---
Manchester United, Liverpool, soi kèo
"""


def completed():
    return ClaudeResult(status="COMPLETED", text=PREVIEW_TEXT, tokens_in=200, tokens_out=900, exec_ms=5)


def failed():
    return ClaudeResult(status="TIMEOUT", text="", tokens_in=0, tokens_out=0, exec_ms=60000, error="timed out")


def stored_preview(fixture_id: int, created_at: datetime) -> PreviewArticle:
    return PreviewArticle(
        fixture_id=fixture_id,
        league_id=39,
        league_name="Premier League",
        home_team="Home",
        away_team="Away",
        match_date=datetime(2025, 3, 1, 15, 0, tzinfo=timezone.utc),
        title=f"Preview {fixture_id}",
        slug=f"preview-{fixture_id}",
        description="d",
        content="c",
        created_at=created_at,
    )


@pytest.fixture
def store(session_factory):
    return SQLRecordStore(PreviewArticle, session_factory)


@pytest.fixture
def provider():
    provider = AsyncMock(spec=FootballDataProvider)
    provider.get_odds.return_value = make_bookmakers()
    provider.get_team_fixtures.return_value = []
    return provider


@pytest.fixture
def llm():
    llm = AsyncMock(spec=ClaudeClient)
    llm.generate.return_value = completed()
    return llm


@pytest.fixture
def odds_cache(clock):
    return TTLCache("odds", 600, clock)


@pytest.fixture
def generator(provider, odds_cache, llm, store, clock, wall_clock):
    caches = FootballCaches(
        countries=TTLCache("countries", 3600, clock),
        standings=TTLCache("standings", 1800, clock),
        team_form=TTLCache("team_form", 3600, clock),
        odds=odds_cache,
    )
    return PreviewGenerator(
        provider,
        FootballDataService(provider, caches),
        odds_cache,
        llm,
        store,
        leagues=[39],
        season=2024,
        daily_limit=5,
        request_delay=0,
        clock=wall_clock,
    )


class TestOddsHelpers:
    def test_extract_key_markets(self):
        odds = extract_odds_values(make_bookmakers())

        assert odds["bookmaker"] == "Bet365"
        assert (odds["home_win"], odds["draw"], odds["away_win"]) == (2.10, 3.40, 3.25)
        assert odds["handicap"] == {"line": "-0.5", "home": 2.05, "away": 1.85}
        assert odds["over_under"] == {"line": 2.5, "over": 1.80, "under": 2.00}

    def test_no_bookmakers(self):
        assert extract_odds_values([]) is None
        assert format_odds(None) == "No odds available yet."

    def test_missing_markets_stay_empty(self):
        odds = extract_odds_values([{"name": "Pinnacle", "bets": []}])
        assert odds["home_win"] is None
        assert odds["handicap"]["line"] is None
        assert odds["over_under"]["line"] is None

    def test_slug_uses_local_date(self):
        kickoff = datetime(2025, 3, 14, 20, 0, tzinfo=timezone.utc).astimezone(ZoneInfo("Asia/Ho_Chi_Minh"))
        slug = build_preview_slug("Hoàng Anh Gia Lai", "SHB Đà Nẵng", kickoff, 1001)
        assert slug == "soi-keo-hoang-anh-gia-lai-vs-shb-da-nang-15-03-2025-1001"


class TestStartOfDay:
    def test_local_midnight_as_utc(self, generator):
        # 09:30 UTC is 16:30 in Vietnam; local midnight was 17:00 UTC the day before
        assert generator.start_of_day() == datetime(2025, 3, 13, 17, 0, tzinfo=timezone.utc)

    def test_after_local_midnight(self, generator):
        generator._clock = FakeDateTimeClock(datetime(2025, 3, 14, 18, 0, tzinfo=timezone.utc))
        assert generator.start_of_day() == datetime(2025, 3, 14, 17, 0, tzinfo=timezone.utc)


class TestPreviewGenerator:
    @pytest.mark.asyncio
    async def test_generates_for_upcoming_fixtures(self, generator, provider, store, odds_cache, wall_clock):
        now = wall_clock()
        provider.get_fixtures.return_value = [
            make_fixture(2, now + timedelta(hours=30)),
            make_fixture(1, now + timedelta(hours=5)),
            make_fixture(3, now + timedelta(hours=60)),
        ]

        outcome = await generator(None)

        assert outcome.items_processed == 2
        previews = await store.find(sort="fixture_id")
        assert [p.fixture_id for p in previews] == [1, 2]
        assert previews[0].odds["home_win"] == 2.10
        assert previews[0].slug == "soi-keo-manchester-united-vs-liverpool-14-03-2025-1"
        assert previews[0].match_date == datetime(2025, 3, 14, 14, 30, tzinfo=timezone.utc)
        assert odds_cache_key(1) in odds_cache

        params = provider.get_fixtures.await_args.kwargs
        assert params["status"] == "NS"
        assert params["from"] == "2025-03-14"
        assert params["to"] == "2025-03-16"

    @pytest.mark.asyncio
    async def test_odds_read_through_cache(self, generator, provider, odds_cache, wall_clock):
        now = wall_clock()
        provider.get_fixtures.return_value = [make_fixture(1, now + timedelta(hours=5))]
        odds_cache.set(odds_cache_key(1), {"odds": make_bookmakers()})

        await generator(None)

        provider.get_odds.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_odds_still_generates(self, generator, provider, store, wall_clock):
        now = wall_clock()
        provider.get_fixtures.return_value = [make_fixture(1, now + timedelta(hours=5))]
        provider.get_odds.side_effect = RemoteFetchError(500, "boom")

        outcome = await generator(None)

        assert outcome.items_processed == 1
        assert (await store.find())[0].odds == {}

    @pytest.mark.asyncio
    async def test_daily_limit_reached(self, generator, provider, store):
        for fixture_id in range(1, 6):
            await store.insert(stored_preview(fixture_id, datetime(2025, 3, 14, 1, fixture_id, tzinfo=timezone.utc)))

        outcome = await generator(None)

        assert outcome.items_processed == 0
        assert outcome.details["daily_limit_reached"] is True
        provider.get_fixtures.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_tops_up_remaining_slots(self, generator, provider, store, wall_clock):
        now = wall_clock()
        for fixture_id in range(100, 104):
            await store.insert(stored_preview(fixture_id, datetime(2025, 3, 14, 2, 0, tzinfo=timezone.utc)))
        provider.get_fixtures.return_value = [make_fixture(i, now + timedelta(hours=i)) for i in range(1, 4)]

        outcome = await generator(None)

        assert outcome.items_processed == 1
        assert outcome.details["today_count"] == 5

    @pytest.mark.asyncio
    async def test_skips_fixture_with_existing_preview(self, generator, provider, store, llm, wall_clock):
        now = wall_clock()
        await store.insert(stored_preview(1, datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)))
        provider.get_fixtures.return_value = [
            make_fixture(1, now + timedelta(hours=3)),
            make_fixture(2, now + timedelta(hours=4)),
        ]

        outcome = await generator(None)

        assert outcome.items_processed == 1
        assert outcome.details["skipped_existing"] == 1
        llm.generate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_all_llm_failures_raise(self, generator, provider, llm, wall_clock):
        now = wall_clock()
        provider.get_fixtures.return_value = [make_fixture(1, now + timedelta(hours=3))]
        llm.generate.return_value = failed()

        with pytest.raises(PreviewGenerationError):
            await generator(None)

    @pytest.mark.asyncio
    async def test_fixture_listing_failure_raises(self, generator, provider):
        provider.get_fixtures.side_effect = RemoteFetchError(503, "down")

        with pytest.raises(RemoteFetchError):
            await generator(None)
