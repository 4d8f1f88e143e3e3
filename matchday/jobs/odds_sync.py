"""Odds sync: keep the odds cache warm for live and upcoming fixtures.

Cache entries are keyed "odds-{fixture_id}" and hold the fixture record, the
bookmaker odds list and when they were fetched. Entries expire through the
odds cache TTL; a fixture whose entry is missing or stale is a refresh
candidate.
"""

import asyncio
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from matchday.cache import TTLCache
from matchday.etl.base import FootballDataProvider, RemoteFetchError
from matchday.jobs.runner import TaskOutcome

logger = logging.getLogger(__name__)

NOT_STARTED = "NS"


def odds_cache_key(fixture_id: int) -> str:
    return f"odds-{fixture_id}"


def kickoff_of(fixture: dict) -> Optional[datetime]:
    raw = fixture.get("fixture", {}).get("date")
    if not raw:
        return None
    kickoff = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if kickoff.tzinfo is None:
        kickoff = kickoff.replace(tzinfo=timezone.utc)
    return kickoff


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class OddsSyncCounters:
    successful_updates: int = 0
    failed_updates: int = 0
    api_calls_saved: int = 0


class OddsSyncTask:
    """Task body for the odds sync job plus startup pre-caching."""

    def __init__(
        self,
        provider: FootballDataProvider,
        odds_cache: TTLCache,
        leagues: list[int],
        season: int,
        max_fixtures: int = 20,
        window_hours: int = 24,
        days_ahead: int = 7,
        bookmaker: str = "",
        request_delay: float = 1.0,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.provider = provider
        self.odds_cache = odds_cache
        self.leagues = leagues
        self.season = season
        self.max_fixtures = max_fixtures
        self.window_hours = window_hours
        self.days_ahead = days_ahead
        self.bookmaker = bookmaker
        self.request_delay = request_delay
        self._clock = clock
        self.counters = OddsSyncCounters()

    def stats(self) -> dict:
        return {**asdict(self.counters), "cache": self.odds_cache.stats()}

    async def __call__(self, max_units: Optional[int] = None) -> TaskOutcome:
        """
        Refresh odds for live fixtures first, then upcoming fixtures whose
        cache entry is missing or stale, at most max_units fixtures in total.
        """
        limit = max_units if max_units is not None else self.max_fixtures
        now = self._clock()

        live = await self._live_fixtures()
        upcoming = await self._upcoming_fixtures(now)

        candidates = list(live)
        seen = {f["fixture"]["id"] for f in live}
        for fixture in upcoming:
            fixture_id = fixture["fixture"]["id"]
            if fixture_id in seen:
                continue
            seen.add(fixture_id)
            if odds_cache_key(fixture_id) in self.odds_cache:
                self.counters.api_calls_saved += 1
                continue
            candidates.append(fixture)

        to_update = candidates[:limit]
        logger.info(
            f"[ODDS_SYNC] {len(live)} live, {len(upcoming)} upcoming, "
            f"{len(candidates)} need refresh, updating {len(to_update)}"
        )

        updated, failed, no_odds = await self._refresh(to_update)
        purged = self.odds_cache.purge_expired()

        logger.info(f"[ODDS_SYNC] Updated {updated}/{len(to_update)} fixtures ({failed} failed)")
        return TaskOutcome(
            items_processed=updated,
            details={
                "live": len(live),
                "upcoming": len(upcoming),
                "candidates": len(candidates),
                "updated": updated,
                "failed": failed,
                "no_odds": no_odds,
                "purged": purged,
            },
        )

    async def _live_fixtures(self) -> list[dict]:
        if not self.leagues:
            return []
        try:
            return await self.provider.get_fixtures(live="-".join(str(league) for league in self.leagues))
        except RemoteFetchError as e:
            logger.warning(f"[ODDS_SYNC] Could not list live fixtures: {e}")
            return []

    async def _upcoming_fixtures(self, now: datetime) -> list[dict]:
        horizon = now + timedelta(hours=self.window_hours)
        fixtures = []
        failures = []

        for league_id in self.leagues:
            try:
                league_fixtures = await self.provider.get_fixtures(
                    league=league_id,
                    season=self.season,
                    **{"from": now.date().isoformat(), "to": horizon.date().isoformat()},
                )
            except RemoteFetchError as e:
                logger.warning(f"[ODDS_SYNC] Could not list fixtures for league {league_id}: {e}")
                failures.append(e)
                continue

            for fixture in league_fixtures:
                kickoff = kickoff_of(fixture)
                status = fixture.get("fixture", {}).get("status", {}).get("short")
                if kickoff and now <= kickoff <= horizon and status == NOT_STARTED:
                    fixtures.append(fixture)

        if self.leagues and len(failures) == len(self.leagues):
            # Nothing could be listed: report the run as failed
            raise failures[-1]

        fixtures.sort(key=kickoff_of)
        return fixtures

    async def _refresh(self, fixtures: list[dict]) -> tuple[int, int, int]:
        updated = failed = no_odds = 0

        for index, fixture in enumerate(fixtures):
            fixture_id = fixture["fixture"]["id"]
            try:
                stored = await self._fetch_and_store(fixture)
            except RemoteFetchError as e:
                failed += 1
                self.counters.failed_updates += 1
                logger.error(f"[ODDS_SYNC] Failed to update fixture {fixture_id}: {e}")
                if e.is_rate_limited:
                    logger.warning("[ODDS_SYNC] Rate limited, stopping this run early")
                    break
            else:
                if stored:
                    updated += 1
                    self.counters.successful_updates += 1
                else:
                    no_odds += 1

            if self.request_delay and index < len(fixtures) - 1:
                await asyncio.sleep(self.request_delay)

        return updated, failed, no_odds

    async def _fetch_and_store(self, fixture: dict) -> bool:
        fixture_id = fixture["fixture"]["id"]
        odds = await self.provider.get_odds(fixture_id, self.bookmaker or None)
        if not odds:
            logger.debug(f"[ODDS_SYNC] No odds available for fixture {fixture_id}")
            return False

        self.odds_cache.set(
            odds_cache_key(fixture_id),
            {"fixture": fixture, "odds": odds, "updated_at": self._clock().isoformat()},
        )
        return True

    async def pre_cache_league(
        self,
        league_id: int,
        season: Optional[int] = None,
        days_ahead: Optional[int] = None,
    ) -> dict:
        """Cache odds for a league's fixtures over the next days_ahead days, skipping cached ones."""
        season = season or self.season
        days = days_ahead if days_ahead is not None else self.days_ahead
        today = self._clock().date()

        fixtures = await self.provider.get_fixtures(
            league=league_id,
            season=season,
            **{"from": today.isoformat(), "to": (today + timedelta(days=days)).isoformat()},
        )
        logger.info(f"[ODDS_SYNC] Pre-caching league {league_id}: {len(fixtures)} fixtures")

        cached = skipped = failed = 0
        for fixture in fixtures:
            fixture_id = fixture["fixture"]["id"]
            if odds_cache_key(fixture_id) in self.odds_cache:
                skipped += 1
                self.counters.api_calls_saved += 1
                continue

            try:
                if await self._fetch_and_store(fixture):
                    cached += 1
            except RemoteFetchError as e:
                failed += 1
                logger.error(f"[ODDS_SYNC] Failed to cache fixture {fixture_id}: {e}")
                if e.is_rate_limited:
                    break

            if self.request_delay:
                await asyncio.sleep(self.request_delay)

        logger.info(
            f"[ODDS_SYNC] Pre-cached {cached}/{len(fixtures)} fixtures for league {league_id} "
            f"({skipped} already cached)"
        )
        return {
            "league_id": league_id,
            "fixtures": len(fixtures),
            "cached": cached,
            "skipped": skipped,
            "failed": failed,
        }

    async def warm_up_if_empty(self, max_units: Optional[int] = None) -> TaskOutcome:
        """Pre-cache every configured league, but only when the odds cache is empty."""
        total = self.odds_cache.stats()["total"]
        if total > 0:
            logger.info(f"[ODDS_SYNC] Cache already has {total} entries, skipping warm-up")
            return TaskOutcome(items_processed=0, details={"skipped": True, "cached_entries": total})

        leagues = []
        for league_id in self.leagues:
            try:
                leagues.append(await self.pre_cache_league(league_id))
            except RemoteFetchError as e:
                logger.error(f"[ODDS_SYNC] Pre-cache failed for league {league_id}: {e}")
                leagues.append({"league_id": league_id, "error": str(e)})

        cached = sum(league.get("cached", 0) for league in leagues)
        return TaskOutcome(items_processed=cached, details={"skipped": False, "leagues": leagues})

    async def warm_up(self, max_units: Optional[int] = None) -> TaskOutcome:
        """Warm-up when the cache is empty, immediately followed by a regular sync pass."""
        warm = await self.warm_up_if_empty()
        sync = await self(max_units)
        return TaskOutcome(
            items_processed=warm.items_processed + sync.items_processed,
            details={"warm_up": warm.details, "sync": sync.details},
        )
