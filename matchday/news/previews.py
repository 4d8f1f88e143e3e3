"""
Pre-match preview articles (odds, form and an LLM write-up per fixture).

A run tops up today's quota: it counts previews created since local midnight
in the preview timezone and generates at most daily_limit minus that count.
Fixtures that already have a preview are skipped.
"""

import asyncio
import logging
import re
from datetime import datetime, time, timedelta, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from matchday.cache import TTLCache, get_or_fetch
from matchday.etl.base import FootballDataProvider, RemoteFetchError
from matchday.jobs.odds_sync import NOT_STARTED, kickoff_of, odds_cache_key
from matchday.jobs.runner import TaskOutcome
from matchday.llm.claude_client import ClaudeClient, parse_article_sections
from matchday.models import PreviewArticle
from matchday.services.football import FootballDataService
from matchday.store import RecordFilter, RecordStore
from matchday.utils.text import slugify

logger = logging.getLogger(__name__)


class PreviewGenerationError(RuntimeError):
    """Every LLM call of a run failed."""


PREVIEW_PROMPT = """You are a professional football analyst in Vietnam writing a pre-match betting preview.

MATCH:
- {home} vs {away}
- Competition: {league} ({country})
- Kick-off: {kickoff} (Vietnam time)
- Venue: {venue}

CURRENT ODDS:
{odds}

LAST 5 MATCHES:
- {home}: {home_form}
- {away}: {away_form}

Write an in-depth preview in Vietnamese with these parts: introduction, analysis of each
team, recent form, odds analysis (Asian handicap, 1X2, over/under 2.5), a specific score
prediction consistent with the over/under view, and clear betting tips as bullet points.
Vary the predicted score with the analysis; do not invent injuries.

Return EXACTLY this format:
---TITLE---
Soi kèo {home} vs {away} {kickoff}

---DESCRIPTION---
[two engaging sentences about the match and the main prediction]

---CONTENT---
[full article in markdown]

---TAGS---
{home}, {away}, {league}, soi kèo, nhận định, tỷ lệ kèo"""

_LINE_RE = re.compile(r"([+-]?\d+(?:\.\d+)?)")


def _odd(values: list[dict], label: str) -> Optional[float]:
    for value in values:
        if value.get("value") == label and value.get("odd"):
            return float(value["odd"])
    return None


def extract_odds_values(bookmakers: list[dict]) -> Optional[dict]:
    """
    Key markets from the first bookmaker: 1X2, Asian handicap and over/under 2.5.

    Returns None when no bookmaker data is available.
    """
    if not bookmakers:
        return None

    bets = {bet.get("name"): bet.get("values", []) for bet in bookmakers[0].get("bets", [])}
    match_winner = bets.get("Match Winner", [])
    handicap = bets.get("Asian Handicap", [])
    over_under = bets.get("Goals Over/Under", [])

    result = {
        "bookmaker": bookmakers[0].get("name"),
        "home_win": _odd(match_winner, "Home"),
        "draw": _odd(match_winner, "Draw"),
        "away_win": _odd(match_winner, "Away"),
        "handicap": {"line": None, "home": None, "away": None},
        "over_under": {"line": None, "over": None, "under": None},
    }

    home_hcp = next((v for v in handicap if "Home" in (v.get("value") or "")), None)
    away_hcp = next((v for v in handicap if "Away" in (v.get("value") or "")), None)
    if home_hcp:
        match = _LINE_RE.search(home_hcp["value"])
        result["handicap"]["line"] = match.group(1) if match else "0"
        result["handicap"]["home"] = float(home_hcp["odd"])
    if away_hcp:
        result["handicap"]["away"] = float(away_hcp["odd"])

    over = _odd(over_under, "Over 2.5")
    under = _odd(over_under, "Under 2.5")
    if over is not None or under is not None:
        result["over_under"] = {"line": 2.5, "over": over, "under": under}

    return result


def format_odds(odds: Optional[dict]) -> str:
    if not odds:
        return "No odds available yet."
    hcp = odds["handicap"]
    ou = odds["over_under"]
    return (
        f"- 1X2: home {odds['home_win'] or '-'} | draw {odds['draw'] or '-'} | away {odds['away_win'] or '-'}\n"
        f"- Asian handicap {hcp['line'] or '0'}: home {hcp['home'] or '-'} / away {hcp['away'] or '-'}\n"
        f"- Over/under 2.5: over {ou['over'] or '-'} | under {ou['under'] or '-'}"
    )


def format_form(form: Optional[dict]) -> str:
    if not form or not form.get("form"):
        return "No data"
    return f"{form['form']} ({form['wins']}W {form['draws']}D {form['losses']}L)"


def build_preview_slug(home: str, away: str, kickoff: datetime, fixture_id: int) -> str:
    return f"soi-keo-{slugify(home)}-vs-{slugify(away)}-{kickoff:%d-%m-%Y}-{fixture_id}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PreviewGenerator:
    """Task body for the preview generation job."""

    def __init__(
        self,
        provider: FootballDataProvider,
        football: FootballDataService,
        odds_cache: TTLCache,
        llm: ClaudeClient,
        store: RecordStore,
        leagues: list[int],
        season: int,
        daily_limit: int = 5,
        tz: str = "Asia/Ho_Chi_Minh",
        lookahead_hours: int = 48,
        bookmaker: str = "",
        request_delay: float = 3.0,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.provider = provider
        self.football = football
        self.odds_cache = odds_cache
        self.llm = llm
        self.store = store
        self.leagues = leagues
        self.season = season
        self.daily_limit = daily_limit
        self.tz = ZoneInfo(tz)
        self.lookahead_hours = lookahead_hours
        self.bookmaker = bookmaker
        self.request_delay = request_delay
        self._clock = clock

    def start_of_day(self) -> datetime:
        """Local midnight in the preview timezone, expressed in UTC."""
        local_now = self._clock().astimezone(self.tz)
        local_midnight = datetime.combine(local_now.date(), time.min, tzinfo=self.tz)
        return local_midnight.astimezone(timezone.utc)

    async def count_today(self) -> int:
        return await self.store.count(RecordFilter(created_after=self.start_of_day()))

    async def upcoming_fixtures(self) -> list[dict]:
        """Not-started fixtures of the configured leagues within the lookahead, soonest first."""
        now = self._clock()
        horizon = now + timedelta(hours=self.lookahead_hours)
        fixtures = []
        failures = 0

        for league_id in self.leagues:
            try:
                league_fixtures = await self.provider.get_fixtures(
                    league=league_id,
                    season=self.season,
                    status=NOT_STARTED,
                    **{"from": now.date().isoformat(), "to": horizon.date().isoformat()},
                )
            except RemoteFetchError as e:
                failures += 1
                logger.warning(f"[PREVIEWS] Could not list fixtures for league {league_id}: {e}")
                if failures == len(self.leagues):
                    raise
                continue

            for fixture in league_fixtures:
                kickoff = kickoff_of(fixture)
                if kickoff and now <= kickoff <= horizon:
                    fixtures.append(fixture)

        fixtures.sort(key=kickoff_of)
        return fixtures

    async def odds_snapshot(self, fixture: dict) -> Optional[dict]:
        """Key odds for a fixture, read through the shared odds cache."""
        fixture_id = fixture["fixture"]["id"]

        async def fetch():
            odds = await self.provider.get_odds(fixture_id, self.bookmaker or None)
            return {"fixture": fixture, "odds": odds, "updated_at": self._clock().isoformat()}

        try:
            entry = await get_or_fetch(self.odds_cache, odds_cache_key(fixture_id), fetch)
        except RemoteFetchError as e:
            logger.warning(f"[PREVIEWS] No odds for fixture {fixture_id}: {e}")
            return None
        return extract_odds_values(entry["odds"])

    async def _team_form(self, team_id: int) -> Optional[dict]:
        try:
            return await self.football.get_team_form(team_id)
        except RemoteFetchError as e:
            logger.warning(f"[PREVIEWS] No form for team {team_id}: {e}")
            return None

    async def generate_for_fixture(self, fixture: dict) -> tuple[Optional[PreviewArticle], Optional[str]]:
        """
        Build and store one preview.

        Returns:
            (article, None) on success, (None, error) when the LLM output is unusable.
        """
        info = fixture["fixture"]
        teams = fixture["teams"]
        league = fixture.get("league", {})
        kickoff = kickoff_of(fixture)
        local_kickoff = kickoff.astimezone(self.tz)

        odds, home_form, away_form = await asyncio.gather(
            self.odds_snapshot(fixture),
            self._team_form(teams["home"]["id"]),
            self._team_form(teams["away"]["id"]),
        )

        prompt = PREVIEW_PROMPT.format(
            home=teams["home"]["name"],
            away=teams["away"]["name"],
            league=league.get("name", "Unknown"),
            country=league.get("country", "Unknown"),
            kickoff=f"{local_kickoff:%H:%M %d/%m/%Y}",
            venue=(info.get("venue") or {}).get("name") or "TBD",
            odds=format_odds(odds),
            home_form=format_form(home_form),
            away_form=format_form(away_form),
        )

        result = await self.llm.generate(prompt)
        if not result.ok:
            return None, result.error or result.status
        sections = parse_article_sections(result.text)
        if sections is None:
            return None, "LLM response missing TITLE or CONTENT section"

        article = await self.store.insert(
            PreviewArticle(
                fixture_id=info["id"],
                league_id=league.get("id", 0),
                league_name=league.get("name", "Unknown"),
                home_team=teams["home"]["name"],
                away_team=teams["away"]["name"],
                match_date=kickoff.astimezone(timezone.utc),
                venue=(info.get("venue") or {}).get("name"),
                odds=odds or {},
                home_form=home_form["form"] if home_form else None,
                away_form=away_form["form"] if away_form else None,
                title=sections.title,
                slug=build_preview_slug(teams["home"]["name"], teams["away"]["name"], local_kickoff, info["id"]),
                description=sections.description,
                content=sections.content,
                tags=sections.tags or [teams["home"]["name"], teams["away"]["name"], league.get("name", "")],
            )
        )
        logger.info(f"[PREVIEWS] Saved: {article.title!r}")
        return article, None

    async def __call__(self, max_units: Optional[int] = None) -> TaskOutcome:
        limit = max_units if max_units is not None else self.daily_limit
        today_count = await self.count_today()
        remaining = limit - today_count

        if remaining <= 0:
            logger.info(f"[PREVIEWS] Daily limit reached ({today_count}/{limit}), skipping generation")
            return TaskOutcome(
                items_processed=0,
                details={"daily_limit_reached": True, "today_count": today_count, "limit": limit},
            )

        fixtures = await self.upcoming_fixtures()
        logger.info(f"[PREVIEWS] {len(fixtures)} upcoming fixtures, {remaining} slots left today")

        generated = attempts = llm_failures = skipped_existing = 0
        last_error = None

        for fixture in fixtures:
            if generated >= remaining:
                break

            fixture_id = fixture["fixture"]["id"]
            if await self.store.count(RecordFilter(equals={"fixture_id": fixture_id})):
                skipped_existing += 1
                continue

            attempts += 1
            article, error = await self.generate_for_fixture(fixture)
            if article is None:
                llm_failures += 1
                last_error = error
                logger.warning(f"[PREVIEWS] Generation failed for fixture {fixture_id}: {error}")
            else:
                generated += 1

            if generated < remaining and self.request_delay:
                await asyncio.sleep(self.request_delay)

        if attempts and llm_failures == attempts:
            raise PreviewGenerationError(f"All {attempts} LLM calls failed: {last_error}")

        return TaskOutcome(
            items_processed=generated,
            details={
                "today_count": today_count + generated,
                "limit": limit,
                "fixtures": len(fixtures),
                "skipped_existing": skipped_existing,
                "llm_failures": llm_failures,
            },
        )
