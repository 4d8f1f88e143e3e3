"""Cached football lookups served to the site.

Each lookup composes read-through caching with get_or_fetch(): a fresh entry
is returned without touching the provider, a miss fetches once and stores
the result, and a provider failure propagates without caching anything.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from matchday.cache import TTLCache, get_or_fetch
from matchday.etl.base import FootballDataProvider
from matchday.utils.text import slugify

logger = logging.getLogger(__name__)

FLAG_URL = "https://flagicons.lipis.dev/flags/4x3/{code}.svg"
INTERNATIONAL = "World"


@dataclass
class FootballCaches:
    """One TTLCache per lookup domain."""

    countries: TTLCache
    standings: TTLCache
    team_form: TTLCache
    odds: TTLCache

    def by_name(self) -> dict[str, TTLCache]:
        return {cache.name: cache for cache in (self.countries, self.standings, self.team_form, self.odds)}


def fixture_result(fixture: dict, team_id: int) -> Optional[str]:
    """W / D / L for team_id in a finished fixture, None if the team did not play it."""
    teams = fixture.get("teams", {})
    home = teams.get("home", {})
    away = teams.get("away", {})

    if home.get("id") == team_id:
        side = home
    elif away.get("id") == team_id:
        side = away
    else:
        return None

    winner = side.get("winner")
    if winner is None:
        return "D"
    return "W" if winner else "L"


class FootballDataService:
    def __init__(self, provider: FootballDataProvider, caches: FootballCaches):
        self.provider = provider
        self.caches = caches

    async def get_countries(self) -> list[dict]:
        """Countries with flag and slug; "World" first, then alphabetical."""

        async def fetch():
            raw = await self.provider.get_countries()
            countries = [
                {
                    "name": country["name"],
                    "code": country.get("code") or ("INT" if country["name"] == INTERNATIONAL else None),
                    "slug": slugify(country["name"]),
                    "flag": country.get("flag")
                    or FLAG_URL.format(code=(country.get("code") or "un").lower()),
                }
                for country in raw
                if country.get("name")
            ]
            countries.sort(key=lambda c: (c["name"] != INTERNATIONAL, c["name"]))
            logger.info(f"[CACHE:{self.caches.countries.name}] Built {len(countries)} countries")
            return countries

        return await get_or_fetch(self.caches.countries, "countries", fetch)

    async def get_standings(self, league_id: int, season: int) -> list[list[dict]]:
        """Standings groups for a league season (one group per table/conference)."""

        async def fetch():
            response = await self.provider.get_standings(league_id, season)
            if not response:
                return []
            return response[0].get("league", {}).get("standings", [])

        return await get_or_fetch(self.caches.standings, f"standings-{league_id}-{season}", fetch)

    async def get_top_scorers(self, league_id: int, season: int) -> list[dict]:
        return await get_or_fetch(
            self.caches.standings,
            f"top-scorers-{league_id}-{season}",
            lambda: self.provider.get_top_scorers(league_id, season),
        )

    async def get_team_form(self, team_id: int, last: int = 5) -> dict:
        """
        Recent form of a team from its last finished fixtures.

        Returns:
            {"form": "WWDLW", "wins": 3, "draws": 1, "losses": 1}, newest result first.
        """

        async def fetch():
            fixtures = await self.provider.get_team_fixtures(team_id, last)
            results = [r for r in (fixture_result(f, team_id) for f in fixtures) if r]
            return {
                "form": "".join(results),
                "wins": results.count("W"),
                "draws": results.count("D"),
                "losses": results.count("L"),
            }

        return await get_or_fetch(self.caches.team_form, f"form-{team_id}-{last}", fetch)
