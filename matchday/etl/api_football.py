"""API-Football data provider implementation."""

import asyncio
import logging
import time
from typing import Optional

import httpx

from matchday.config import Settings
from matchday.etl.base import FootballDataProvider, RemoteFetchError
from matchday.telemetry.metrics import record_provider_request

logger = logging.getLogger(__name__)

# Error keys API-Football uses in a 200 response when the plan quota is exhausted
RATE_LIMIT_ERROR_KEYS = ("rateLimit", "requests")


class APIFootballProvider(FootballDataProvider):
    """API-Football data provider with rate limiting (supports RapidAPI and API-Sports)."""

    def __init__(
        self,
        api_key: str,
        host: str = "v3.football.api-sports.io",
        timeout: float = 30.0,
        requests_per_minute: int = 300,
        max_retries: int = 3,
        retry_delay: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        # Detect if using API-Sports directly or RapidAPI
        if "api-sports.io" in host:
            self.BASE_URL = f"https://{host}"
            headers = {
                "x-apisports-key": api_key,
            }
        else:
            self.BASE_URL = f"https://{host}/v3"
            headers = {
                "X-RapidAPI-Key": api_key,
                "X-RapidAPI-Host": host,
            }

        self.client = httpx.AsyncClient(
            headers=headers,
            timeout=timeout,
            transport=transport,
        )
        self.requests_per_minute = requests_per_minute
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    @classmethod
    def from_settings(cls, settings: Settings) -> "APIFootballProvider":
        return cls(
            api_key=settings.API_FOOTBALL_KEY,
            host=settings.API_FOOTBALL_HOST,
            timeout=settings.API_TIMEOUT_SECONDS,
            requests_per_minute=settings.API_REQUESTS_PER_MINUTE,
        )

    async def _rate_limited_request(self, endpoint: str, params: Optional[dict] = None) -> list[dict]:
        """
        Make a rate-limited request to the API and return its `response` list.

        Spaces requests to respect requests_per_minute and retries with
        exponential backoff on 429, 5xx and network errors. Raises
        RemoteFetchError once retries are exhausted or on a non-retryable error.
        """
        delay = 60 / self.requests_per_minute if self.requests_per_minute > 0 else 0
        url = f"{self.BASE_URL}/{endpoint}"
        last_error: Optional[RemoteFetchError] = None

        for attempt in range(self.max_retries):
            start_time = time.time()
            try:
                response = await self.client.get(url, params=params)
            except httpx.TimeoutException as e:
                record_provider_request("api_football", endpoint, 0, (time.time() - start_time) * 1000)
                logger.error(f"Timeout error on {endpoint}: {e}")
                last_error = RemoteFetchError(0, f"Timeout calling {endpoint}")
            except httpx.RequestError as e:
                record_provider_request("api_football", endpoint, 0, (time.time() - start_time) * 1000)
                logger.error(f"Request error on {endpoint}: {e}")
                last_error = RemoteFetchError(0, f"Request to {endpoint} failed: {e}")
            else:
                latency_ms = (time.time() - start_time) * 1000
                record_provider_request("api_football", endpoint, response.status_code, latency_ms)

                if response.status_code == 200:
                    if delay:
                        await asyncio.sleep(delay)
                    return self._parse_body(endpoint, response.json())

                last_error = RemoteFetchError(response.status_code, response.text[:200])
                if not last_error.is_retryable:
                    logger.error(f"HTTP error on {endpoint}: {last_error}")
                    raise last_error
                logger.warning(f"HTTP {response.status_code} on {endpoint} (attempt {attempt + 1})")

            if attempt < self.max_retries - 1:
                wait_time = self.retry_delay * (2**attempt)
                logger.warning(f"Retrying {endpoint} in {wait_time}s...")
                await asyncio.sleep(wait_time)

        raise last_error

    def _parse_body(self, endpoint: str, data: dict) -> list[dict]:
        errors = data.get("errors")
        if errors:
            logger.error(f"API error on {endpoint}: {errors}")
            error_keys = errors.keys() if isinstance(errors, dict) else []
            status = 429 if any(key in error_keys for key in RATE_LIMIT_ERROR_KEYS) else 400
            raise RemoteFetchError(status, str(errors))
        return data.get("response") or []

    async def get_countries(self) -> list[dict]:
        return await self._rate_limited_request("countries")

    async def get_leagues(self, **params) -> list[dict]:
        return await self._rate_limited_request("leagues", params)

    async def get_standings(self, league_id: int, season: int) -> list[dict]:
        logger.info(f"Fetching standings for league {league_id}, season {season}")
        return await self._rate_limited_request("standings", {"league": league_id, "season": season})

    async def get_top_scorers(self, league_id: int, season: int) -> list[dict]:
        return await self._rate_limited_request(
            "players/topscorers", {"league": league_id, "season": season}
        )

    async def get_fixtures(self, **params) -> list[dict]:
        fixtures = await self._rate_limited_request("fixtures", params)
        logger.info(f"Fetched {len(fixtures)} fixtures ({params})")
        return fixtures

    async def get_team_fixtures(self, team_id: int, last: int = 5) -> list[dict]:
        return await self._rate_limited_request(
            "fixtures", {"team": team_id, "last": last, "status": "FT"}
        )

    async def get_odds(self, fixture_id: int, bookmaker: Optional[str] = None) -> list[dict]:
        params = {"fixture": fixture_id}
        if bookmaker:
            params["bookmaker"] = bookmaker
        return await self._rate_limited_request("odds", params)

    async def close(self) -> None:
        await self.client.aclose()
