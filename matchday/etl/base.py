"""Abstract base class for football data providers."""

from abc import ABC, abstractmethod
from typing import Optional


class RemoteFetchError(Exception):
    """Upstream request failed.

    status_code follows HTTP semantics; 0 means the request never got a
    response (timeout, connection error).
    """

    def __init__(self, status_code: int, message: str):
        super().__init__(f"HTTP {status_code}: {message}" if status_code else message)
        self.status_code = status_code
        self.message = message

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429

    @property
    def is_retryable(self) -> bool:
        """Rate limited or upstream down: try again later, never cache."""
        return self.status_code in (0, 429) or self.status_code >= 500


class FootballDataProvider(ABC):
    """Remote source of football records. "No data" is an empty list, never an error."""

    @abstractmethod
    async def get_countries(self) -> list[dict]:
        """Fetch all countries known to the provider."""
        pass

    @abstractmethod
    async def get_leagues(self, **params) -> list[dict]:
        """Fetch leagues (filters: id, country, season, current...)."""
        pass

    @abstractmethod
    async def get_standings(self, league_id: int, season: int) -> list[dict]:
        """Fetch the standings table(s) for a league season."""
        pass

    @abstractmethod
    async def get_top_scorers(self, league_id: int, season: int) -> list[dict]:
        """Fetch top scorers for a league season."""
        pass

    @abstractmethod
    async def get_fixtures(self, **params) -> list[dict]:
        """
        Fetch fixtures.

        Args:
            **params: Provider filters (id, league, season, date, from, to, team, last, status).

        Returns:
            List of fixture records.
        """
        pass

    @abstractmethod
    async def get_team_fixtures(self, team_id: int, last: int = 5) -> list[dict]:
        """Fetch the last finished fixtures of a team, newest first."""
        pass

    @abstractmethod
    async def get_odds(self, fixture_id: int, bookmaker: Optional[str] = None) -> list[dict]:
        """Fetch pre-match odds for a fixture (all bookmakers when bookmaker is empty)."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections."""
        pass
