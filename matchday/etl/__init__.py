"""Upstream football data providers."""

from matchday.etl.base import FootballDataProvider, RemoteFetchError
from matchday.etl.api_football import APIFootballProvider

__all__ = ["FootballDataProvider", "RemoteFetchError", "APIFootballProvider"]
