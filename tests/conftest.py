"""Shared fixtures: controllable clocks and an in-memory SQLite store."""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from matchday.database import build_engine, build_session_factory, init_db


class FakeClock:
    """Monotonic clock for TTLCache tests (seconds as float)."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeDateTimeClock:
    """Wall clock returning a fixed, advanceable timezone-aware datetime."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def wall_clock():
    return FakeDateTimeClock(datetime(2025, 3, 14, 9, 30, tzinfo=timezone.utc))


@pytest_asyncio.fixture
async def engine():
    engine = build_engine("sqlite://")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


def make_fixture(
    fixture_id: int,
    kickoff: datetime,
    home: tuple = (33, "Manchester United"),
    away: tuple = (40, "Liverpool"),
    league_id: int = 39,
    status: str = "NS",
) -> dict:
    """Minimal API-Football fixture record."""
    return {
        "fixture": {
            "id": fixture_id,
            "date": kickoff.isoformat(),
            "status": {"short": status},
            "venue": {"name": "Old Trafford"},
        },
        "league": {"id": league_id, "name": "Premier League", "country": "England"},
        "teams": {
            "home": {"id": home[0], "name": home[1], "winner": None},
            "away": {"id": away[0], "name": away[1], "winner": None},
        },
    }


def make_bookmakers() -> list[dict]:
    """API-Football odds payload for one bookmaker with the three key markets."""
    return [
        {
            "id": 8,
            "name": "Bet365",
            "bets": [
                {
                    "name": "Match Winner",
                    "values": [
                        {"value": "Home", "odd": "2.10"},
                        {"value": "Draw", "odd": "3.40"},
                        {"value": "Away", "odd": "3.25"},
                    ],
                },
                {
                    "name": "Asian Handicap",
                    "values": [
                        {"value": "Home -0.5", "odd": "2.05"},
                        {"value": "Away -0.5", "odd": "1.85"},
                    ],
                },
                {
                    "name": "Goals Over/Under",
                    "values": [
                        {"value": "Over 2.5", "odd": "1.80"},
                        {"value": "Under 2.5", "odd": "2.00"},
                    ],
                },
            ],
        }
    ]
