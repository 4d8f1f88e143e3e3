"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite:///./matchday.db"

    # API-Football (API-Sports direct or RapidAPI)
    API_FOOTBALL_KEY: str = ""
    API_FOOTBALL_HOST: str = "v3.football.api-sports.io"
    API_REQUESTS_PER_MINUTE: int = 300
    API_TIMEOUT_SECONDS: float = 30.0

    # LLM (Anthropic Messages API)
    ANTHROPIC_API_KEY: str = ""
    CLAUDE_MODEL: str = "claude-3-haiku-20240307"
    CLAUDE_MAX_TOKENS: int = 2048
    LLM_TIMEOUT_SECONDS: float = 60.0

    # API Security
    API_KEY: str = ""  # Optional API key for ops endpoints
    API_KEY_HEADER: str = "X-API-Key"
    METRICS_BEARER_TOKEN: str = ""  # Empty = /metrics is public

    # Scheduler
    SCHEDULER_TIMEZONE: str = "UTC"
    # 0 = unbounded (a hung upstream call holds the job guard until it returns)
    JOB_TIMEOUT_SECONDS: float = 0.0

    # ═══════════════════════════════════════════════════════════════
    # CACHE TTLs (in-memory, per process)
    # ═══════════════════════════════════════════════════════════════
    CACHE_TTL_COUNTRIES_SECONDS: int = 3600
    CACHE_TTL_STANDINGS_SECONDS: int = 1800
    CACHE_TTL_TEAM_FORM_SECONDS: int = 3600
    CACHE_TTL_ODDS_SECONDS: int = 600

    # ═══════════════════════════════════════════════════════════════
    # NEWS: RSS → LLM rewrite → articles
    # ═══════════════════════════════════════════════════════════════
    NEWS_SCHEDULER_ENABLED: bool = True
    NEWS_INTERVAL_HOURS: int = 6
    NEWS_MAX_ARTICLES_PER_RUN: int = 5
    NEWS_RETENTION_DAYS: int = 10
    NEWS_CLEANUP_TIME: str = "03:00"
    NEWS_REQUEST_DELAY_SECONDS: float = 2.0

    # ═══════════════════════════════════════════════════════════════
    # ODDS SYNC: refresh odds cache for upcoming fixtures
    # ═══════════════════════════════════════════════════════════════
    ODDS_SYNC_ENABLED: bool = True
    ODDS_SYNC_INTERVAL_MINUTES: int = 10
    ODDS_SYNC_MAX_FIXTURES: int = 20
    ODDS_SYNC_WINDOW_HOURS: int = 24
    ODDS_SYNC_LEAGUES: str = "39,140,135,78,61,2"  # Top 5 + Champions League
    ODDS_SYNC_BOOKMAKER: str = ""  # Empty = all bookmakers
    ODDS_PRECACHE_DAYS: int = 7
    ODDS_REQUEST_DELAY_SECONDS: float = 1.0

    # ═══════════════════════════════════════════════════════════════
    # PREVIEWS: odds preview articles for upcoming fixtures
    # ═══════════════════════════════════════════════════════════════
    PREVIEW_SCHEDULER_ENABLED: bool = True
    PREVIEW_TIMES: str = "06:00,18:00"
    PREVIEW_TIMEZONE: str = "Asia/Ho_Chi_Minh"
    PREVIEW_DAILY_LIMIT: int = 5
    PREVIEW_RETENTION_DAYS: int = 7
    PREVIEW_CLEANUP_TIME: str = "04:00"
    PREVIEW_LEAGUES: str = "39,140,135,78,61,2,3"
    PREVIEW_REQUEST_DELAY_SECONDS: float = 3.0

    # Season used when a caller does not pass one explicitly
    CURRENT_SEASON: int = 2025

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def parse_league_ids(raw: str) -> list[int]:
    """Parse a comma-separated league list ("39,140,2") into ints, ignoring blanks."""
    return [int(part) for part in raw.split(",") if part.strip()]
