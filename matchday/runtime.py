"""Application wiring: caches, clients, stores, job runners and schedulers.

build_runtime() constructs every long-lived object once and hands them to
each other explicitly. main.py keeps the result on app.state.runtime.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import AsyncEngine

from matchday.cache import TTLCache
from matchday.config import Settings, parse_league_ids
from matchday.database import build_engine, build_session_factory, close_db, init_db
from matchday.etl.api_football import APIFootballProvider
from matchday.etl.base import FootballDataProvider
from matchday.jobs.cleanup import RetentionCleaner, RetentionPolicy
from matchday.jobs.odds_sync import OddsSyncTask
from matchday.jobs.runner import JobRunner
from matchday.jobs.scheduler import JobBinding, JobScheduler
from matchday.jobs.status import StatusReporter
from matchday.jobs.triggers import Every, parse_daily_times, parse_time_of_day
from matchday.llm.claude_client import ClaudeClient
from matchday.models import Article, PreviewArticle
from matchday.news.generator import NewsGenerator
from matchday.news.previews import PreviewGenerator
from matchday.services.football import FootballCaches, FootballDataService
from matchday.store import SQLRecordStore

logger = logging.getLogger(__name__)

NEWS = "news"
ODDS = "odds"
PREVIEWS = "previews"

# (scheduler name, job id) of every retention cleanup binding
CLEANUP_JOBS = [(NEWS, "news_cleanup"), (PREVIEWS, "preview_cleanup")]


class UnknownSchedulerError(KeyError):
    """Raised when a scheduler name is not part of the runtime."""


@dataclass
class Runtime:
    settings: Settings
    engine: AsyncEngine
    aps: AsyncIOScheduler
    caches: FootballCaches
    provider: FootballDataProvider
    llm: ClaudeClient
    football: FootballDataService
    article_store: SQLRecordStore
    preview_store: SQLRecordStore
    odds_sync: OddsSyncTask
    news_generator: NewsGenerator
    preview_generator: PreviewGenerator
    schedulers: dict[str, JobScheduler] = field(default_factory=dict)
    reporters: dict[str, StatusReporter] = field(default_factory=dict)
    enabled: dict[str, bool] = field(default_factory=dict)

    def scheduler(self, name: str) -> JobScheduler:
        try:
            return self.schedulers[name]
        except KeyError:
            raise UnknownSchedulerError(f"Unknown scheduler {name!r}") from None

    def reporter(self, name: str) -> StatusReporter:
        self.scheduler(name)
        return self.reporters[name]

    def cache(self, name: str) -> TTLCache:
        return self.caches.by_name()[name]

    async def startup(self) -> None:
        """Create tables, then start every enabled scheduler and the shared APScheduler."""
        await init_db(self.engine)

        for name, scheduler in self.schedulers.items():
            if self.enabled.get(name, True):
                scheduler.start()
            else:
                logger.info(f"[SCHEDULER:{name}] Disabled by configuration")

        if not self.aps.running:
            self.aps.start()

        for reporter in self.reporters.values():
            logger.info(reporter.summary_line())

    async def shutdown(self) -> None:
        """Stop triggers, wait for manual runs still in flight, then close clients and the engine."""
        for scheduler in self.schedulers.values():
            if scheduler.running:
                scheduler.stop()
        for scheduler in self.schedulers.values():
            await scheduler.drain()
        if self.aps.running:
            self.aps.shutdown(wait=False)
            logger.info("APScheduler shut down")

        await self.provider.close()
        await self.llm.close()
        await self.news_generator.close()
        await close_db(self.engine)


def build_runtime(
    settings: Settings,
    engine: Optional[AsyncEngine] = None,
    provider: Optional[FootballDataProvider] = None,
    llm: Optional[ClaudeClient] = None,
    aps: Optional[AsyncIOScheduler] = None,
) -> Runtime:
    """Construct the full object graph. Collaborators may be injected (tests)."""
    engine = engine or build_engine(settings.DATABASE_URL)
    session_factory = build_session_factory(engine)
    aps = aps or AsyncIOScheduler(timezone=settings.SCHEDULER_TIMEZONE)
    provider = provider or APIFootballProvider.from_settings(settings)
    llm = llm or ClaudeClient.from_settings(settings)
    timeout = settings.JOB_TIMEOUT_SECONDS or None

    caches = FootballCaches(
        countries=TTLCache("countries", settings.CACHE_TTL_COUNTRIES_SECONDS),
        standings=TTLCache("standings", settings.CACHE_TTL_STANDINGS_SECONDS),
        team_form=TTLCache("team_form", settings.CACHE_TTL_TEAM_FORM_SECONDS),
        odds=TTLCache("odds", settings.CACHE_TTL_ODDS_SECONDS),
    )
    football = FootballDataService(provider, caches)
    article_store = SQLRecordStore(Article, session_factory)
    preview_store = SQLRecordStore(PreviewArticle, session_factory)

    odds_sync = OddsSyncTask(
        provider,
        caches.odds,
        leagues=parse_league_ids(settings.ODDS_SYNC_LEAGUES),
        season=settings.CURRENT_SEASON,
        max_fixtures=settings.ODDS_SYNC_MAX_FIXTURES,
        window_hours=settings.ODDS_SYNC_WINDOW_HOURS,
        days_ahead=settings.ODDS_PRECACHE_DAYS,
        bookmaker=settings.ODDS_SYNC_BOOKMAKER,
        request_delay=settings.ODDS_REQUEST_DELAY_SECONDS,
    )
    news_generator = NewsGenerator(
        llm,
        article_store,
        max_articles=settings.NEWS_MAX_ARTICLES_PER_RUN,
        request_delay=settings.NEWS_REQUEST_DELAY_SECONDS,
    )
    preview_generator = PreviewGenerator(
        provider,
        football,
        caches.odds,
        llm,
        preview_store,
        leagues=parse_league_ids(settings.PREVIEW_LEAGUES),
        season=settings.CURRENT_SEASON,
        daily_limit=settings.PREVIEW_DAILY_LIMIT,
        tz=settings.PREVIEW_TIMEZONE,
        bookmaker=settings.ODDS_SYNC_BOOKMAKER,
        request_delay=settings.PREVIEW_REQUEST_DELAY_SECONDS,
    )

    # odds_warmup shares the odds_sync guard, so the two never overlap
    odds_runner = JobRunner("odds_sync", timeout)

    schedulers = {
        NEWS: JobScheduler(
            NEWS,
            [
                JobBinding(
                    job_id="news_generation",
                    runner=JobRunner("news_generation", timeout),
                    task=news_generator,
                    triggers=[Every.hours(settings.NEWS_INTERVAL_HOURS)],
                    max_units=settings.NEWS_MAX_ARTICLES_PER_RUN,
                    description="Rewrite RSS headlines into articles",
                ),
                JobBinding(
                    job_id="news_cleanup",
                    runner=JobRunner("news_cleanup", timeout),
                    task=RetentionCleaner(article_store, RetentionPolicy(settings.NEWS_RETENTION_DAYS)),
                    triggers=[parse_time_of_day(settings.NEWS_CLEANUP_TIME, settings.SCHEDULER_TIMEZONE)],
                    description=f"Delete articles older than {settings.NEWS_RETENTION_DAYS} days",
                ),
            ],
            aps,
        ),
        ODDS: JobScheduler(
            ODDS,
            [
                JobBinding(
                    job_id="odds_sync",
                    runner=odds_runner,
                    task=odds_sync,
                    triggers=[Every.minutes(settings.ODDS_SYNC_INTERVAL_MINUTES)],
                    max_units=settings.ODDS_SYNC_MAX_FIXTURES,
                    description="Refresh odds for live and upcoming fixtures",
                ),
                JobBinding(
                    job_id="odds_warmup",
                    runner=odds_runner,
                    task=odds_sync.warm_up,
                    max_units=settings.ODDS_SYNC_MAX_FIXTURES,
                    description=(
                        f"Pre-cache {settings.ODDS_PRECACHE_DAYS} days of odds when the cache is empty, then sync"
                    ),
                ),
            ],
            aps,
        ),
        PREVIEWS: JobScheduler(
            PREVIEWS,
            [
                JobBinding(
                    job_id="preview_generation",
                    runner=JobRunner("preview_generation", timeout),
                    task=preview_generator,
                    triggers=parse_daily_times(settings.PREVIEW_TIMES, settings.PREVIEW_TIMEZONE),
                    max_units=settings.PREVIEW_DAILY_LIMIT,
                    description="Odds preview articles for upcoming fixtures",
                ),
                JobBinding(
                    job_id="preview_cleanup",
                    runner=JobRunner("preview_cleanup", timeout),
                    task=RetentionCleaner(preview_store, RetentionPolicy(settings.PREVIEW_RETENTION_DAYS)),
                    triggers=[parse_time_of_day(settings.PREVIEW_CLEANUP_TIME, settings.PREVIEW_TIMEZONE)],
                    description=f"Delete previews older than {settings.PREVIEW_RETENTION_DAYS} days",
                ),
            ],
            aps,
        ),
    }

    reporters = {
        NEWS: StatusReporter(
            schedulers[NEWS],
            {
                "interval_hours": settings.NEWS_INTERVAL_HOURS,
                "max_articles_per_run": settings.NEWS_MAX_ARTICLES_PER_RUN,
                "retention_days": settings.NEWS_RETENTION_DAYS,
            },
        ),
        ODDS: StatusReporter(
            schedulers[ODDS],
            {
                "interval_minutes": settings.ODDS_SYNC_INTERVAL_MINUTES,
                "max_fixtures": settings.ODDS_SYNC_MAX_FIXTURES,
                "leagues": parse_league_ids(settings.ODDS_SYNC_LEAGUES),
            },
        ),
        PREVIEWS: StatusReporter(
            schedulers[PREVIEWS],
            {
                "times": settings.PREVIEW_TIMES,
                "timezone": settings.PREVIEW_TIMEZONE,
                "daily_limit": settings.PREVIEW_DAILY_LIMIT,
                "retention_days": settings.PREVIEW_RETENTION_DAYS,
            },
        ),
    }

    return Runtime(
        settings=settings,
        engine=engine,
        aps=aps,
        caches=caches,
        provider=provider,
        llm=llm,
        football=football,
        article_store=article_store,
        preview_store=preview_store,
        odds_sync=odds_sync,
        news_generator=news_generator,
        preview_generator=preview_generator,
        schedulers=schedulers,
        reporters=reporters,
        enabled={
            NEWS: settings.NEWS_SCHEDULER_ENABLED,
            ODDS: settings.ODDS_SYNC_ENABLED,
            PREVIEWS: settings.PREVIEW_SCHEDULER_ENABLED,
        },
    )
