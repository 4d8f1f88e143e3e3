"""FastAPI application for the matchday football data and content backend."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from matchday.config import get_settings
from matchday.routes.api import router as api_router
from matchday.routes.core import router as core_router
from matchday.routes.ops import router as ops_router
from matchday.runtime import ODDS, build_runtime
from matchday.security import limiter
from matchday.telemetry.sentry import init_sentry

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize Sentry for error tracking (before FastAPI app creation)
# Only activates if SENTRY_DSN is set in environment
init_sentry()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting matchday...")
    runtime = build_runtime(get_settings())
    app.state.runtime = runtime
    await runtime.startup()

    # Pre-cache odds if the cache starts empty, then run one sync pass, in the background
    if runtime.enabled.get(ODDS):
        ack = runtime.scheduler(ODDS).submit_manual("odds_warmup")
        logger.info(f"[STARTUP] Odds warm-up: {ack.message}")

    yield

    # Shutdown
    logger.info("Shutting down...")
    await runtime.shutdown()


app = FastAPI(
    title="matchday",
    description="Football data, cached lookups and scheduled content generation",
    version="1.0.0",
    lifespan=lifespan,
)

# Add rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Include routers
app.include_router(core_router)
app.include_router(api_router)
app.include_router(ops_router)
