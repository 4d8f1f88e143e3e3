"""Public API endpoints: cached football lookups for the site.

Every endpoint reads through the TTL caches in FootballDataService; a miss
fetches once from the provider. Public (no auth), rate limited per IP.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from matchday.etl.base import RemoteFetchError
from matchday.routes.ops import get_runtime
from matchday.runtime import Runtime
from matchday.security import limiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["api"])


def _upstream_error(e: RemoteFetchError) -> HTTPException:
    logger.warning(f"[API] Upstream lookup failed: {e}")
    if e.is_rate_limited:
        return HTTPException(status_code=503, detail="Upstream rate limited, retry later")
    return HTTPException(status_code=502, detail=f"Upstream error: {e}")


@router.get("/countries")
@limiter.limit("60/minute")
async def list_countries(request: Request, runtime: Runtime = Depends(get_runtime)):
    """Countries with flag and slug, "World" first."""
    try:
        return {"countries": await runtime.football.get_countries()}
    except RemoteFetchError as e:
        raise _upstream_error(e)


@router.get("/standings/{league_id}")
@limiter.limit("60/minute")
async def league_standings(
    request: Request,
    league_id: int,
    season: Optional[int] = Query(default=None, ge=1900),
    runtime: Runtime = Depends(get_runtime),
):
    season = season or runtime.settings.CURRENT_SEASON
    try:
        standings = await runtime.football.get_standings(league_id, season)
    except RemoteFetchError as e:
        raise _upstream_error(e)
    return {"league_id": league_id, "season": season, "standings": standings}


@router.get("/top-scorers/{league_id}")
@limiter.limit("60/minute")
async def league_top_scorers(
    request: Request,
    league_id: int,
    season: Optional[int] = Query(default=None, ge=1900),
    runtime: Runtime = Depends(get_runtime),
):
    season = season or runtime.settings.CURRENT_SEASON
    try:
        scorers = await runtime.football.get_top_scorers(league_id, season)
    except RemoteFetchError as e:
        raise _upstream_error(e)
    return {"league_id": league_id, "season": season, "top_scorers": scorers}


@router.get("/teams/{team_id}/form")
@limiter.limit("60/minute")
async def team_form(
    request: Request,
    team_id: int,
    last: int = Query(default=5, ge=1, le=20),
    runtime: Runtime = Depends(get_runtime),
):
    """W/D/L string of the team's last finished fixtures, newest first."""
    try:
        form = await runtime.football.get_team_form(team_id, last)
    except RemoteFetchError as e:
        raise _upstream_error(e)
    return {"team_id": team_id, **form}
