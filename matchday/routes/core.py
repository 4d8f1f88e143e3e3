"""Core routes: health, metrics.

Auth per-endpoint:
- /health: public, rate limited
- /metrics: Bearer token when METRICS_BEARER_TOKEN is set
"""

from fastapi import APIRouter, Header, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from matchday.security import limiter
from matchday.telemetry import get_metrics_text

router = APIRouter(tags=["core"])


class HealthResponse(BaseModel):
    status: str
    schedulers: dict[str, bool]


@router.get("/health", response_model=HealthResponse)
@limiter.limit("120/minute")
async def health_check(request: Request):
    """Health check endpoint."""
    runtime = getattr(request.app.state, "runtime", None)
    schedulers = {}
    if runtime is not None:
        schedulers = {name: scheduler.running for name, scheduler in runtime.schedulers.items()}
    return HealthResponse(status="ok", schedulers=schedulers)


def _unauthorized(reason: str) -> PlainTextResponse:
    return PlainTextResponse(
        content=f"# Unauthorized: {reason}\n",
        status_code=401,
        media_type="text/plain",
    )


@router.get("/metrics")
async def prometheus_metrics(
    request: Request,
    authorization: str = Header(None, alias="Authorization"),
):
    """
    Prometheus metrics: job runs, cache hit/miss, upstream requests.

    Requires Bearer token authentication when METRICS_BEARER_TOKEN is set.
    """
    runtime = getattr(request.app.state, "runtime", None)
    expected_token = runtime.settings.METRICS_BEARER_TOKEN if runtime is not None else ""
    if expected_token:
        if not authorization:
            return _unauthorized("Missing Authorization header")
        # Extract token from "Bearer <token>"
        parts = authorization.split(" ", 1)
        if len(parts) != 2 or parts[0].lower() != "bearer":
            return _unauthorized("Invalid Authorization format")
        if parts[1] != expected_token:
            return _unauthorized("Invalid token")

    content, content_type = get_metrics_text()
    return PlainTextResponse(content=content, media_type=content_type)
