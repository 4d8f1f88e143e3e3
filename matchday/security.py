"""Security: rate limiting and API key authentication for ops endpoints."""

import logging
import os
from typing import Optional

from fastapi import HTTPException, Request, Security
from fastapi.security import APIKeyHeader
from slowapi import Limiter
from slowapi.util import get_remote_address

from matchday.config import Settings, get_settings

logger = logging.getLogger(__name__)

IS_PRODUCTION = os.getenv("ENVIRONMENT") == "production"

# Rate limiter using client IP
limiter = Limiter(key_func=get_remote_address)

# API Key header for ops endpoints
api_key_header = APIKeyHeader(name=get_settings().API_KEY_HEADER, auto_error=False)


def _settings_for(request: Request) -> Settings:
    runtime = getattr(request.app.state, "runtime", None)
    return runtime.settings if runtime is not None else get_settings()


async def verify_api_key(
    request: Request,
    api_key: Optional[str] = Security(api_key_header),
) -> bool:
    """
    Verify API key for protected endpoints.

    In production an empty API_KEY blocks all ops requests (fail-closed).
    In development an empty API_KEY allows all requests.
    """
    expected = _settings_for(request).API_KEY

    if not expected:
        if IS_PRODUCTION:
            logger.error("API_KEY not configured in production - blocking ops access")
            raise HTTPException(
                status_code=503,
                detail="Service misconfigured. Ops access disabled.",
            )
        return True

    if not api_key:
        raise HTTPException(
            status_code=401,
            detail="Missing API key. Provide it via X-API-Key header.",
        )

    if api_key != expected:
        logger.warning("Invalid API key attempt")
        raise HTTPException(
            status_code=401,
            detail="Invalid API key",
        )

    return True
