"""
SafawiNet Server - Request Rate Limiting

Per-IP throttling for the login endpoint. Counters live in process memory,
so each server process limits on its own.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from config import GetSettings

# Create logger
logger = logging.getLogger(__name__)


def GetLoginRateLimit() -> str:
    """Current login limit, e.g. "10/minute" (read per request)"""
    return GetSettings().login_rate_limit


limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    """
    Render throttled requests like every other error response
    """
    logger.warning(f"Rate limit exceeded for {get_remote_address(request)} on {request.url.path}: {exc.detail}")

    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "message": "Too many login attempts. Please try again later.",
            "limit": str(exc.detail)
        }
    )
