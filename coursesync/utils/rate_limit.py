"""Rate limiting for the public endpoints using slowapi.

Limits are keyed by remote address. The limiter is attached to
``app.state.limiter`` by ``create_app`` so slowapi can find it per request.

Example:
    @router.get("/test")
    @limiter.limit(TEST_ENDPOINT_LIMIT)
    async def reachability_test(request: Request):
        ...
"""

from datetime import datetime

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

TEST_ENDPOINT_LIMIT = "10/minute"

RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again later."

limiter = Limiter(key_func=get_remote_address)


async def rate_limit_exceeded_handler(
    request: Request, exc: RateLimitExceeded
) -> JSONResponse:
    """Render a 429 in the same envelope as every other API error."""
    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "error": RATE_LIMIT_MESSAGE,
            "timestamp": datetime.utcnow().isoformat(),
            "path": str(request.url),
        },
    )
