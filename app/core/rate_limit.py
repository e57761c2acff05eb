"""Rate limiting for the connect endpoints using SlowAPI."""

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse


def session_or_remote_address(request: Request) -> str:
    """Limit per session when the caller is logged in, else per client IP."""
    session_id = request.cookies.get("session_id")
    if session_id:
        return f"session:{session_id}"
    return get_remote_address(request)


limiter = Limiter(key_func=session_or_remote_address)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """429 with the limit that was hit, e.g. "10 per 1 minute"."""
    return JSONResponse(
        status_code=429,
        content={
            "detail": "Too many connect attempts. Please try again later.",
            "limit": exc.detail,
        },
    )
