from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from clubauth.core.config import settings
from clubauth.core.logging import log_rate_limit_exceeded

# Toggle ``limiter.enabled`` at runtime; the decorators read it per request.
limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Log the violation and answer 429 in the same body shape as other errors."""
    log_rate_limit_exceeded(
        get_remote_address(request),
        request.url.path,
        request.headers.get("user-agent"),
    )
    return JSONResponse(
        status_code=429,
        content={
            "detail": f"Rate limit exceeded: {exc.detail}",
            "code": "rate_limited",
        },
    )


__all__ = ["limiter", "rate_limit_exceeded_handler"]
