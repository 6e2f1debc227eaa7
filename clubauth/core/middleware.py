"""
Security middleware for the application.
Handles security headers, HTTPS enforcement and request logging.
"""
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import RedirectResponse

from clubauth.core.config import settings
from clubauth.core.logging import get_logger

logger = get_logger("http")

_TOKEN_PATH_PREFIXES = ("/auth/verify-email/",)


def loggable_path(path: str) -> str:
    for prefix in _TOKEN_PATH_PREFIXES:
        if path.startswith(prefix):
            return prefix + "<token>"
    return path


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"

        # JSON only; nothing should ever be rendered or framed
        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none'"
        )

        if not settings.DEBUG and request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        response.headers["Server"] = "ClubAuthService"

        return response


class HTTPSRedirectMiddleware(BaseHTTPMiddleware):
    """Redirect plain-http GET/HEAD requests to https."""

    async def dispatch(self, request: Request, call_next):
        forwarded = request.headers.get("x-forwarded-proto", request.url.scheme)
        if forwarded == "http" and request.method in ("GET", "HEAD"):
            https_url = request.url.replace(scheme="https")
            return RedirectResponse(url=str(https_url), status_code=301)

        return await call_next(request)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log requests for monitoring and security."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"
        user_agent = request.headers.get("user-agent", "unknown")

        # path only; query strings and some path segments carry tokens
        logger.info(
            f"REQUEST {request_id}: {request.method} {loggable_path(request.url.path)} "
            f"from {client_ip} - {user_agent}"
        )

        response = await call_next(request)

        duration = time.perf_counter() - start_time
        logger.info(f"RESPONSE {request_id}: {response.status_code} in {duration:.3f}s")

        response.headers["X-Request-ID"] = request_id

        return response
