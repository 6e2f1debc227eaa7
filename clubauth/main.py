from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from clubauth.api.v1 import auth, users
from clubauth.core.config import settings
from clubauth.core.errors import AuthError, CorruptCredential
from clubauth.core.logging import get_logger
from clubauth.core.middleware import (
    HTTPSRedirectMiddleware,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
)
from clubauth.core.rate_limit import limiter, rate_limit_exceeded_handler
from clubauth.db.session import init_db

VERSION = "0.1.0"

logger = get_logger("app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.using_dev_secrets:
        logger.warning(
            "Using built-in development signing secrets; set SECRET_KEY and "
            "ACTION_TOKEN_SECRET_KEY outside local development"
        )
    await init_db()
    yield


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    if isinstance(exc, CorruptCredential):
        logger.error(f"Corrupt credential encountered on {request.url.path}")
    return JSONResponse(
        status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers
    )


def _field_name(loc) -> str:
    parts = [str(part) for part in loc if part not in ("body", "query", "path")]
    return ".".join(parts) or "body"


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {"field": _field_name(error.get("loc", ())), "message": error.get("msg", "Invalid value")}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Validation failed", "code": "validation_error", "errors": errors},
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="Club Auth Service",
        version=VERSION,
        docs_url="/docs" if settings.DEBUG else None,  # Hide docs in production
        redoc_url="/redoc" if settings.DEBUG else None,
        lifespan=lifespan,
    )
    app.state.limiter = limiter

    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    )
    if settings.FORCE_HTTPS:
        app.add_middleware(HTTPSRedirectMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)

    app.include_router(auth.router, prefix="/auth", tags=["auth"])
    app.include_router(users.router, prefix="/users", tags=["users"])

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": "club-auth-service", "version": VERSION}

    return app


app = create_app()
