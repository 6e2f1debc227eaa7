from typing import List, Literal, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

DEV_SECRET_KEY = "dev-insecure-session-secret"
DEV_ACTION_TOKEN_SECRET_KEY = "dev-insecure-action-secret"


class Settings(BaseSettings):
    ENVIRONMENT: Literal["development", "test", "production"] = Field(
        default="development", description="Deployment environment"
    )
    DEBUG: bool = Field(default=False, description="Debug mode")
    LOG_LEVEL: str = Field(default="INFO", description="Root log level")

    DATABASE_URL: str = Field(
        default="postgresql+asyncpg://postgres:password@db:5432/clubdb",
        description="Database connection URL",
    )

    SECRET_KEY: Optional[str] = Field(
        default=None, description="Signing secret for access and refresh tokens"
    )
    ACTION_TOKEN_SECRET_KEY: Optional[str] = Field(
        default=None,
        description="Signing secret for email verification and password reset tokens",
    )
    ALGORITHM: str = Field(default="HS256", description="JWT signing algorithm")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(
        default=60 * 24, description="Access token expiration time in minutes"
    )
    REFRESH_TOKEN_EXPIRE_DAYS: int = Field(
        default=7, description="Refresh token expiration time in days"
    )
    EMAIL_VERIFICATION_EXPIRE_HOURS: int = Field(
        default=24, description="Email verification token expiration time in hours"
    )
    PASSWORD_RESET_EXPIRE_MINUTES: int = Field(
        default=60, description="Password reset token expiration time in minutes"
    )
    BCRYPT_ROUNDS: int = Field(
        default=12, ge=4, le=31, description="bcrypt work factor"
    )

    MAX_LOGIN_ATTEMPTS: int = Field(
        default=5, description="Maximum login attempts before lockout"
    )
    LOCKOUT_DURATION_MINUTES: int = Field(
        default=30, description="Account lockout duration in minutes"
    )
    REQUIRE_EMAIL_VERIFICATION: bool = Field(
        default=True, description="Refuse logins until the email is verified"
    )

    REFRESH_TOKEN_TRANSPORT: Literal["cookie", "body"] = Field(
        default="cookie", description="How refresh tokens travel to and from clients"
    )
    REFRESH_COOKIE_NAME: str = Field(default="refresh_token")
    REFRESH_COOKIE_SECURE: bool = Field(default=True)
    REFRESH_COOKIE_SAMESITE: Literal["lax", "strict", "none"] = Field(default="strict")
    REFRESH_COOKIE_PATH: str = Field(default="/auth")

    SMTP_HOST: Optional[str] = Field(default=None, description="SMTP server host")
    SMTP_PORT: int = Field(default=587, description="SMTP server port")
    SMTP_USER: Optional[str] = Field(default=None)
    SMTP_PASSWORD: Optional[str] = Field(default=None)
    SMTP_USE_TLS: bool = Field(default=True, description="STARTTLS instead of implicit SSL")
    EMAIL_FROM: Optional[str] = Field(default=None, description="Sender address")
    EMAIL_FROM_NAME: str = Field(default="Tech2Gether")

    API_BASE_URL: str = Field(
        default="http://localhost:8000", description="Public base URL of this API"
    )
    FRONTEND_BASE_URL: Optional[str] = Field(
        default=None, description="Frontend base URL used for redirect flows"
    )
    CORS_ORIGINS: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"]
    )
    FORCE_HTTPS: bool = Field(default=False, description="Redirect GET/HEAD over http to https")

    RATE_LIMIT_ENABLED: bool = Field(default=True)
    RATE_LIMIT_REGISTER: str = Field(default="5/minute")
    RATE_LIMIT_LOGIN: str = Field(default="10/minute")
    RATE_LIMIT_EMAIL: str = Field(
        default="5/minute", description="Limit for endpoints that trigger outbound email"
    )

    model_config = {"env_file": ".env", "case_sensitive": True, "extra": "ignore"}

    @model_validator(mode="after")
    def _require_signing_secrets(self) -> "Settings":
        if self.ENVIRONMENT == "production":
            missing = [
                name
                for name in ("SECRET_KEY", "ACTION_TOKEN_SECRET_KEY")
                if not getattr(self, name)
            ]
            if missing:
                raise ValueError(
                    f"{', '.join(missing)} must be set when ENVIRONMENT=production"
                )
        else:
            if not self.SECRET_KEY:
                self.SECRET_KEY = DEV_SECRET_KEY
            if not self.ACTION_TOKEN_SECRET_KEY:
                self.ACTION_TOKEN_SECRET_KEY = DEV_ACTION_TOKEN_SECRET_KEY
        return self

    @property
    def using_dev_secrets(self) -> bool:
        return (
            self.SECRET_KEY == DEV_SECRET_KEY
            or self.ACTION_TOKEN_SECRET_KEY == DEV_ACTION_TOKEN_SECRET_KEY
        )


settings = Settings()
