import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from enum import Enum
from typing import Optional

from clubauth.core.config import Settings
from clubauth.core.logging import get_logger

logger = get_logger("email")


class EmailKind(str, Enum):
    VERIFICATION = "verification"
    PASSWORD_RESET = "password_reset"


@dataclass(frozen=True)
class EmailDelivery:
    """An outbound message the caller dispatches after responding."""

    kind: EmailKind
    to: str
    token: str
    name: Optional[str] = None


def redact_email(email: str) -> str:
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class EmailService:
    """SMTP delivery for verification and password reset links.

    When no SMTP host is configured the message is logged (without the link)
    instead of sent. Delivery errors are logged and reported as ``False``;
    they never propagate to the request that triggered them.
    """

    def __init__(
        self,
        *,
        smtp_host: Optional[str] = None,
        smtp_port: int = 587,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
        smtp_use_tls: bool = True,
        from_email: Optional[str] = None,
        from_name: str = "Tech2Gether",
        api_base_url: str = "http://localhost:8000",
        frontend_base_url: Optional[str] = None,
        verification_ttl_hours: int = 24,
        reset_ttl_minutes: int = 60,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.from_email = from_email or smtp_user
        self.from_name = from_name
        self.api_base_url = api_base_url.rstrip("/")
        self.frontend_base_url = frontend_base_url.rstrip("/") if frontend_base_url else None
        self.verification_ttl_hours = verification_ttl_hours
        self.reset_ttl_minutes = reset_ttl_minutes

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailService":
        return cls(
            smtp_host=settings.SMTP_HOST,
            smtp_port=settings.SMTP_PORT,
            smtp_user=settings.SMTP_USER,
            smtp_password=settings.SMTP_PASSWORD,
            smtp_use_tls=settings.SMTP_USE_TLS,
            from_email=settings.EMAIL_FROM,
            from_name=settings.EMAIL_FROM_NAME,
            api_base_url=settings.API_BASE_URL,
            frontend_base_url=settings.FRONTEND_BASE_URL,
            verification_ttl_hours=settings.EMAIL_VERIFICATION_EXPIRE_HOURS,
            reset_ttl_minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    def verification_link(self, token: str) -> str:
        return f"{self.api_base_url}/auth/verify-email/{token}"

    def reset_link(self, token: str) -> str:
        base = self.frontend_base_url or self.api_base_url
        return f"{base}/reset-password?token={token}"

    def build_message(self, delivery: EmailDelivery) -> EmailMessage:
        greeting = f"Hi {delivery.name}," if delivery.name else "Hi there,"
        if delivery.kind == EmailKind.VERIFICATION:
            subject = f"Verify your {self.from_name} email"
            body = (
                f"{greeting}\n\nThanks for creating an account! Please confirm your "
                f"email address by visiting this link (valid for "
                f"{self.verification_ttl_hours} hours):\n\n"
                f"{self.verification_link(delivery.token)}\n\n"
                "If you didn't create this account, you can safely ignore this email."
            )
        else:
            subject = f"Reset your {self.from_name} password"
            body = (
                f"{greeting}\n\nWe received a request to reset your password. Choose a "
                f"new one here (valid for {self.reset_ttl_minutes} minutes):\n\n"
                f"{self.reset_link(delivery.token)}\n\n"
                "If you didn't request this, you can safely ignore this email."
            )
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>" if self.from_email else self.from_name
        msg["To"] = delivery.to
        msg.set_content(body)
        return msg

    def deliver(self, delivery: EmailDelivery) -> bool:
        msg = self.build_message(delivery)
        recipient = redact_email(delivery.to)

        if not self.is_configured:
            logger.info(
                f"EMAIL_DEV_MODE: {delivery.kind.value} email for {recipient} "
                f"not sent (SMTP not configured); subject={msg['Subject']!r}"
            )
            return False

        context = ssl.create_default_context()
        try:
            if self.smtp_use_tls:
                with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
                    server.starttls(context=context)
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.send_message(msg)
            else:
                with smtplib.SMTP_SSL(
                    self.smtp_host, self.smtp_port, context=context, timeout=30
                ) as server:
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.send_message(msg)
        except (smtplib.SMTPException, ssl.SSLError, OSError) as exc:
            logger.error(
                f"EMAIL_FAILED: {delivery.kind.value} email to {recipient} via "
                f"{self.smtp_host}:{self.smtp_port}: {type(exc).__name__}: {exc}"
            )
            return False

        logger.info(f"EMAIL_SENT: {delivery.kind.value} email to {recipient}")
        return True
