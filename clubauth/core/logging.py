import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from clubauth.core.config import settings

# Configure root logger
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger("club-auth-service")


def get_logger(name: str) -> logging.Logger:
    return logger.getChild(name)


class SecurityEvent(BaseModel):
    """Security event model for structured logging"""

    event_type: str
    user_id: Optional[str] = None
    email: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    endpoint: Optional[str] = None
    success: bool = True
    details: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def log_security_event(event: SecurityEvent):
    """Log security events with structured data"""
    event_data = event.model_dump(mode="json")

    if event.success:
        logger.info(f"SECURITY_EVENT: {json.dumps(event_data)}")
    else:
        logger.warning(f"SECURITY_ALERT: {json.dumps(event_data)}")


def log_registration(
    user_id: Optional[str],
    email: str,
    ip_address: Optional[str] = None,
    success: bool = True,
    details: Optional[str] = None,
):
    log_security_event(
        SecurityEvent(
            event_type="user_registration",
            user_id=user_id,
            email=email,
            ip_address=ip_address,
            success=success,
            details=details or ("User registered" if success else None),
        )
    )


def log_auth_success(
    user_id: str, email: str, ip_address: Optional[str] = None, user_agent: str = None
):
    """Log successful authentication"""
    event = SecurityEvent(
        event_type="auth_success",
        user_id=user_id,
        email=email,
        ip_address=ip_address,
        user_agent=user_agent,
        success=True,
    )
    log_security_event(event)


def log_auth_failure(
    email: str, ip_address: Optional[str], reason: str, user_agent: str = None
):
    """Log failed authentication attempts"""
    event = SecurityEvent(
        event_type="auth_failure",
        email=email,
        ip_address=ip_address,
        user_agent=user_agent,
        success=False,
        details=reason,
    )
    log_security_event(event)


def log_account_lockout(
    email: str, locked_until: datetime, ip_address: Optional[str] = None
):
    """Log account lockout events"""
    event = SecurityEvent(
        event_type="account_lockout",
        email=email,
        ip_address=ip_address,
        success=False,
        details=(
            "Account locked due to multiple failed attempts until "
            f"{locked_until.isoformat()}"
        ),
    )
    log_security_event(event)


def log_token_rejected(kind: str, reason: str, ip_address: Optional[str] = None):
    log_security_event(
        SecurityEvent(
            event_type="token_rejected",
            ip_address=ip_address,
            success=False,
            details=f"{kind}: {reason}",
        )
    )


def log_email_verified(user_id: str, email: str):
    log_security_event(
        SecurityEvent(event_type="email_verified", user_id=user_id, email=email)
    )


def log_password_reset_requested(email: str, eligible: bool):
    # Internal log only; the HTTP response never reveals eligibility.
    log_security_event(
        SecurityEvent(
            event_type="password_reset_requested",
            email=email,
            details="token issued" if eligible else "no matching account",
        )
    )


def log_password_changed(user_id: str, via: str):
    log_security_event(
        SecurityEvent(
            event_type="password_changed",
            user_id=user_id,
            details=f"Password changed via {via}",
        )
    )


def log_rate_limit_exceeded(
    ip_address: Optional[str], endpoint: str, user_agent: str = None
):
    """Log rate limit violations"""
    event = SecurityEvent(
        event_type="rate_limit_exceeded",
        ip_address=ip_address,
        endpoint=endpoint,
        user_agent=user_agent,
        success=False,
        details="Rate limit exceeded",
    )
    log_security_event(event)


def log_user_action(
    action: str, user_id: str, target_user_id: str = None, ip_address: str = None
):
    """Log user management actions"""
    event = SecurityEvent(
        event_type="user_action",
        user_id=user_id,
        ip_address=ip_address,
        success=True,
        details=f"Action: {action}, Target: {target_user_id or 'self'}",
    )
    log_security_event(event)
