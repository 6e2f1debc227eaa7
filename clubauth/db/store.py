"""Persistence contract for identities and credentials.

Stores hand out frozen snapshots; every change goes through an explicit store
call. Token columns hold the SHA-256 digest of the outstanding token, never the
token itself.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Protocol

from pydantic import BaseModel, ConfigDict

from clubauth.core.tokens import TokenKind

PUBLIC_PROFILE_FIELDS = (
    "first_name",
    "last_name",
    "preferred_name",
    "phone",
    "pronouns",
    "school_name",
    "user_linkedin",
    "user_github",
)


class ConstraintViolation(Exception):
    """Raised when a storage-layer uniqueness constraint is violated."""

    def __init__(self, message: str, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class Identity(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    email: str
    first_name: str
    last_name: str
    preferred_name: Optional[str] = None
    phone: Optional[str] = None
    pronouns: Optional[str] = None
    school_name: Optional[str] = None
    user_linkedin: Optional[str] = None
    user_github: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    def profile(self) -> Dict[str, Optional[str]]:
        return {name: getattr(self, name) for name in PUBLIC_PROFILE_FIELDS}


class CredentialRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    password_hash: str
    password_salt: str
    is_admin: bool = False
    email_is_verified: bool = False
    email_verification_token: Optional[str] = None
    email_verification_expires: Optional[datetime] = None
    password_reset_token: Optional[str] = None
    password_reset_expires: Optional[datetime] = None

    def outstanding(self, kind: TokenKind) -> tuple[Optional[str], Optional[datetime]]:
        if kind == TokenKind.EMAIL_VERIFICATION:
            return self.email_verification_token, self.email_verification_expires
        if kind == TokenKind.PASSWORD_RESET:
            return self.password_reset_token, self.password_reset_expires
        raise ValueError(f"{kind} tokens are not stored")


class Account(BaseModel):
    """An Identity together with its Credential."""

    model_config = ConfigDict(frozen=True)

    identity: Identity
    credential: CredentialRecord

    @property
    def user_id(self) -> str:
        return self.identity.user_id

    @property
    def email(self) -> str:
        return self.identity.email

    def public_profile(self) -> Dict[str, Any]:
        return {
            "user_id": self.identity.user_id,
            "email": self.identity.email,
            **self.identity.profile(),
            "is_admin": self.credential.is_admin,
            "email_is_verified": self.credential.email_is_verified,
            "created_at": self.identity.created_at,
            "updated_at": self.identity.updated_at,
        }


class CredentialStore(Protocol):
    async def find_by_email(self, email: str) -> Optional[Account]: ...

    async def find_by_id(self, user_id: str) -> Optional[Account]: ...

    async def find_by_token(self, kind: TokenKind, digest: str) -> Optional[Account]: ...

    async def list_accounts(self, skip: int = 0, limit: int = 100) -> List[Account]: ...

    async def create(
        self,
        *,
        email: str,
        profile: Mapping[str, Optional[str]],
        password_hash: str,
        password_salt: str,
        is_admin: bool = False,
        email_is_verified: bool = False,
        verification_token: Optional[str] = None,
        verification_expires: Optional[datetime] = None,
    ) -> Account:
        """Create Identity and Credential together; raises ConstraintViolation."""
        ...

    async def save_token(
        self, user_id: str, kind: TokenKind, digest: str, expires: datetime
    ) -> bool:
        """Record a new outstanding token, replacing any previous one."""
        ...

    async def update_password(
        self,
        user_id: str,
        password_hash: str,
        password_salt: str,
        *,
        reset_token: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """Write hash+salt and clear any outstanding reset token.

        With ``reset_token`` the write only happens while that digest is the
        outstanding, unexpired reset token for ``user_id``.
        """
        ...

    async def update_verification(self, digest: str, now: datetime) -> Optional[Account]:
        """Consume an outstanding verification token and mark the email verified."""
        ...

    async def update_profile(
        self, user_id: str, fields: Mapping[str, Optional[str]]
    ) -> Optional[Account]: ...
