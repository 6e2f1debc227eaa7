import threading
import uuid
from datetime import datetime
from typing import Dict, List, Mapping, Optional

from clubauth.core.tokens import TokenKind
from clubauth.db.models import utc_now
from clubauth.db.store import (
    PUBLIC_PROFILE_FIELDS,
    Account,
    ConstraintViolation,
    CredentialRecord,
    Identity,
)

_TOKEN_FIELDS = {
    TokenKind.EMAIL_VERIFICATION: ("email_verification_token", "email_verification_expires"),
    TokenKind.PASSWORD_RESET: ("password_reset_token", "password_reset_expires"),
}


class MemoryCredentialStore:
    """In-process CredentialStore for tests and single-node development."""

    def __init__(self) -> None:
        self._accounts: Dict[str, Account] = {}
        self._by_email: Dict[str, str] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._accounts)

    async def find_by_email(self, email: str) -> Optional[Account]:
        with self._lock:
            user_id = self._by_email.get(email)
            return self._accounts.get(user_id) if user_id else None

    async def find_by_id(self, user_id: str) -> Optional[Account]:
        with self._lock:
            return self._accounts.get(str(user_id))

    async def find_by_token(self, kind: TokenKind, digest: str) -> Optional[Account]:
        token_field = _TOKEN_FIELDS[TokenKind(kind)][0]
        with self._lock:
            for account in self._accounts.values():
                if getattr(account.credential, token_field) == digest:
                    return account
        return None

    async def list_accounts(self, skip: int = 0, limit: int = 100) -> List[Account]:
        with self._lock:
            ordered = sorted(self._accounts.values(), key=lambda a: a.identity.created_at)
        return ordered[skip : skip + limit]

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
        if (verification_token is None) != (verification_expires is None):
            raise ValueError("verification token and expiry must be set together")
        now = utc_now()
        user_id = str(uuid.uuid4())
        account = Account(
            identity=Identity(
                user_id=user_id,
                email=email,
                created_at=now,
                updated_at=now,
                **{name: profile.get(name) for name in PUBLIC_PROFILE_FIELDS},
            ),
            credential=CredentialRecord(
                user_id=user_id,
                password_hash=password_hash,
                password_salt=password_salt,
                is_admin=is_admin,
                email_is_verified=email_is_verified,
                email_verification_token=verification_token,
                email_verification_expires=verification_expires,
            ),
        )
        with self._lock:
            if email in self._by_email:
                raise ConstraintViolation(
                    "User with this email already exists", {"field": "email"}
                )
            self._accounts[user_id] = account
            self._by_email[email] = user_id
        return account

    def remove(self, user_id: str) -> bool:
        with self._lock:
            account = self._accounts.pop(str(user_id), None)
            if account is None:
                return False
            self._by_email.pop(account.email, None)
            return True

    def _replace(
        self, account: Account, identity: Optional[dict] = None, credential: Optional[dict] = None
    ) -> Account:
        updated = Account(
            identity=account.identity.model_copy(update=identity or {}),
            credential=account.credential.model_copy(update=credential or {}),
        )
        self._accounts[account.user_id] = updated
        return updated

    async def save_token(
        self, user_id: str, kind: TokenKind, digest: str, expires: datetime
    ) -> bool:
        token_field, expires_field = _TOKEN_FIELDS[TokenKind(kind)]
        with self._lock:
            account = self._accounts.get(str(user_id))
            if account is None:
                return False
            self._replace(account, credential={token_field: digest, expires_field: expires})
            return True

    async def update_password(
        self,
        user_id: str,
        password_hash: str,
        password_salt: str,
        *,
        reset_token: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        now = now or utc_now()
        with self._lock:
            account = self._accounts.get(str(user_id))
            if account is None:
                return False
            if reset_token is not None:
                expires = account.credential.password_reset_expires
                if account.credential.password_reset_token != reset_token:
                    return False
                if expires is None or now >= expires:
                    return False
            self._replace(
                account,
                identity={"updated_at": now},
                credential={
                    "password_hash": password_hash,
                    "password_salt": password_salt,
                    "password_reset_token": None,
                    "password_reset_expires": None,
                },
            )
            return True

    async def update_verification(self, digest: str, now: datetime) -> Optional[Account]:
        with self._lock:
            for account in self._accounts.values():
                if account.credential.email_verification_token == digest:
                    break
            else:
                return None
            expires = account.credential.email_verification_expires
            if expires is None or now >= expires:
                return None
            return self._replace(
                account,
                identity={"updated_at": now},
                credential={
                    "email_is_verified": True,
                    "email_verification_token": None,
                    "email_verification_expires": None,
                },
            )

    async def update_profile(
        self, user_id: str, fields: Mapping[str, Optional[str]]
    ) -> Optional[Account]:
        values = {name: fields[name] for name in PUBLIC_PROFILE_FIELDS if name in fields}
        with self._lock:
            account = self._accounts.get(str(user_id))
            if account is None:
                return None
            if not values:
                return account
            values["updated_at"] = utc_now()
            return self._replace(account, identity=values)
