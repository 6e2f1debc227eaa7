from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from starlette.concurrency import run_in_threadpool

from clubauth.core.config import Settings
from clubauth.core.errors import (
    AccountLocked,
    DuplicateEmail,
    EmailNotVerified,
    Forbidden,
    InvalidCredentials,
    InvalidToken,
    NotAuthenticated,
    NotFound,
    ValidationError,
)
from clubauth.core.lockout import LockoutTracker
from clubauth.core.logging import (
    log_account_lockout,
    log_auth_failure,
    log_auth_success,
    log_email_verified,
    log_password_changed,
    log_password_reset_requested,
    log_registration,
    log_token_rejected,
    log_user_action,
)
from clubauth.core.security import PasswordCodec
from clubauth.core.tokens import TokenIssuer, TokenKind, token_digest
from clubauth.core.validation import clean_profile, ensure_strong_password, normalize_email
from clubauth.db.store import Account, ConstraintViolation, CredentialRecord, CredentialStore
from clubauth.services.email import EmailDelivery, EmailKind


@dataclass(frozen=True)
class AuthContext:
    user_id: str
    email: str
    is_admin: bool = False


@dataclass(frozen=True)
class RegistrationResult:
    account: Account
    verification_token: str
    delivery: EmailDelivery


@dataclass(frozen=True)
class LoginResult:
    account: Account
    access_token: str
    refresh_token: str


def _display_name(account: Account) -> str:
    return account.identity.preferred_name or account.identity.first_name


class AuthService:
    """Registration, login and token lifecycles over a CredentialStore.

    Every failure is raised as one of the ``clubauth.core.errors`` types.
    Outbound mail is returned as ``EmailDelivery`` values for the caller to
    dispatch after responding, so a slow or failing transport never affects
    the outcome of an operation.
    """

    def __init__(
        self,
        store: CredentialStore,
        *,
        passwords: PasswordCodec,
        tokens: TokenIssuer,
        lockout: LockoutTracker,
        require_verified_email: bool = True,
    ) -> None:
        self.store = store
        self.passwords = passwords
        self.tokens = tokens
        self.lockout = lockout
        self.require_verified_email = require_verified_email

    @classmethod
    def from_settings(
        cls,
        store: CredentialStore,
        lockout: LockoutTracker,
        settings: Settings,
        passwords: Optional[PasswordCodec] = None,
        tokens: Optional[TokenIssuer] = None,
    ) -> "AuthService":
        return cls(
            store,
            passwords=passwords or PasswordCodec(rounds=settings.BCRYPT_ROUNDS),
            tokens=tokens or TokenIssuer.from_settings(settings),
            lockout=lockout,
            require_verified_email=settings.REQUIRE_EMAIL_VERIFICATION,
        )

    # bcrypt is CPU-bound; keep it off the event loop

    async def _hash_password(self, password: str) -> Tuple[str, str]:
        return await run_in_threadpool(self.passwords.hash, password)

    async def _check_password(self, password: Any, credential: CredentialRecord) -> bool:
        return await run_in_threadpool(
            self.passwords.verify,
            password,
            credential.password_hash,
            credential.password_salt,
        )

    def _session_claims(self, account: Account) -> Dict[str, Any]:
        return {
            "sub": account.user_id,
            "user_id": account.user_id,
            "email": account.email,
            "is_admin": account.credential.is_admin,
        }

    def _verify_token(self, token: str, kind: TokenKind) -> Dict[str, Any]:
        try:
            return self.tokens.verify(token, kind)
        except InvalidToken:
            log_token_rejected(kind.value, "signature, type or expiry check failed")
            raise

    async def _mint_stored_token(
        self, account: Account, kind: TokenKind, claims: Mapping[str, Any]
    ) -> str:
        token, expires = self.tokens.issue_with_expiry(claims, kind)
        await self.store.save_token(account.user_id, kind, token_digest(token), expires)
        return token

    async def register(
        self, email: str, password: str, profile: Mapping[str, Any]
    ) -> RegistrationResult:
        errors: List[dict] = []
        try:
            email = normalize_email(email)
        except ValidationError as exc:
            errors.extend(exc.errors)
        try:
            cleaned = clean_profile(profile, registering=True)
        except ValidationError as exc:
            errors.extend(exc.errors)
        if errors:
            raise ValidationError(errors=errors)
        ensure_strong_password(password)

        if await self.store.find_by_email(email) is not None:
            log_registration(None, email, success=False, details="Duplicate email")
            raise DuplicateEmail()

        password_hash, password_salt = await self._hash_password(password)
        token, expires = self.tokens.issue_with_expiry(
            {"email": email}, TokenKind.EMAIL_VERIFICATION
        )
        try:
            account = await self.store.create(
                email=email,
                profile=cleaned,
                password_hash=password_hash,
                password_salt=password_salt,
                verification_token=token_digest(token),
                verification_expires=expires,
            )
        except ConstraintViolation as exc:
            log_registration(None, email, success=False, details=exc.message)
            raise DuplicateEmail() from exc

        log_registration(account.user_id, email)
        return RegistrationResult(
            account=account,
            verification_token=token,
            delivery=EmailDelivery(
                EmailKind.VERIFICATION, email, token, _display_name(account)
            ),
        )

    async def login(
        self,
        email: str,
        password: str,
        *,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> LoginResult:
        email = normalize_email(email)
        if not isinstance(password, str) or not password:
            raise ValidationError(
                errors=[{"field": "password", "message": "Password is required"}]
            )

        if self.lockout.is_locked(email):
            log_auth_failure(email, ip_address, "Account locked", user_agent)
            raise AccountLocked()

        account = await self.store.find_by_email(email)
        if account is None:
            # one bcrypt check either way
            await run_in_threadpool(self.passwords.dummy_verify)
            log_auth_failure(email, ip_address, "Unknown email", user_agent)
            raise InvalidCredentials()

        if not await self._check_password(password, account.credential):
            if self.lockout.record_failure(email):
                log_account_lockout(email, self.lockout.locked_until(email), ip_address)
            log_auth_failure(email, ip_address, "Invalid password", user_agent)
            raise InvalidCredentials()

        self.lockout.record_success(email)

        if self.require_verified_email and not account.credential.email_is_verified:
            log_auth_failure(email, ip_address, "Email not verified", user_agent)
            raise EmailNotVerified()

        claims = self._session_claims(account)
        access_token = self.tokens.issue(claims, TokenKind.ACCESS)
        refresh_token = self.tokens.issue({"user_id": account.user_id}, TokenKind.REFRESH)
        log_auth_success(account.user_id, email, ip_address, user_agent)
        return LoginResult(account, access_token, refresh_token)

    async def verify_email(self, token: str) -> Account:
        self._verify_token(token, TokenKind.EMAIL_VERIFICATION)
        account = await self.store.update_verification(
            token_digest(token), self.tokens.clock()
        )
        if account is None:
            log_token_rejected(TokenKind.EMAIL_VERIFICATION.value, "no outstanding token")
            raise InvalidToken("Invalid verification token")
        log_email_verified(account.user_id, account.email)
        return account

    async def resend_verification(self, email: str) -> Optional[EmailDelivery]:
        email = normalize_email(email)
        account = await self.store.find_by_email(email)
        if account is None or account.credential.email_is_verified:
            return None
        token = await self._mint_stored_token(
            account, TokenKind.EMAIL_VERIFICATION, {"email": email}
        )
        return EmailDelivery(EmailKind.VERIFICATION, email, token, _display_name(account))

    async def request_password_reset(self, email: str) -> Optional[EmailDelivery]:
        email = normalize_email(email)
        account = await self.store.find_by_email(email)
        log_password_reset_requested(email, eligible=account is not None)
        if account is None:
            return None
        token = await self._mint_stored_token(
            account,
            TokenKind.PASSWORD_RESET,
            {"user_id": account.user_id, "email": email},
        )
        return EmailDelivery(EmailKind.PASSWORD_RESET, email, token, _display_name(account))

    async def reset_password(self, token: str, new_password: str) -> Account:
        payload = self._verify_token(token, TokenKind.PASSWORD_RESET)
        ensure_strong_password(new_password)
        user_id = payload.get("user_id")
        if not isinstance(user_id, str):
            raise InvalidToken()

        password_hash, password_salt = await self._hash_password(new_password)
        updated = await self.store.update_password(
            user_id,
            password_hash,
            password_salt,
            reset_token=token_digest(token),
            now=self.tokens.clock(),
        )
        if not updated:
            log_token_rejected(TokenKind.PASSWORD_RESET.value, "no outstanding token")
            raise InvalidToken("Invalid or expired reset token")

        account = await self.store.find_by_id(user_id)
        if account is None:
            raise NotFound()
        self.lockout.record_success(account.email)
        log_password_changed(user_id, "reset")
        return account

    async def change_password(
        self, user_id: str, current_password: str, new_password: str
    ) -> Account:
        account = await self.store.find_by_id(user_id)
        if account is None:
            raise NotFound()
        if not await self._check_password(current_password, account.credential):
            log_auth_failure(account.email, None, "Wrong current password on change")
            raise InvalidCredentials("Current password is incorrect")
        ensure_strong_password(new_password)

        password_hash, password_salt = await self._hash_password(new_password)
        if not await self.store.update_password(user_id, password_hash, password_salt):
            raise NotFound()
        log_password_changed(user_id, "change")
        return await self.get_profile(user_id)

    async def refresh_access_token(self, refresh_token: str) -> Tuple[str, Account]:
        payload = self._verify_token(refresh_token, TokenKind.REFRESH)
        account = await self.store.find_by_id(str(payload.get("user_id")))
        if account is None:
            raise InvalidToken("Invalid refresh token")
        return self.tokens.issue(self._session_claims(account), TokenKind.ACCESS), account

    def authenticate_access_token(self, token: str) -> AuthContext:
        try:
            payload = self.tokens.verify(token, TokenKind.ACCESS)
        except InvalidToken as exc:
            raise NotAuthenticated() from exc
        user_id = payload.get("user_id") or payload.get("sub")
        if not isinstance(user_id, str):
            raise NotAuthenticated()
        return AuthContext(
            user_id=user_id,
            email=str(payload.get("email", "")),
            is_admin=bool(payload.get("is_admin", False)),
        )

    async def get_profile(self, user_id: str) -> Account:
        account = await self.store.find_by_id(user_id)
        if account is None:
            raise NotFound()
        return account

    async def update_profile(self, user_id: str, fields: Mapping[str, Any]) -> Account:
        cleaned = clean_profile(fields)
        account = await self.get_profile(user_id)
        changes = {
            name: value
            for name, value in cleaned.items()
            if getattr(account.identity, name) != value
        }
        if not changes:
            return account
        updated = await self.store.update_profile(user_id, changes)
        if updated is None:
            raise NotFound()
        log_user_action("profile_update", user_id)
        return updated

    async def require_admin(self, context: AuthContext) -> Account:
        # the flag is re-read from the store; token claims may be stale
        account = await self.store.find_by_id(context.user_id)
        if account is None or not account.credential.is_admin:
            raise Forbidden()
        return account

    async def list_accounts(self, skip: int = 0, limit: int = 100) -> List[Account]:
        return await self.store.list_accounts(skip=max(skip, 0), limit=min(max(limit, 1), 500))

    async def unlock_account(self, user_id: str) -> Account:
        account = await self.get_profile(user_id)
        self.lockout.record_success(account.email)
        return account
