from datetime import timedelta
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from clubauth.core.config import settings
from clubauth.core.errors import NotAuthenticated
from clubauth.core.lockout import LockoutTracker
from clubauth.core.security import password_codec
from clubauth.core.tokens import TokenIssuer
from clubauth.db.crud import SQLCredentialStore
from clubauth.db.session import AsyncSessionLocal
from clubauth.db.store import Account, CredentialStore
from clubauth.services.auth_service import AuthContext, AuthService
from clubauth.services.email import EmailService

bearer_scheme = HTTPBearer(auto_error=False)

_store = SQLCredentialStore(AsyncSessionLocal)
_token_issuer = TokenIssuer.from_settings(settings)
# process-lifetime; lock state does not survive a restart
_lockout_tracker = LockoutTracker(
    threshold=settings.MAX_LOGIN_ATTEMPTS,
    duration=timedelta(minutes=settings.LOCKOUT_DURATION_MINUTES),
)
_mailer = EmailService.from_settings(settings)


def get_store() -> CredentialStore:
    return _store


def get_token_issuer() -> TokenIssuer:
    return _token_issuer


def get_lockout_tracker() -> LockoutTracker:
    return _lockout_tracker


def get_mailer() -> EmailService:
    return _mailer


def get_auth_service(
    store: CredentialStore = Depends(get_store),
    tokens: TokenIssuer = Depends(get_token_issuer),
    lockout: LockoutTracker = Depends(get_lockout_tracker),
) -> AuthService:
    return AuthService.from_settings(
        store, lockout, settings, passwords=password_codec, tokens=tokens
    )


def client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    service: AuthService = Depends(get_auth_service),
) -> AuthContext:
    """Resolve the bearer access token; 401 when absent or invalid."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise NotAuthenticated()
    return service.authenticate_access_token(credentials.credentials)


async def get_current_admin(
    current_user: AuthContext = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> Account:
    return await service.require_admin(current_user)
