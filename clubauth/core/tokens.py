import hashlib
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from jose import JWTError, jwt

from clubauth.core.config import Settings
from clubauth.core.errors import InvalidToken

RESERVED_CLAIMS = ("type", "iat", "exp", "jti")


class TokenKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"
    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def token_digest(token: str) -> str:
    """Server-side fingerprint of an outstanding verification/reset token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class TokenIssuer:
    """Issues and verifies signed, expiring, typed JWTs.

    Access and refresh tokens share one secret; email verification and password
    reset tokens share another. The ``type`` claim is checked on every verify,
    so a token of one kind is never accepted where another is expected, even
    when both kinds are signed with the same key.
    """

    def __init__(
        self,
        *,
        session_secret: str,
        action_secret: str,
        algorithm: str = "HS256",
        ttls: Optional[Mapping[TokenKind, timedelta]] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.algorithm = algorithm
        self._secrets = {
            TokenKind.ACCESS: session_secret,
            TokenKind.REFRESH: session_secret,
            TokenKind.EMAIL_VERIFICATION: action_secret,
            TokenKind.PASSWORD_RESET: action_secret,
        }
        self.ttls: Dict[TokenKind, timedelta] = {
            TokenKind.ACCESS: timedelta(hours=24),
            TokenKind.REFRESH: timedelta(days=7),
            TokenKind.EMAIL_VERIFICATION: timedelta(hours=24),
            TokenKind.PASSWORD_RESET: timedelta(hours=1),
        }
        if ttls:
            self.ttls.update(ttls)
        self.clock = clock

    @classmethod
    def from_settings(
        cls, settings: Settings, clock: Callable[[], datetime] = utc_now
    ) -> "TokenIssuer":
        return cls(
            session_secret=settings.SECRET_KEY,
            action_secret=settings.ACTION_TOKEN_SECRET_KEY,
            algorithm=settings.ALGORITHM,
            ttls={
                TokenKind.ACCESS: timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
                TokenKind.REFRESH: timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
                TokenKind.EMAIL_VERIFICATION: timedelta(
                    hours=settings.EMAIL_VERIFICATION_EXPIRE_HOURS
                ),
                TokenKind.PASSWORD_RESET: timedelta(
                    minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES
                ),
            },
            clock=clock,
        )

    def ttl_for(self, kind: TokenKind) -> timedelta:
        return self.ttls[kind]

    def issue(
        self,
        payload: Mapping[str, Any],
        kind: TokenKind,
        ttl: Optional[timedelta] = None,
    ) -> str:
        token, _ = self.issue_with_expiry(payload, kind, ttl)
        return token

    def issue_with_expiry(
        self,
        payload: Mapping[str, Any],
        kind: TokenKind,
        ttl: Optional[timedelta] = None,
    ) -> Tuple[str, datetime]:
        """Like :meth:`issue`, also returning the expiry embedded in the token."""
        kind = TokenKind(kind)
        now = self.clock()
        exp = int((now + (ttl if ttl is not None else self.ttls[kind])).timestamp())
        claims = {k: v for k, v in payload.items() if k not in RESERVED_CLAIMS}
        claims.update(
            {
                "type": kind.value,
                "iat": int(now.timestamp()),
                "exp": exp,
                "jti": str(uuid.uuid4()),
            }
        )
        token = jwt.encode(claims, self._secrets[kind], algorithm=self.algorithm)
        return token, datetime.fromtimestamp(exp, tz=timezone.utc)

    def verify(self, token: str, expected_kind: TokenKind) -> Dict[str, Any]:
        expected_kind = TokenKind(expected_kind)
        if not isinstance(token, str) or not token:
            raise InvalidToken()
        try:
            # Expiry is checked below against our own clock.
            payload = jwt.decode(
                token,
                self._secrets[expected_kind],
                algorithms=[self.algorithm],
                options={"verify_exp": False, "verify_aud": False},
            )
        except JWTError as exc:
            raise InvalidToken() from exc

        if payload.get("type") != expected_kind.value:
            raise InvalidToken()
        exp = payload.get("exp")
        if not isinstance(exp, (int, float)):
            raise InvalidToken()
        if self.clock().timestamp() >= exp:
            raise InvalidToken()
        return payload
