import secrets
from typing import Optional, Tuple

from passlib.context import CryptContext

from clubauth.core.config import settings
from clubauth.core.errors import CorruptCredential

SALT_BYTES = 8
# bcrypt reads at most 72 bytes; the hex salt must always fit after the password
MAX_PASSWORD_BYTES = 72 - 2 * SALT_BYTES


def password_bytes(plaintext: str) -> int:
    return len(plaintext.encode("utf-8"))


class PasswordCodec:
    """Salted bcrypt hashing.

    The stored hash covers ``plaintext + salt``; the salt is a per-credential
    hex string kept next to the hash and replaced on every password change.
    Passwords longer than ``MAX_PASSWORD_BYTES`` are refused so bcrypt's
    truncation never drops any of the salt.
    """

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds
        self._context = CryptContext(
            schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds
        )

    @staticmethod
    def generate_salt() -> str:
        return secrets.token_hex(SALT_BYTES)

    def hash(self, plaintext: str) -> Tuple[str, str]:
        if not isinstance(plaintext, str) or not plaintext:
            raise ValueError("password must be a non-empty string")
        if password_bytes(plaintext) > MAX_PASSWORD_BYTES:
            raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")
        salt = self.generate_salt()
        return self._context.hash(plaintext + salt), salt

    def verify(self, plaintext: str, password_hash: str, salt: Optional[str]) -> bool:
        if not isinstance(plaintext, str) or not plaintext:
            return False
        if not isinstance(password_hash, str) or not password_hash or not salt:
            raise CorruptCredential()
        if password_bytes(plaintext) > MAX_PASSWORD_BYTES:
            self.dummy_verify()
            return False
        try:
            return self._context.verify(plaintext + salt, password_hash)
        except (ValueError, TypeError) as exc:
            # unidentifiable or truncated hash in storage
            raise CorruptCredential() from exc

    def dummy_verify(self) -> bool:
        """Spend the time of one verification; used when no credential matched."""
        self._context.dummy_verify()
        return False


password_codec = PasswordCodec(rounds=settings.BCRYPT_ROUNDS)
