import uuid
from datetime import datetime
from typing import List, Mapping, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from clubauth.core.tokens import TokenKind
from clubauth.db.models import Credential, User, utc_now
from clubauth.db.store import (
    PUBLIC_PROFILE_FIELDS,
    Account,
    ConstraintViolation,
    CredentialRecord,
    Identity,
    as_utc,
)

_TOKEN_COLUMNS = {
    TokenKind.EMAIL_VERIFICATION: ("email_verification_token", "email_verification_expires"),
    TokenKind.PASSWORD_RESET: ("password_reset_token", "password_reset_expires"),
}


def _parse_id(user_id: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(user_id))
    except ValueError:
        return None


def _to_account(user: User, credential: Credential) -> Account:
    return Account(
        identity=Identity(
            user_id=str(user.id),
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            preferred_name=user.preferred_name,
            phone=user.phone,
            pronouns=user.pronouns,
            school_name=user.school_name,
            user_linkedin=user.user_linkedin,
            user_github=user.user_github,
            created_at=as_utc(user.created_at),
            updated_at=as_utc(user.updated_at),
        ),
        credential=CredentialRecord(
            user_id=str(credential.user_id),
            password_hash=credential.password_hash,
            password_salt=credential.password_salt,
            is_admin=credential.is_admin,
            email_is_verified=credential.email_is_verified,
            email_verification_token=credential.email_verification_token,
            email_verification_expires=as_utc(credential.email_verification_expires),
            password_reset_token=credential.password_reset_token,
            password_reset_expires=as_utc(credential.password_reset_expires),
        ),
    )


class SQLCredentialStore:
    """CredentialStore on SQLModel/SQLAlchemy async sessions.

    Each operation opens its own session and returns it to the pool on every
    exit path. Writes run inside ``session.begin()`` so they commit or roll
    back as a unit.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def _load(self, session: AsyncSession, *criteria) -> Optional[Account]:
        statement = (
            select(User, Credential)
            .join(Credential, Credential.user_id == User.id)
            .where(*criteria)
        )
        result = await session.execute(statement)
        row = result.first()
        if row is None:
            return None
        return _to_account(row[0], row[1])

    async def find_by_email(self, email: str) -> Optional[Account]:
        async with self._session_factory() as session:
            return await self._load(session, User.email == email)

    async def find_by_id(self, user_id: str) -> Optional[Account]:
        user_uuid = _parse_id(user_id)
        if user_uuid is None:
            return None
        async with self._session_factory() as session:
            return await self._load(session, User.id == user_uuid)

    async def find_by_token(self, kind: TokenKind, digest: str) -> Optional[Account]:
        token_column = getattr(Credential, _TOKEN_COLUMNS[TokenKind(kind)][0])
        async with self._session_factory() as session:
            return await self._load(session, token_column == digest)

    async def list_accounts(self, skip: int = 0, limit: int = 100) -> List[Account]:
        statement = (
            select(User, Credential)
            .join(Credential, Credential.user_id == User.id)
            .order_by(User.created_at)
            .offset(skip)
            .limit(limit)
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [_to_account(user, credential) for user, credential in result.all()]

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
        user = User(
            id=uuid.uuid4(),
            email=email,
            created_at=now,
            updated_at=now,
            **{name: profile.get(name) for name in PUBLIC_PROFILE_FIELDS},
        )
        credential = Credential(
            user_id=user.id,
            username=email,
            password_hash=password_hash,
            password_salt=password_salt,
            is_admin=is_admin,
            email_is_verified=email_is_verified,
            email_verification_token=verification_token,
            email_verification_expires=verification_expires,
        )
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    if await self._load(session, User.email == email) is not None:
                        raise ConstraintViolation(
                            "User with this email already exists", {"field": "email"}
                        )
                    session.add(user)
                    await session.flush()
                    session.add(credential)
            except IntegrityError as exc:
                raise ConstraintViolation(
                    "User with this email already exists", {"field": "email"}
                ) from exc
            return _to_account(user, credential)

    async def save_token(
        self, user_id: str, kind: TokenKind, digest: str, expires: datetime
    ) -> bool:
        user_uuid = _parse_id(user_id)
        if user_uuid is None:
            return False
        token_name, expires_name = _TOKEN_COLUMNS[TokenKind(kind)]
        statement = (
            update(Credential)
            .where(Credential.user_id == user_uuid)
            .values({token_name: digest, expires_name: expires})
        )
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(statement)
            return result.rowcount == 1

    async def update_password(
        self,
        user_id: str,
        password_hash: str,
        password_salt: str,
        *,
        reset_token: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        user_uuid = _parse_id(user_id)
        if user_uuid is None:
            return False
        now = now or utc_now()
        criteria = [Credential.user_id == user_uuid]
        async with self._session_factory() as session:
            async with session.begin():
                if reset_token is not None:
                    account = await self._load(
                        session,
                        Credential.user_id == user_uuid,
                        Credential.password_reset_token == reset_token,
                    )
                    expires = account.credential.password_reset_expires if account else None
                    if expires is None or now >= expires:
                        return False
                    criteria.append(Credential.password_reset_token == reset_token)
                result = await session.execute(
                    update(Credential)
                    .where(*criteria)
                    .values(
                        password_hash=password_hash,
                        password_salt=password_salt,
                        password_reset_token=None,
                        password_reset_expires=None,
                    )
                )
                if result.rowcount != 1:
                    return False
                await session.execute(
                    update(User).where(User.id == user_uuid).values(updated_at=now)
                )
            return True

    async def update_verification(self, digest: str, now: datetime) -> Optional[Account]:
        async with self._session_factory() as session:
            async with session.begin():
                account = await self._load(
                    session, Credential.email_verification_token == digest
                )
                if account is None:
                    return None
                expires = account.credential.email_verification_expires
                if expires is None or now >= expires:
                    return None
                user_uuid = uuid.UUID(account.user_id)
                # conditional on the digest so a concurrent consumer loses the race
                result = await session.execute(
                    update(Credential)
                    .where(
                        Credential.user_id == user_uuid,
                        Credential.email_verification_token == digest,
                    )
                    .values(
                        email_is_verified=True,
                        email_verification_token=None,
                        email_verification_expires=None,
                    )
                )
                if result.rowcount != 1:
                    return None
                await session.execute(
                    update(User).where(User.id == user_uuid).values(updated_at=now)
                )
                return await self._load(session, User.id == user_uuid)

    async def update_profile(
        self, user_id: str, fields: Mapping[str, Optional[str]]
    ) -> Optional[Account]:
        user_uuid = _parse_id(user_id)
        if user_uuid is None:
            return None
        values = {name: fields[name] for name in PUBLIC_PROFILE_FIELDS if name in fields}
        async with self._session_factory() as session:
            async with session.begin():
                if values:
                    values["updated_at"] = utc_now()
                    result = await session.execute(
                        update(User).where(User.id == user_uuid).values(values)
                    )
                    if result.rowcount != 1:
                        return None
                return await self._load(session, User.id == user_uuid)
