import os

# Settings are read at import time; configure before importing the app.
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["DEBUG"] = "false"
os.environ["SMTP_HOST"] = ""

from datetime import datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from clubauth.api.deps import (  # noqa: E402
    get_lockout_tracker,
    get_mailer,
    get_store,
    get_token_issuer,
)
from clubauth.core.lockout import LockoutTracker  # noqa: E402
from clubauth.core.rate_limit import limiter  # noqa: E402
from clubauth.core.security import PasswordCodec  # noqa: E402
from clubauth.core.tokens import TokenIssuer  # noqa: E402
from clubauth.db.crud import SQLCredentialStore  # noqa: E402
from clubauth.db.memory import MemoryCredentialStore  # noqa: E402
from clubauth.db.session import build_engine, build_session_factory, init_db  # noqa: E402
from clubauth.main import app  # noqa: E402
from clubauth.services.auth_service import AuthService  # noqa: E402
from clubauth.services.email import EmailService  # noqa: E402

USER_PASSWORD = "TestPass123!"
ADMIN_PASSWORD = "AdminPass123!"


class FakeClock:
    """Settable clock shared by the token issuer and lockout tracker."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingMailer(EmailService):
    """Captures deliveries instead of talking to SMTP."""

    def __init__(self):
        super().__init__(api_base_url="https://testserver")
        self.deliveries = []

    def deliver(self, delivery) -> bool:
        self.deliveries.append(delivery)
        return True


@pytest.fixture
def clock():
    return FakeClock(datetime.now(timezone.utc).replace(microsecond=0))


@pytest.fixture
def codec():
    return PasswordCodec(rounds=4)


@pytest.fixture
def tokens(clock):
    return TokenIssuer(
        session_secret="test-session-secret",
        action_secret="test-action-secret",
        clock=clock,
    )


@pytest.fixture
def lockout(clock):
    return LockoutTracker(threshold=5, duration=timedelta(minutes=30), clock=clock)


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def store(engine):
    return SQLCredentialStore(build_session_factory(engine))


@pytest.fixture
def memory_store():
    return MemoryCredentialStore()


@pytest.fixture
def service(memory_store, codec, tokens, lockout):
    """AuthService over the in-memory store."""
    return AuthService(memory_store, passwords=codec, tokens=tokens, lockout=lockout)


@pytest.fixture
def sql_service(store, codec, tokens, lockout):
    return AuthService(store, passwords=codec, tokens=tokens, lockout=lockout)


@pytest.fixture
async def client(store, tokens, lockout, mailer):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_token_issuer] = lambda: tokens
    app.dependency_overrides[get_lockout_tracker] = lambda: lockout
    app.dependency_overrides[get_mailer] = lambda: mailer
    limiter.enabled = False

    # https so the Secure refresh cookie is stored and sent back
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="https://testserver"
    ) as c:
        yield c

    app.dependency_overrides.clear()


async def _create_account(store, codec, email, password, *, is_admin=False, verified=True):
    password_hash, password_salt = codec.hash(password)
    return await store.create(
        email=email,
        profile={"first_name": "Test", "last_name": "User"},
        password_hash=password_hash,
        password_salt=password_salt,
        is_admin=is_admin,
        email_is_verified=verified,
    )


@pytest.fixture
async def verified_user(store, codec):
    """A verified, non-admin account in the SQL store"""
    account = await _create_account(store, codec, "testuser@example.com", USER_PASSWORD)
    return {"account": account, "email": account.email, "password": USER_PASSWORD}


@pytest.fixture
async def admin_user(store, codec):
    """A verified admin account in the SQL store"""
    account = await _create_account(
        store, codec, "admin@example.com", ADMIN_PASSWORD, is_admin=True
    )
    return {"account": account, "email": account.email, "password": ADMIN_PASSWORD}


@pytest.fixture
async def memory_user(memory_store, codec):
    """A verified account in the in-memory store"""
    account = await _create_account(
        memory_store, codec, "member@example.com", USER_PASSWORD
    )
    return {"account": account, "email": account.email, "password": USER_PASSWORD}


@pytest.fixture
async def user_token(client, verified_user):
    response = await client.post(
        "/auth/login",
        json={"email": verified_user["email"], "password": verified_user["password"]},
    )
    assert response.status_code == 200
    return response.json()["access_token"]


@pytest.fixture
async def admin_token(client, admin_user):
    response = await client.post(
        "/auth/login",
        json={"email": admin_user["email"], "password": admin_user["password"]},
    )
    assert response.status_code == 200
    return response.json()["access_token"]
