from httpx import AsyncClient

from clubauth.core.config import settings
from clubauth.services.email import EmailKind

NEW_PASSWORD = "EvenStr0nger#Pass"


async def _login(client, email, password):
    return await client.post("/auth/login", json={"email": email, "password": password})


async def test_login_returns_tokens_and_sets_refresh_cookie(client: AsyncClient, verified_user):
    response = await _login(client, verified_user["email"], verified_user["password"])

    assert response.status_code == 200
    data = response.json()
    assert data["token_type"] == "bearer"
    assert data["expires_in"] == 24 * 60 * 60
    assert data["user"]["email"] == verified_user["email"]
    assert "refresh_token" not in data
    assert data["user"]["phone"] is None

    cookie = response.headers["set-cookie"]
    assert f"{settings.REFRESH_COOKIE_NAME}=" in cookie
    assert "HttpOnly" in cookie
    assert "Secure" in cookie
    assert "SameSite=strict" in cookie
    assert "Path=/auth" in cookie


async def test_refresh_with_cookie(client: AsyncClient, verified_user):
    await _login(client, verified_user["email"], verified_user["password"])

    response = await client.post("/auth/refresh")
    assert response.status_code == 200
    access_token = response.json()["access_token"]

    profile = await client.get(
        "/auth/profile", headers={"Authorization": f"Bearer {access_token}"}
    )
    assert profile.status_code == 200


async def test_refresh_without_token(client: AsyncClient):
    response = await client.post("/auth/refresh")
    assert response.status_code == 401
    assert response.json()["code"] == "not_authenticated"


async def test_refresh_in_body_transport(client: AsyncClient, verified_user, monkeypatch):
    monkeypatch.setattr(settings, "REFRESH_TOKEN_TRANSPORT", "body")
    login = await _login(client, verified_user["email"], verified_user["password"])
    refresh_token = login.json()["refresh_token"]
    assert refresh_token
    assert "set-cookie" not in login.headers

    response = await client.post("/auth/refresh", json={"refresh_token": refresh_token})
    assert response.status_code == 200

    access = await client.post(
        "/auth/refresh", json={"refresh_token": login.json()["access_token"]}
    )
    assert access.status_code == 401


async def test_logout_clears_refresh_cookie(client: AsyncClient, verified_user):
    await _login(client, verified_user["email"], verified_user["password"])

    response = await client.post("/auth/logout")
    assert response.status_code == 200
    assert f'{settings.REFRESH_COOKIE_NAME}=""' in response.headers["set-cookie"]

    assert (await client.post("/auth/refresh")).status_code == 401


async def test_login_unknown_email_and_wrong_password_match(client: AsyncClient, verified_user):
    unknown = await _login(client, "nobody@example.com", verified_user["password"])
    wrong = await _login(client, verified_user["email"], "WrongPassw0rd!")

    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json() == wrong.json()


async def test_bob_is_locked_out(client: AsyncClient, store, codec, clock):
    """Scenario bob: five failures lock the account even for the right password"""
    password_hash, password_salt = codec.hash("BobsPassw0rd!")
    await store.create(
        email="bob@example.com",
        profile={"first_name": "Bob", "last_name": "Builder"},
        password_hash=password_hash,
        password_salt=password_salt,
        email_is_verified=True,
    )

    for _ in range(5):
        response = await _login(client, "bob@example.com", "WrongPassw0rd!")
        assert response.status_code == 401

    locked = await _login(client, "bob@example.com", "BobsPassw0rd!")
    assert locked.status_code == 423
    assert locked.json()["code"] == "account_locked"

    clock.advance(minutes=30)
    assert (await _login(client, "bob@example.com", "BobsPassw0rd!")).status_code == 200


async def test_nobody_forgot_password(client: AsyncClient, mailer, verified_user):
    """Scenario nobody: generic answer, no token, no email"""
    unknown = await client.post("/auth/forgot-password", json={"email": "nobody@example.com"})
    assert unknown.status_code == 200
    assert mailer.deliveries == []

    known = await client.post("/auth/forgot-password", json={"email": verified_user["email"]})
    assert known.json() == unknown.json()
    assert [d.kind for d in mailer.deliveries] == [EmailKind.PASSWORD_RESET]


async def test_password_reset_flow(client: AsyncClient, mailer, verified_user):
    await client.post("/auth/forgot-password", json={"email": verified_user["email"]})
    token = mailer.deliveries[-1].token

    response = await client.post(
        "/auth/reset-password", json={"token": token, "password": NEW_PASSWORD}
    )
    assert response.status_code == 200

    reused = await client.post(
        "/auth/reset-password", json={"token": token, "password": "An0ther-Password!"}
    )
    assert reused.status_code == 400
    assert reused.json()["code"] == "invalid_token"

    assert (await _login(client, verified_user["email"], verified_user["password"])).status_code == 401
    assert (await _login(client, verified_user["email"], NEW_PASSWORD)).status_code == 200


async def test_expired_reset_token(client: AsyncClient, mailer, verified_user, clock):
    """Scenario: an expired reset token is refused and the password is unchanged"""
    await client.post("/auth/forgot-password", json={"email": verified_user["email"]})
    token = mailer.deliveries[-1].token

    clock.advance(hours=2)
    response = await client.post(
        "/auth/reset-password", json={"token": token, "password": NEW_PASSWORD}
    )
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_token"

    login = await _login(client, verified_user["email"], verified_user["password"])
    assert login.status_code == 200


async def test_reset_with_weak_password(client: AsyncClient, mailer, verified_user):
    await client.post("/auth/forgot-password", json={"email": verified_user["email"]})
    token = mailer.deliveries[-1].token

    response = await client.post("/auth/reset-password", json={"token": token, "password": "weak"})
    assert response.status_code == 400
    assert response.json()["code"] == "weak_password"


async def test_protected_route_requires_bearer(client: AsyncClient):
    missing = await client.get("/auth/profile")
    assert missing.status_code == 401
    assert missing.headers["www-authenticate"] == "Bearer"

    garbage = await client.get("/auth/profile", headers={"Authorization": "Bearer garbage"})
    assert garbage.status_code == 401


async def test_refresh_token_is_not_an_access_token(client: AsyncClient, verified_user, monkeypatch):
    monkeypatch.setattr(settings, "REFRESH_TOKEN_TRANSPORT", "body")
    login = await _login(client, verified_user["email"], verified_user["password"])

    response = await client.get(
        "/auth/profile",
        headers={"Authorization": f"Bearer {login.json()['refresh_token']}"},
    )
    assert response.status_code == 401


async def test_expired_access_token(client: AsyncClient, user_token, clock):
    clock.advance(hours=24)
    response = await client.get("/auth/profile", headers={"Authorization": f"Bearer {user_token}"})
    assert response.status_code == 401


async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
