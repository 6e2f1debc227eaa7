from unittest.mock import patch

from httpx import AsyncClient

NEW_PASSWORD = "EvenStr0nger#Pass"


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


async def test_read_profile(client: AsyncClient, user_token, verified_user):
    """Get current user profile"""
    response = await client.get("/auth/profile", headers=_auth(user_token))

    assert response.status_code == 200
    user = response.json()["user"]
    assert user["email"] == verified_user["email"]
    assert user["first_name"] == "Test"
    assert user["is_admin"] is False


async def test_update_profile(client: AsyncClient, user_token):
    response = await client.put(
        "/auth/profile",
        json={"preferred_name": "Tess", "user_github": "https://github.com/tess"},
        headers=_auth(user_token),
    )

    assert response.status_code == 200
    user = response.json()["user"]
    assert user["preferred_name"] == "Tess"
    assert user["user_github"] == "https://github.com/tess"


async def test_update_profile_with_unchanged_fields(client: AsyncClient, user_token):
    before = (await client.get("/auth/profile", headers=_auth(user_token))).json()["user"]

    response = await client.put(
        "/auth/profile", json={"first_name": "Test"}, headers=_auth(user_token)
    )
    assert response.status_code == 200
    assert response.json()["user"]["updated_at"] == before["updated_at"]


async def test_update_profile_rejects_unknown_fields(client: AsyncClient, user_token):
    response = await client.put(
        "/auth/profile", json={"is_admin": True}, headers=_auth(user_token)
    )
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "is_admin"


async def test_update_profile_validates_values(client: AsyncClient, user_token):
    response = await client.put(
        "/auth/profile", json={"phone": "call me maybe"}, headers=_auth(user_token)
    )
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "phone"


async def test_change_password(client: AsyncClient, user_token, verified_user):
    response = await client.put(
        "/auth/change-password",
        json={"current_password": verified_user["password"], "new_password": NEW_PASSWORD},
        headers=_auth(user_token),
    )
    assert response.status_code == 200

    login = await client.post(
        "/auth/login", json={"email": verified_user["email"], "password": NEW_PASSWORD}
    )
    assert login.status_code == 200


async def test_change_password_wrong_current(client: AsyncClient, user_token):
    response = await client.put(
        "/auth/change-password",
        json={"current_password": "WrongPassw0rd!", "new_password": NEW_PASSWORD},
        headers=_auth(user_token),
    )
    assert response.status_code == 401
    assert response.json()["code"] == "invalid_credentials"


async def test_change_password_weak(client: AsyncClient, user_token, verified_user):
    response = await client.put(
        "/auth/change-password",
        json={"current_password": verified_user["password"], "new_password": "weak"},
        headers=_auth(user_token),
    )
    assert response.status_code == 400
    assert response.json()["code"] == "weak_password"


async def test_admin_list_users(client: AsyncClient, admin_token, verified_user):
    """List all users (admin only)"""
    response = await client.get("/users/", headers=_auth(admin_token))

    assert response.status_code == 200
    emails = {user["email"] for user in response.json()}
    assert emails == {"admin@example.com", verified_user["email"]}


async def test_admin_get_user(client: AsyncClient, admin_token, verified_user):
    user_id = verified_user["account"].user_id
    response = await client.get(f"/users/{user_id}", headers=_auth(admin_token))

    assert response.status_code == 200
    assert response.json()["user_id"] == user_id


async def test_admin_get_missing_user(client: AsyncClient, admin_token):
    response = await client.get(
        "/users/00000000-0000-0000-0000-000000000000", headers=_auth(admin_token)
    )
    assert response.status_code == 404


async def test_admin_routes_forbidden_for_members(client: AsyncClient, user_token):
    response = await client.get("/users/", headers=_auth(user_token))
    assert response.status_code == 403
    assert response.json()["code"] == "forbidden"


async def test_admin_routes_require_auth(client: AsyncClient):
    response = await client.get("/users/")
    assert response.status_code == 401


async def test_admin_unlock(client: AsyncClient, admin_token, verified_user):
    for _ in range(5):
        await client.post(
            "/auth/login", json={"email": verified_user["email"], "password": "WrongPassw0rd!"}
        )
    locked = await client.post(
        "/auth/login",
        json={"email": verified_user["email"], "password": verified_user["password"]},
    )
    assert locked.status_code == 423

    user_id = verified_user["account"].user_id
    response = await client.post(f"/users/{user_id}/unlock", headers=_auth(admin_token))
    assert response.status_code == 200

    login = await client.post(
        "/auth/login",
        json={"email": verified_user["email"], "password": verified_user["password"]},
    )
    assert login.status_code == 200


async def test_admin_actions_are_logged(client: AsyncClient, admin_token):
    """Test that admin actions are properly logged"""
    with patch("clubauth.api.v1.users.log_user_action") as mock_log_action:
        response = await client.get("/users/", headers=_auth(admin_token))
        assert response.status_code == 200
        mock_log_action.assert_called_once()
        assert mock_log_action.call_args[0][0] == "list_users"
