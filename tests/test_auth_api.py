import pytest

from storefront.errors import ExpiredToken, InvalidToken
from storefront.security import create_access_token, decode_access_token, hash_password, verify_password


def test_password_hash_round_trip():
    hashed = hash_password("secret123")

    assert hashed != "secret123"
    assert verify_password("secret123", hashed)
    assert not verify_password("wrong-password", hashed)


def test_token_carries_user_id():
    claims = decode_access_token(create_access_token(42))
    assert claims["user_id"] == 42


def test_expired_and_tampered_tokens_are_rejected():
    with pytest.raises(ExpiredToken):
        decode_access_token(create_access_token(1, expires_minutes=-1))
    with pytest.raises(InvalidToken):
        decode_access_token(create_access_token(1) + "x")


def test_register_issues_token(client):
    response = client.post("/api/auth/register", json={
        "name": "Jane Doe",
        "email": "Jane@Example.com",
        "password": "secret123",
    })

    assert response.status_code == 201
    body = response.json()
    assert body["user"]["email"] == "jane@example.com"
    assert body["user"]["role"] == "user"
    assert "password_hash" not in body["user"]
    assert decode_access_token(body["token"])["user_id"] == body["user"]["id"]


def test_register_duplicate_email_conflicts(client, user):
    response = client.post("/api/auth/register", json={
        "name": "Someone Else",
        "email": user.email,
        "password": "secret123",
    })

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_register_short_password_rejected(client):
    response = client.post("/api/auth/register", json={
        "name": "Jane Doe",
        "email": "jane@example.com",
        "password": "123",
    })

    assert response.status_code == 400


def test_login(client, user):
    ok = client.post("/api/auth/login", json={"email": user.email, "password": "secret123"})
    bad = client.post("/api/auth/login", json={"email": user.email, "password": "nope"})
    unknown = client.post("/api/auth/login", json={"email": "ghost@example.com", "password": "secret123"})

    assert ok.status_code == 200
    assert ok.json()["user"]["id"] == user.id
    assert bad.status_code == 401
    assert bad.json()["message"] == "Invalid credentials"
    assert unknown.status_code == 401


def test_inactive_user_cannot_log_in(client, make_user):
    inactive = make_user(is_active=False)

    response = client.post("/api/auth/login", json={"email": inactive.email, "password": "secret123"})

    assert response.status_code == 401


def test_admin_login_requires_admin_role(client, user, admin):
    as_user = client.post("/api/admin/login", json={"email": user.email, "password": "secret123"})
    as_admin = client.post("/api/admin/login", json={"email": admin.email, "password": "secret123"})

    assert as_user.status_code == 401
    assert as_user.json()["message"] == "Invalid admin credentials"
    assert as_admin.status_code == 200
    assert as_admin.json()["user"]["role"] == "admin"


def test_profile_read_and_update(client, user, auth_headers):
    profile = client.get("/api/auth/profile", headers=auth_headers(user))
    assert profile.status_code == 200
    assert profile.json()["user"]["email"] == user.email

    updated = client.put(
        "/api/auth/profile",
        json={"name": "Renamed User", "address": "2 Side Road", "password": "newsecret"},
        headers=auth_headers(user),
    )
    assert updated.status_code == 200
    assert updated.json()["user"]["name"] == "Renamed User"
    assert updated.json()["user"]["address"] == "2 Side Road"

    login = client.post("/api/auth/login", json={"email": user.email, "password": "newsecret"})
    assert login.status_code == 200


@pytest.mark.parametrize("body", [
    {"name": None},
    {"password": None},
])
def test_profile_update_rejects_nulling_required_fields(client, user, auth_headers, body):
    response = client.put("/api/auth/profile", json=body, headers=auth_headers(user))

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert "cannot be null" in response.json()["message"]

    profile = client.get("/api/auth/profile", headers=auth_headers(user))
    assert profile.json()["user"]["name"] == user.name


def test_profile_update_may_clear_optional_fields(client, user, auth_headers):
    client.put("/api/auth/profile", json={"address": "2 Side Road"}, headers=auth_headers(user))

    response = client.put("/api/auth/profile", json={"address": None}, headers=auth_headers(user))

    assert response.status_code == 200
    assert response.json()["user"]["address"] is None


@pytest.mark.parametrize("header", [
    None,
    "Token abc",
    "Bearer not-a-jwt",
])
def test_profile_rejects_bad_credentials(client, header):
    headers = {"Authorization": header} if header else {}

    response = client.get("/api/auth/profile", headers=headers)

    assert response.status_code == 401
    assert response.json()["success"] is False


def test_health(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["status"] == "OK"
