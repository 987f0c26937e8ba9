from datetime import timedelta

from wallpaper_service.auth.security import create_access_token
from wallpaper_service.settings import Settings


def register(test_client, email="grace@example.com", name="Grace", password="pa55word"):
    return test_client.post("/users/register", json={"name": name, "email": email, "password": password})


# ------------------------------
# /users/register + /users/login
# ------------------------------

def test_register(test_client):
    resp = register(test_client)
    assert resp.status_code == 201
    body = resp.json()
    assert body["token"]
    assert body["user"]["email"] == "grace@example.com"
    assert "password" not in body["user"]
    assert "passwordHash" not in body["user"]


def test_register_duplicate_email(test_client):
    register(test_client)
    resp = register(test_client, name="Someone")
    assert resp.status_code == 409


def test_register_missing_fields(test_client):
    resp = test_client.post("/users/register", json={"email": "x@example.com", "password": "p"})
    assert resp.status_code == 400


def test_login(test_client):
    register(test_client)
    resp = test_client.post("/users/login", json={"email": "grace@example.com", "password": "pa55word"})
    assert resp.status_code == 200
    assert resp.json()["user"]["name"] == "Grace"


def test_login_failures_look_the_same(test_client):
    register(test_client)
    wrong_password = test_client.post("/users/login", json={"email": "grace@example.com", "password": "nope"})
    unknown_email = test_client.post("/users/login", json={"email": "who@example.com", "password": "nope"})
    assert wrong_password.status_code == unknown_email.status_code == 401
    assert wrong_password.json() == unknown_email.json()


# ------------------------------
# /users/profile
# ------------------------------

def test_profile_requires_token(test_client):
    resp = test_client.get("/users/profile")
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Not authorized, no token"


def test_profile_with_bad_token(test_client):
    resp = test_client.get("/users/profile", headers={"Authorization": "Bearer garbage"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Not authorized, token failed."


def test_profile_with_expired_token(test_client):
    user_id = register(test_client).json()["user"]["id"]
    token = create_access_token(user_id, Settings(), expires_delta=timedelta(minutes=-1))
    resp = test_client.get("/users/profile", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401
    assert "expired" in resp.json()["detail"]


def test_get_profile(test_client, auth_headers):
    resp = test_client.get("/users/profile", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["email"] == "ada@example.com"
    assert "passwordHash" not in resp.json()


def test_update_profile(test_client, auth_headers):
    resp = test_client.put(
        "/users/profile",
        json={"name": "Ada Lovelace", "email": "ada@lovelace.example.com"},
        headers=auth_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["name"] == "Ada Lovelace"
    assert test_client.get("/users/profile", headers=auth_headers).json()["email"] == "ada@lovelace.example.com"


def test_update_profile_to_taken_email(test_client, auth_headers):
    register(test_client)
    resp = test_client.put(
        "/users/profile",
        json={"name": "Ada", "email": "grace@example.com"},
        headers=auth_headers,
    )
    assert resp.status_code == 409


def test_update_profile_requires_name_and_email(test_client, auth_headers):
    resp = test_client.put("/users/profile", json={"name": "Ada"}, headers=auth_headers)
    assert resp.status_code == 400


def test_delete_account(test_client, auth_headers):
    resp = test_client.delete("/users/profile", headers=auth_headers)
    assert resp.status_code == 200
    # the token still verifies but the account is gone
    assert test_client.get("/users/profile", headers=auth_headers).status_code == 404
    assert test_client.delete("/users/profile", headers=auth_headers).status_code == 404
