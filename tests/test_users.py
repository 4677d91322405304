from datetime import timedelta

from poster_shop.models import ROLE_ADMIN, ROLE_USER, User, db
from poster_shop.security import verify_token

from .conftest import DEFAULT_PASSWORD


def register(client, **overrides):
    payload = {
        "firstname": "Ada",
        "lastname": "Lovelace",
        "email": "ada@example.com",
        "password": "analytical-engine",
    }
    payload.update(overrides)
    return client.post("/api/users/register", json=payload)


def test_register_creates_account_and_returns_token(app, client):
    response = register(client, email="  Ada@Example.com ")

    assert response.status_code == 201
    body = response.get_json()
    assert body["user"]["email"] == "ada@example.com"
    assert body["user"]["role"] == ROLE_USER
    assert body["user"]["isActive"] is True
    assert "password" not in body["user"]

    with app.app_context():
        assert verify_token(body["token"]).id == body["user"]["id"]
        stored = db.session.get(User, body["user"]["id"])
        assert stored.password != "analytical-engine"


def test_register_rejects_duplicate_email(client):
    assert register(client).status_code == 201

    response = register(client, email="ADA@example.com")

    assert response.status_code == 400
    assert "error" in response.get_json()


def test_register_requires_all_fields(client):
    response = register(client, lastname="")

    assert response.status_code == 400
    assert response.get_json()["error"]


def test_register_rejects_invalid_email(client):
    assert register(client, email="not-an-email").status_code == 400


def test_register_with_default_admin_email_grants_admin(app, client):
    app.config["DEFAULT_ADMIN_EMAIL"] = "boss@example.com"

    response = register(client, email="boss@example.com")

    assert response.status_code == 201
    assert response.get_json()["user"]["role"] == ROLE_ADMIN


def test_login_with_wrong_password_is_unauthorized(client, make_user):
    make_user(email="grace@example.com")

    response = client.post(
        "/api/users/login", json={"email": "grace@example.com", "password": "nope"}
    )

    assert response.status_code == 401
    assert response.get_json() == {"error": "Invalid credentials."}


def test_login_with_unknown_email_is_unauthorized(client):
    response = client.post(
        "/api/users/login", json={"email": "ghost@example.com", "password": "whatever"}
    )

    assert response.status_code == 401


def test_login_returns_token_for_stored_user(app, client, make_user):
    user_id = make_user(email="grace@example.com")

    response = client.post(
        "/api/users/login",
        json={"email": "Grace@example.com", "password": DEFAULT_PASSWORD},
    )

    assert response.status_code == 200
    body = response.get_json()
    assert body["user"]["id"] == user_id
    with app.app_context():
        assert verify_token(body["token"]).id == user_id


def test_login_requires_email_and_password(client):
    assert client.post("/api/users/login", json={"email": "a@b.co"}).status_code == 400
    assert client.post("/api/users/login", data="garbage").status_code == 400


def test_login_rejects_deactivated_account(client, make_user):
    make_user(email="old@example.com", is_active=False)

    response = client.post(
        "/api/users/login", json={"email": "old@example.com", "password": DEFAULT_PASSWORD}
    )

    assert response.status_code == 403


def test_profile_requires_token(client):
    response = client.get("/api/users/profile")

    assert response.status_code == 401
    assert "error" in response.get_json()


def test_profile_rejects_malformed_token(client):
    response = client.get(
        "/api/users/profile", headers={"Authorization": "Bearer not-a-token"}
    )

    assert response.status_code == 401


def test_profile_returns_current_user(client, user_auth):
    user_id, headers = user_auth

    response = client.get("/api/users/profile", headers=headers)

    assert response.status_code == 200
    assert response.get_json()["user"]["id"] == user_id


def test_admin_route_without_token_is_unauthorized(client):
    assert client.get("/api/users").status_code == 401


def test_admin_route_with_user_token_is_forbidden(client, user_auth):
    _, headers = user_auth

    response = client.get("/api/users", headers=headers)

    assert response.status_code == 403
    assert "error" in response.get_json()


def test_admin_route_with_expired_token_is_unauthorized(client, make_user, token_headers):
    admin_id = make_user(role=ROLE_ADMIN)
    headers = token_headers(admin_id, role=ROLE_ADMIN, expires_delta=timedelta(seconds=-5))

    response = client.get("/api/users", headers=headers)

    assert response.status_code == 401
    assert response.get_json() == {"error": "Token has expired."}


def test_admin_lists_users_without_passwords(client, admin_auth, make_user):
    make_user()
    _, headers = admin_auth

    response = client.get("/api/users", headers=headers)

    assert response.status_code == 200
    users = response.get_json()["users"]
    assert len(users) == 2
    assert all("password" not in user for user in users)


def test_admin_updates_only_supplied_fields(client, admin_auth, make_user):
    user_id = make_user()
    _, headers = admin_auth

    response = client.put(
        f"/api/users/{user_id}",
        json={"firstname": "Renamed", "isActive": False, "role": "admin"},
        headers=headers,
    )

    assert response.status_code == 200
    user = response.get_json()["user"]
    assert user["firstname"] == "Renamed"
    assert user["lastname"].startswith("User")
    assert user["isActive"] is False
    assert user["role"] == ROLE_ADMIN


def test_admin_update_rejects_unknown_role(client, admin_auth, make_user):
    user_id = make_user()
    _, headers = admin_auth

    response = client.put(f"/api/users/{user_id}", json={"role": "owner"}, headers=headers)

    assert response.status_code == 400


def test_admin_get_and_update_missing_user_is_not_found(client, admin_auth):
    _, headers = admin_auth

    assert client.get("/api/users/999", headers=headers).status_code == 404
    assert (
        client.put("/api/users/999", json={"firstname": "X"}, headers=headers).status_code
        == 404
    )


def test_delete_missing_user_is_not_found(client, admin_auth):
    _, headers = admin_auth

    response = client.delete("/api/users/999", headers=headers)

    assert response.status_code == 404
    assert response.get_json() == {"error": "User not found."}


def test_admin_deletes_user(app, client, admin_auth, make_user):
    user_id = make_user()
    _, headers = admin_auth

    response = client.delete(f"/api/users/{user_id}", headers=headers)

    assert response.status_code == 200
    with app.app_context():
        assert db.session.get(User, user_id) is None


def test_admin_cannot_delete_own_account(client, admin_auth):
    admin_id, headers = admin_auth

    assert client.delete(f"/api/users/{admin_id}", headers=headers).status_code == 400
