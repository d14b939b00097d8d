"""
Tests for registration, login and the current-user endpoint.
"""
from harbor.app.api.auth import validate_registration_input
from harbor.app.models import User, UserProfile


class TestRegistrationValidation:

    def test_accepts_strong_password(self):
        ok, errors = validate_registration_input(
            {"username": "carol", "email": "carol@example.com", "password": "Secret123"})
        assert ok is True
        assert errors is None

    def test_rejects_weak_password(self):
        ok, errors = validate_registration_input(
            {"username": "carol", "email": "carol@example.com", "password": "alllowercase1"})
        assert ok is False
        assert "password" in errors

    def test_rejects_short_username(self):
        ok, errors = validate_registration_input(
            {"username": "ab", "email": "carol@example.com", "password": "Secret123"})
        assert ok is False
        assert "username" in errors


class TestRegister:

    def test_register_creates_user_and_profile(self, client):
        response = client.post("/api/register", json={
            "username": "carol", "email": "carol@example.com", "password": "Secret123"})
        assert response.status_code == 201
        data = response.get_json()
        assert data["access_token"]
        assert data["auth_method"] == "jwt"

        user = User.query.filter_by(username="carol").first()
        assert user is not None
        assert UserProfile.for_user(user.id) is not None

    def test_duplicate_username_is_conflict(self, client, user):
        response = client.post("/api/register", json={
            "username": "alice", "email": "new@example.com", "password": "Secret123"})
        assert response.status_code == 409

    def test_invalid_payload(self, client):
        response = client.post("/api/register", json={"username": "carol"})
        assert response.status_code == 400
        assert response.get_json()["error"] == "Validation failed"


class TestLogin:

    def test_login_by_username(self, client, user):
        response = client.post("/api/login", json={"username": "alice", "password": "Password1"})
        assert response.status_code == 200
        assert response.get_json()["user"]["id"] == user.id

    def test_login_by_email(self, client, user):
        response = client.post("/api/login", json={"username": "alice@example.com", "password": "Password1"})
        assert response.status_code == 200

    def test_wrong_password(self, client, user):
        response = client.post("/api/login", json={"username": "alice", "password": "nope"})
        assert response.status_code == 401


class TestMe:

    def test_me_returns_user(self, client, user, auth_headers):
        response = client.get("/api/me", headers=auth_headers)
        assert response.status_code == 200
        data = response.get_json()
        assert data["username"] == "alice"
        assert data["display_name"] == "Alice"
        assert "password_hash" not in data

    def test_me_requires_token(self, client):
        assert client.get("/api/me").status_code == 401

    def test_me_rejects_bad_token(self, client):
        response = client.get("/api/me", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401


def test_health(client):
    assert client.get("/health").get_json()["status"] == "ok"
    assert client.get("/api/health").status_code == 200


def test_unknown_api_route_returns_json(client):
    response = client.get("/api/does-not-exist")
    assert response.status_code == 404
    assert response.get_json()["error"] == "Not Found"
