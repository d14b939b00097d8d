"""
Shared fixtures: an app bound to an in-memory SQLite database, users and
bearer tokens.
"""
import pytest
from flask_jwt_extended import create_access_token

from harbor.app import create_app
from harbor.app.models import db, User, UserProfile
from harbor.app.utils.llm_service import llm_service


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "JWT_SECRET_KEY": "test-jwt-secret-key-with-enough-length",
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "SQLALCHEMY_TRACK_MODIFICATIONS": False,
        "CORS_ORIGINS": ["http://localhost:3000"],
        "LOG_LEVEL": "WARNING",
        "STORAGE_BACKEND": "local",
        "LOCAL_STORAGE_DIR": str(tmp_path / "storage"),
        "MAX_AUDIO_CHUNK_BYTES": 1024 * 1024,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture(autouse=True)
def offline_llm(monkeypatch):
    """Vendor keys are cleared so nothing reaches the network."""
    monkeypatch.setattr(llm_service, "anthropic_api_key", None)
    monkeypatch.setattr(llm_service, "openai_api_key", None)


@pytest.fixture
def make_user(app):
    def _make_user(username, display_name=None, is_admin=False, password="Password1"):
        user = User(username=username, email=f"{username}@example.com", password=password, is_admin=is_admin)
        db.session.add(user)
        db.session.flush()
        db.session.add(UserProfile(user_id=user.id, display_name=display_name))
        db.session.commit()
        return user
    return _make_user


@pytest.fixture
def user(make_user):
    return make_user("alice", display_name="Alice")


@pytest.fixture
def other_user(make_user):
    return make_user("bob", display_name="Bob")


@pytest.fixture
def admin_user(make_user):
    return make_user("admin", display_name="Admin", is_admin=True)


def bearer(user):
    return {"Authorization": f"Bearer {create_access_token(identity=user.id)}"}


@pytest.fixture
def auth_headers(user):
    return bearer(user)


@pytest.fixture
def other_headers(other_user):
    return bearer(other_user)


@pytest.fixture
def admin_headers(admin_user):
    return bearer(admin_user)


@pytest.fixture
def headers_for(app):
    return bearer
