import uuid

import pytest

from landclear import create_app
from landclear.models import AdminUser, AuthRateLimitBucket, db

ADMIN_EMAIL = "admin@brushboss.com"
ADMIN_PASSWORD = "admin123"
STAFF_PASSWORD = "staff-pass-123"


def build_test_app(tmp_path, monkeypatch, overrides=None):
    db_path = tmp_path / f"site_test_{uuid.uuid4().hex[:8]}.db"
    upload_path = tmp_path / f"uploads_{uuid.uuid4().hex[:8]}"

    monkeypatch.setenv("ADMIN_PASSWORD", ADMIN_PASSWORD)

    config = {
        "TESTING": True,
        "SECRET_KEY": "test-secret-key",
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
        "UPLOAD_FOLDER": str(upload_path),
        "ADMIN_EMAIL": ADMIN_EMAIL,
        "ADMIN_PASSWORD": ADMIN_PASSWORD,
        "LEAD_NOTIFICATION_EMAILS": "",
        "LOG_JSON": False,
    }
    if overrides:
        config.update(overrides)

    app = create_app(config)
    with app.app_context():
        AuthRateLimitBucket.query.delete()
        db.session.commit()
    return app


@pytest.fixture()
def app_factory(tmp_path, monkeypatch):
    def factory(overrides=None):
        return build_test_app(tmp_path, monkeypatch, overrides)

    return factory


@pytest.fixture()
def app(app_factory):
    return app_factory()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def csrf():
    def fetch(test_client):
        response = test_client.get("/api/csrf-token")
        assert response.status_code == 200
        return {"X-CSRF-Token": response.get_json()["csrf_token"]}

    return fetch


@pytest.fixture()
def login_as(app, csrf):
    """Log ``client`` in as a user with ``role`` and return CSRF headers."""

    def login(test_client, role="super_admin"):
        if role == "super_admin":
            email, password = ADMIN_EMAIL, ADMIN_PASSWORD
        else:
            email, password = f"{role}@brushboss.com", STAFF_PASSWORD
            with app.app_context():
                if AdminUser.query.filter_by(email=email).first() is None:
                    user = AdminUser(email=email, display_name=role.title(), role=role)
                    user.set_password(password)
                    db.session.add(user)
                    db.session.commit()
        headers = csrf(test_client)
        response = test_client.post(
            "/api/admin/login",
            json={"email": email, "password": password},
            headers=headers,
        )
        assert response.status_code == 200, response.get_json()
        return headers

    return login
