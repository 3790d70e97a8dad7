from __future__ import annotations

import os

import pytest

os.environ.setdefault("APP_ENV", "testing")

from smartsteps.database.bootstrap import _import_models  # noqa: E402

# relationships between models resolve by class name
_import_models()


@pytest.fixture()
def app():
    from smartsteps.main import create_app

    app = create_app("config.testing")
    with app.app_context():
        yield app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def make_user(app):
    from werkzeug.security import generate_password_hash

    from smartsteps.database.extensions import db
    from smartsteps.users.model import User

    def _make(email: str, role: str = "USER", password: str = "Secret123!", **extra) -> User:
        user = User(
            email=email,
            full_name=extra.pop("full_name", email.split("@")[0].title()),
            password_hash=generate_password_hash(password),
            role=role,
            active=True,
            **extra,
        )
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture()
def login_as(client, make_user):
    def _login(email: str = "admin@example.com", role: str = "SUPER_ADMIN", password: str = "Secret123!", **extra):
        user = make_user(email, role, password, **extra)
        resp = client.post("/api/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.get_json()
        return user

    return _login
