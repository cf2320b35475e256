"""
Test infrastructure.

Provides:
  - required env vars (set before any app module is imported)
  - a throwaway SQLite file database, tables recreated per test
  - TestClient plus helpers to create users and log them in
  - FakeResponse for stubbing requests calls to Google
"""
import json
import os
import tempfile

import pytest
import requests
from cryptography.fernet import Fernet

_TMP_DIR = tempfile.mkdtemp(prefix="family-dashboard-tests-")

os.environ.update({
    "ENV": "test",
    "GOOGLE_CLIENT_ID": "test-client-id",
    "GOOGLE_CLIENT_SECRET": "test-client-secret",
    "GOOGLE_REDIRECT_URI": "http://testserver/auth/google/callback",
    "JWT_SECRET": "test-jwt-secret",
    "TOKEN_ENCRYPTION_KEY": Fernet.generate_key().decode(),
    "DATABASE_URL": f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}",
    "ADMIN_EMAILS": "admin@example.com",
    "CALENDAR_SERVICE_ACCOUNT_ID": "svc-account",
    "REFRESH_LOCK_WAIT_SECONDS": "0",
})

SERVICE_ACCOUNT_ID = "svc-account"


class FakeResponse:
    """Just enough of requests.Response for the services under test."""

    def __init__(self, status_code: int = 200, payload=None):
        self.status_code = status_code
        self._payload = payload
        self.content = b"" if payload is None else json.dumps(payload).encode()

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}", response=self)


@pytest.fixture(scope="session")
def app():
    import main
    return main.app


@pytest.fixture
def db():
    """Fresh tables for every test; the session is the test's own view of the DB."""
    from database import Base, SessionLocal, engine, init_db

    Base.metadata.drop_all(bind=engine)
    init_db()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(app, db):
    from starlette.testclient import TestClient

    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


@pytest.fixture
def make_user(db):
    from models import User

    def _make(user_id: str, name: str | None = None, role: str = "member", email: str | None = None):
        user = User(id=user_id, email=email or f"{user_id}@example.com", name=name or user_id.title(), role=role)
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def login(client):
    """Put a session cookie for the user on the test client."""
    from config import JWT_COOKIE_NAME
    from security import create_session_token

    def _login(user):
        client.cookies.set(JWT_COOKIE_NAME, create_session_token(user.id, user.role))
        return client

    return _login


@pytest.fixture
def member(make_user):
    return make_user("member-1", name="Sam")


@pytest.fixture
def admin(make_user):
    return make_user("admin-1", name="Alex", role="admin", email="admin@example.com")


@pytest.fixture
def service_account(db, make_user):
    """The identity whose Google tokens mirror todos, connected with a fresh token."""
    from services.token_service import store_tokens

    user = make_user(SERVICE_ACCOUNT_ID, name="Family Calendar")
    store_tokens(db, SERVICE_ACCOUNT_ID, "svc-access", refresh_token="svc-refresh", expires_in=3600)
    return user


@pytest.fixture
def todo_calendar(db):
    from models import TodoCalendarConfig

    cfg = TodoCalendarConfig(calendar_id="family-todos@group.calendar.google.com", calendar_name="Todos", is_active=True)
    db.add(cfg)
    db.commit()
    return cfg
