"""
pytest configuration – point the app at a throwaway SQLite database, create
tables once per run and give every test a clean slate (empty tables, fresh
rate-limit counters).
"""
import itertools
import os
import tempfile

_TEST_DB = os.path.join(tempfile.gettempdir(), f"community_test_{os.getpid()}.db")
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DB}"
os.environ["ENVIRONMENT"] = "development"
os.environ["LOG_FORMAT"] = "text"
os.environ["SMTP_USER"] = ""
os.environ["SMTP_PASS"] = ""

import pytest
from fastapi.testclient import TestClient

from community_site.auth import core
from community_site.database import Base, db_session, engine
from community_site import models  # noqa: F401 – registers ORM mappings with Base.metadata
from community_site.main import app

# Keep password hashing fast under test
core.BCRYPT_ROUNDS = 4

PASSWORD = "correct-horse"


@pytest.fixture(autouse=True, scope="session")
def create_tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    if os.path.exists(_TEST_DB):
        os.remove(_TEST_DB)


@pytest.fixture(autouse=True)
def clean_state():
    app.state.rate_limiter.reset()
    yield
    with db_session() as session:
        for table in reversed(Base.metadata.sorted_tables):
            session.execute(table.delete())
    app.state.rate_limiter.reset()


# ---------------------------------------------------------------------------
# Users and logged-in clients
# ---------------------------------------------------------------------------

_seq = itertools.count(1)


@pytest.fixture
def make_user():
    def _make(role: str = "user", active: bool = True, password: str = PASSWORD, **overrides) -> models.User:
        n = next(_seq)
        fields = dict(
            username=f"{role}{n}",
            email=f"{role}{n}@example.com",
            first_name="Test",
            last_name=role.title(),
            password_hash=core.hash_password(password),
            role=role,
            is_active=active,
        )
        fields.update(overrides)
        with db_session() as session:
            user = models.User(**fields)
            session.add(user)
        return user
    return _make


def fetch_csrf(client: TestClient) -> str:
    resp = client.get("/auth/csrf")
    assert resp.status_code == 200, resp.text
    return resp.json()["csrfToken"]


def do_login(client: TestClient, email: str, password: str = PASSWORD) -> str:
    """Log *client* in and return the CSRF token for the new session."""
    token = fetch_csrf(client)
    resp = client.post(
        "/auth/login",
        json={"email": email, "password": password},
        headers={"X-CSRF-Token": token},
    )
    assert resp.status_code == 200, resp.text
    return resp.json()["csrfToken"]


@pytest.fixture
def csrf():
    return fetch_csrf


@pytest.fixture
def login():
    return do_login


@pytest.fixture
def client_as(make_user):
    """Factory: a TestClient logged in as a fresh user with *role*.

    Returns (client, csrf_token, user).
    """
    def _client(role: str = "admin", **user_fields):
        user = make_user(role=role, **user_fields)
        client = TestClient(app, follow_redirects=False)
        token = do_login(client, user.email)
        return client, token, user
    return _client
