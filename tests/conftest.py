"""
Shared fixtures: in-memory database, users with sessions, and a TestClient wired to both.
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import deepsearch.models.chat  # noqa: F401 (registers tables)
from deepsearch.core.database import Base, get_db, utcnow
from deepsearch.models.user import AuthSession, User

# StaticPool: every connection shares the same in-memory DB
TEST_ENGINE = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSession = sessionmaker(bind=TEST_ENGINE, autoflush=False, expire_on_commit=False)


@pytest.fixture(autouse=True)
def _setup_db():
    """Create all tables before each test, drop after."""
    Base.metadata.create_all(bind=TEST_ENGINE)
    yield
    Base.metadata.drop_all(bind=TEST_ENGINE)


@pytest.fixture
def db():
    session = TestSession()
    try:
        yield session
    finally:
        session.close()


def _make_user(db, email: str, is_admin: bool = False) -> tuple[User, str]:
    user = User(email=email, name=email.split("@")[0], is_admin=is_admin)
    db.add(user)
    db.flush()
    token = f"token-{user.id}"
    db.add(AuthSession(session_token=token, user_id=user.id, expires=utcnow() + timedelta(days=1)))
    db.commit()
    return user, token


@pytest.fixture
def user(db):
    return _make_user(db, "alice@example.com")


@pytest.fixture
def other_user(db):
    return _make_user(db, "bob@example.com")


@pytest.fixture
def admin_user(db):
    return _make_user(db, "admin@example.com", is_admin=True)


@pytest.fixture
def client(db):
    """TestClient with the request DB and the post-stream DB both pointed at the test engine."""
    from deepsearch.main import app

    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    with patch("deepsearch.api.routes.SessionLocal", TestSession):
        yield TestClient(app)
    app.dependency_overrides.clear()
