import os

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import stockpos.models  # noqa: F401
from stockpos.core.config import settings
from stockpos.core.deps import get_db
from stockpos.core.security import hash_password
from stockpos.db.base import Base
from stockpos.main import app
from stockpos.models.user import User
from stockpos.routers.auth import login_rate_limiter

TEST_PASSWORD = "password123"


def _engine():
    return create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest.fixture()
def session_factory():
    engine = _engine()
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def test_context(session_factory):
    original_secret = settings.secret_key
    settings.secret_key = "test-secret-key"

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as client:
        yield client, session_factory

    app.dependency_overrides.clear()
    settings.secret_key = original_secret
    login_rate_limiter.clear()


def create_user(session_factory, *, username: str, role: str, password: str = TEST_PASSWORD, active: bool = True) -> int:
    with session_factory() as session:
        user = User(
            username=username,
            full_name=username.title(),
            hashed_password=hash_password(password),
            role=role,
            is_active=active,
        )
        session.add(user)
        session.commit()
        return user.id


def login(client, username: str, password: str = TEST_PASSWORD) -> str:
    res = client.post("/auth/login", json={"username": username, "password": password})
    assert res.status_code == 200, res.text
    return res.json()["data"]["token"]


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin_headers(test_context):
    client, session_factory = test_context
    create_user(session_factory, username="admin", role="admin")
    return auth_headers(login(client, "admin"))


@pytest.fixture()
def owner_headers(test_context):
    client, session_factory = test_context
    create_user(session_factory, username="owner", role="owner")
    return auth_headers(login(client, "owner"))


@pytest.fixture()
def cashier_headers(test_context):
    client, session_factory = test_context
    create_user(session_factory, username="cashier", role="cashier")
    return auth_headers(login(client, "cashier"))
