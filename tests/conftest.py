"""
Test fixtures for inkwell tests.

Provides an in-memory database, an application wired to it, and helpers for
registering users and creating categories through the API.
"""

import os

# Settings are read at import time; pin them before the package loads
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SECRET_KEY", "inkwell-test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("MEMORY_LOG_INTERVAL_SECONDS", "0")

from typing import Dict, Generator, Tuple

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel

from inkwell.core import security
from inkwell.core.config import Settings
from inkwell.db import build_engine, create_db_and_tables, get_session
from inkwell.main import create_app
from inkwell.models import Category, User

TEST_SECRET_KEY = "inkwell-test-secret-key"
DEFAULT_PASSWORD = "password123"


@pytest.fixture(scope="function")
def test_engine() -> Generator[Engine, None, None]:
    """Create a test database engine with in-memory SQLite."""
    engine = build_engine("sqlite://")
    create_db_and_tables(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def test_session(test_engine: Engine) -> Generator[Session, None, None]:
    """Provide a test database session."""
    with Session(test_engine) as session:
        yield session


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        ENVIRONMENT="test",
        SECRET_KEY=TEST_SECRET_KEY,
        DATABASE_URL="sqlite://",
        UPLOAD_DIR=str(tmp_path / "uploads"),
        MEMORY_LOG_INTERVAL_SECONDS=0,
    )


def build_test_app(settings: Settings, session: Session) -> FastAPI:
    app = create_app(settings)

    def get_test_session():
        yield session

    app.dependency_overrides[get_session] = get_test_session
    return app


@pytest.fixture
def app(test_settings: Settings, test_session: Session) -> Generator[FastAPI, None, None]:
    application = build_test_app(test_settings, test_session)
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    """Create test client with overridden database session."""
    return TestClient(app)


def auth_headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def register_and_login(
    client: TestClient,
    username: str,
    email: str,
    password: str = DEFAULT_PASSWORD,
) -> Tuple[dict, str]:
    """Register through the API and return (user, token)."""
    response = client.post(
        "/api/auth/register",
        json={"username": username, "email": email, "password": password},
    )
    assert response.status_code == 201, response.text
    login = client.post("/api/auth/login", json={"email": email, "password": password})
    assert login.status_code == 200, login.text
    return login.json()["user"], login.json()["token"]


@pytest.fixture
def alice(client: TestClient) -> Tuple[dict, str]:
    return register_and_login(client, "alice", "alice@example.com")


@pytest.fixture
def bob(client: TestClient) -> Tuple[dict, str]:
    return register_and_login(client, "bob", "bob@example.com")


@pytest.fixture
def category(client: TestClient, alice) -> dict:
    _, token = alice
    response = client.post(
        "/api/categories",
        json={"name": "Technology", "description": "Technology related posts"},
        headers=auth_headers(token),
    )
    assert response.status_code == 201, response.text
    return response.json()


def create_post(client: TestClient, token: str, category_id: int, **overrides) -> dict:
    data = {
        "title": "Hello",
        "content": "This is a test body.",
        "category": str(category_id),
    }
    data.update(overrides)
    response = client.post("/api/posts", data=data, headers=auth_headers(token))
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def db_user(test_session: Session) -> User:
    """A user inserted directly, for repository tests."""
    user = User(
        username="writer",
        email="writer@example.com",
        hashed_password=security.get_password_hash(DEFAULT_PASSWORD),
    )
    test_session.add(user)
    test_session.commit()
    test_session.refresh(user)
    return user


@pytest.fixture
def db_category(test_session: Session) -> Category:
    category = Category(name="Lifestyle", description="Lifestyle related posts")
    test_session.add(category)
    test_session.commit()
    test_session.refresh(category)
    return category
