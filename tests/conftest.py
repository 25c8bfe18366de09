"""Shared fixtures: in-memory database, app instance and user helpers."""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("PASSWORD_HASH_ITERATIONS", "1000")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from chatapp.db.config import build_engine
from chatapp.db.init import init_db
from chatapp.main import create_app
from chatapp.services.user_service import UserService


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def make_user(session):
    def _make_user(username, password="pw"):
        return UserService(session).register(username, f"{username}@x.com", password)
    return _make_user


@pytest.fixture
def app(engine):
    return create_app(bind=engine)


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


def register(client, username, email=None, password="pw"):
    """Register through the API and return (user dict, auth headers, token)."""
    response = client.post("/api/auth/register", json={
        "username": username,
        "email": email or f"{username}@x.com",
        "password": password,
    })
    assert response.status_code == 201, response.text
    body = response.json()
    return body["user"], {"Authorization": f"Bearer {body['token']}"}, body["token"]
