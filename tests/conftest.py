import os
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["AUTO_CREATE_TABLES"] = "true"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["RATE_LIMIT_PER_MINUTE"] = "10000"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"

from app import models  # noqa: E402,F401
from app.db.base import Base  # noqa: E402
from app.db.session import SessionLocal, engine  # noqa: E402
from app.main import create_app  # noqa: E402
from app.models.user import User  # noqa: E402


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    path = Path("test.db")
    if path.exists():
        path.unlink()


@pytest.fixture()
def client():
    app = create_app()
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def user(db):
    account = User(email="owner@example.com", password_hash="not-a-real-hash")
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


@pytest.fixture()
def other_user(db):
    account = User(email="someone-else@example.com", password_hash="not-a-real-hash")
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


def register_and_login(client, email="user@example.com", password="secret123"):
    register = client.post("/auth/register", json={"email": email, "password": password})
    assert register.status_code == 201, register.text
    login = client.post("/auth/login", json={"email": email, "password": password})
    assert login.status_code == 200, login.text
    return {"Authorization": f"Bearer {login.json()['access_token']}"}


@pytest.fixture()
def auth_headers(client):
    return register_and_login(client)


@pytest.fixture()
def second_auth_headers(client):
    return register_and_login(client, email="second@example.com", password="another456")
