import os

# configure before anything imports plantstore.config
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["JWT_SECRET"] = "test-secret-key-with-enough-length-for-hs256"
os.environ["REQUIRE_EMAIL_VERIFICATION"] = "false"
os.environ["AUTH_RATE_LIMIT_MAX"] = "100000"
os.environ["API_RATE_LIMIT_MAX"] = "100000"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["LOG_FORMAT"] = "console"

import pytest
from fastapi.testclient import TestClient

from plantstore.auth.services import create_user
from plantstore.database import Base, SessionLocal, engine
from plantstore.main import create_app
from plantstore.middleware import InMemoryRateLimitStore
from plantstore.models import UserRole

PASSWORD = "Secret123!"


@pytest.fixture(autouse=True)
def fresh_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def rate_limit_store():
    return InMemoryRateLimitStore()


@pytest.fixture
def app(rate_limit_store):
    return create_app(rate_limit_store=rate_limit_store)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


def auth_header(token):
    return {"Authorization": f"Bearer {token}"}


def register(client, email="jane@x.com", name="Jane Doe", password=PASSWORD):
    return client.post("/api/auth/register", json={"name": name, "email": email, "password": password})


def login(client, email="jane@x.com", password=PASSWORD, **kwargs):
    return client.post("/api/auth/login", json={"email": email, "password": password}, **kwargs)


@pytest.fixture
def user_token(client):
    response = register(client)
    assert response.status_code == 201
    client.cookies.clear()
    return response.json()["token"]


@pytest.fixture
def admin_token(client, db):
    user = create_user(db, "Store Admin", "admin@x.com", PASSWORD, role=UserRole.ADMIN)
    user.is_verified = True
    db.commit()
    response = login(client, email="admin@x.com")
    assert response.status_code == 200
    client.cookies.clear()
    return response.json()["token"]
