# FILE: tests/conftest.py
"""
Pytest configuration for the knowledge base test suite.

Configures:
- an in-memory SQLite database shared by the app and the tests
- a TestClient with get_db overridden
- helpers to create users, log in, and fake chat-completion replies
"""
import os
import tempfile

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["AI_API_KEY"] = "test-key"
os.environ["ADMIN_EMAILS"] = ""
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="kb-images-")

import pytest
from unittest.mock import Mock
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models
from auth import get_password_hash
from db import Base, get_db
from main import app

DEFAULT_PASSWORD = "secret123"

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory():
    return TestingSessionLocal


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def create_user():
    """Insert an identity directly; returns its id."""
    def _create(email, status=models.STATUS_PENDING, admin=False, password=DEFAULT_PASSWORD):
        session = TestingSessionLocal()
        try:
            user = models.User(email=email, hashed_password=get_password_hash(password))
            user.profile = models.Profile(email=email, status=status)
            user.roles.append(models.UserRole(role=models.ROLE_USER))
            if admin:
                user.roles.append(models.UserRole(role=models.ROLE_ADMIN))
            session.add(user)
            session.commit()
            return user.id
        finally:
            session.close()
    return _create


@pytest.fixture
def login(client):
    """Log in through the API; returns (headers, login_code)."""
    def _login(email, password=DEFAULT_PASSWORD):
        r = client.post("/auth/login", json={"email": email, "password": password})
        assert r.status_code == 200, r.text
        data = r.json()
        return {"Authorization": f"Bearer {data['access_token']}"}, data["login_code"]
    return _login


@pytest.fixture
def admin_headers(create_user, login):
    create_user("admin@example.com", status=models.STATUS_APPROVED, admin=True)
    headers, _ = login("admin@example.com")
    return headers


@pytest.fixture
def add_content():
    """Insert a content item directly; returns its id."""
    def _add(kind=models.KIND_SOLUTION, title="Printer offline", description="Restart the spooler",
             steps=None, item_id=None, owner_id=None):
        session = TestingSessionLocal()
        try:
            item = models.ContentItem(
                id=item_id or models.new_id(),
                kind=kind,
                title=title,
                description=description,
                steps=steps,
                user_id=owner_id,
            )
            session.add(item)
            session.commit()
            return item.id
        finally:
            session.close()
    return _add


@pytest.fixture
def completion():
    """Build a fake requests.Response for a chat-completion call."""
    def _response(content="", status_code=200):
        resp = Mock()
        resp.status_code = status_code
        resp.ok = 200 <= status_code < 300
        resp.text = content
        resp.json.return_value = {"choices": [{"message": {"content": content}}]}
        return resp
    return _response
