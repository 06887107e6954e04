# roundtable/conftest.py
import os
from typing import Optional

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("SKIP_ENV_VALIDATION", "1")

from roundtable.core.auth import create_test_jwt
from roundtable.core.config import Settings
from roundtable.core.database import Database
from roundtable.features.users.service import ensure_user
from roundtable.tests.mocks import StubGenerator

TEST_SECRET = "test-secret-key"


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        ENV="test",
        DATABASE_URL="sqlite://",
        AUTH_JWT_SECRET=TEST_SECRET,
        GROQ_API_KEY="gsk_test",
    )


@pytest.fixture
def db():
    """Fresh in-memory database per test."""
    database = Database("sqlite://")
    database.create_all()
    yield database
    database.dispose()


@pytest.fixture
def generator():
    return StubGenerator()


@pytest.fixture
def app(test_settings, db, generator):
    from roundtable.main import create_app

    return create_app(settings_obj=test_settings, database=db, generator=generator)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def auth_headers():
    def _headers(uid: str, email: Optional[str] = None, name: Optional[str] = None) -> dict:
        token = create_test_jwt(sub=uid, email=email or f"{uid}@example.com", name=name, secret=TEST_SECRET)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def make_user(db):
    def _make(uid: str, email: Optional[str] = None, name: Optional[str] = None):
        return ensure_user(db, uid, email=email or f"{uid}@example.com", name=name or uid.title())

    return _make
