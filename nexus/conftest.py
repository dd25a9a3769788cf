"""Pytest configuration and fixtures for Nexus backend tests.

Sets up the test environment before any tests run so that settings are
loaded for the test context.
"""

import os
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from nexus.auth.tokens import issue_token
from nexus.config import get_settings
from nexus.db.models import ChatSession, User


def pytest_configure(config):
    """Configure test environment before any tests run.

    Key test settings:
    - ENVIRONMENT=test
    - PROVIDER_MODE=mock so no test ever reaches a real upstream
    """
    config.addinivalue_line("markers", "security: Security-related tests")
    config.addinivalue_line("markers", "slow: Slow-running tests (excluded from fast)")

    os.environ.setdefault("ENVIRONMENT", "test")
    os.environ.setdefault("PROVIDER_MODE", "mock")


@pytest.fixture
def app(tmp_path: Path, monkeypatch):
    """Application bound to a fresh SQLite database."""
    from nexus.main import create_app

    db_path = tmp_path / "nexus_test.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path.as_posix()}")
    monkeypatch.setenv("DATABASE_AUTO_CREATE", "true")
    get_settings.cache_clear()
    yield create_app()
    get_settings.cache_clear()


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def seeded(app, client):
    """A user, a bearer token and one chat session owned by that user."""
    db = app.state.session_factory()
    try:
        user = User(email="seed@example.com", name="Seed", preferences={"memory": "Prefers short answers"})
        db.add(user)
        db.commit()
        db.refresh(user)
        chat = ChatSession(user_id=user.id, title="Test")
        db.add(chat)
        db.commit()
        db.refresh(chat)
        token = issue_token(db, user)
        return {"user_id": user.id, "session_id": chat.id, "token": token}
    finally:
        db.close()


@pytest.fixture
def auth_headers(seeded):
    return {"Authorization": f"Bearer {seeded['token']}"}
