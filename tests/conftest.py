import pytest
from fastapi.testclient import TestClient

from marathon_hub_api.app.core.config import settings
from marathon_hub_api.app.core.db import DocumentStore
from marathon_hub_api.app.core.security import create_access_token
from marathon_hub_api.app.main import app


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    """Point the application at a throwaway SQLite file."""
    path = str(tmp_path / "marathon_hub_test.db")
    monkeypatch.setattr(settings, "database_url", path)
    return path


@pytest.fixture
def store(db_path):
    store = DocumentStore(db_path)
    store.init_db()
    yield store
    store.close()


@pytest.fixture
def client(db_path):
    # Entering the client runs the lifespan, which opens the store.
    with TestClient(app) as test_client:
        yield test_client


def login(client, email):
    """Attach a valid token cookie for ``email`` to the client."""
    client.cookies.set(settings.token_cookie_name, create_access_token({"email": email}))


def make_marathon(store, **fields):
    document = {
        "title": "Spring Run",
        "email": "organizer@example.com",
        "startRegistrationDate": "2030-03-01T00:00:00.000Z",
        "createdAt": "2026-01-01T00:00:00.000Z",
        "totalRegistrationCount": 0,
    }
    document.update(fields)
    return store.insert_one("marathons", document).inserted_id
