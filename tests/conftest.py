"""
Shared pytest fixtures for the CareFlow test suite.
Every test runs against a fresh SQLite file in a temporary directory.
"""

import os
import sys
import tempfile
from pathlib import Path

import pytest

# Point the app at a throwaway database before any project module is imported
_DB_DIR = tempfile.mkdtemp(prefix="careflow-tests-")
os.environ["CAREFLOW_DATABASE_PATH"] = os.path.join(_DB_DIR, "careflow.db")
os.environ.setdefault("CAREFLOW_LOG_LEVEL", "WARNING")

# Ensure project root is on sys.path
sys.path.insert(0, str(Path(__file__).parent.parent))


@pytest.fixture(autouse=True)
def fresh_database():
    """Recreate and reseed the database for each test."""
    import config
    from database import init_database
    path = Path(config.DATABASE_PATH)
    if path.exists():
        path.unlink()
    init_database()
    yield path


@pytest.fixture
def client():
    """FastAPI TestClient bound to the app."""
    from fastapi.testclient import TestClient
    import main
    return TestClient(main.app)


def _login(client, username, password):
    resp = client.post("/auth/login", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


@pytest.fixture
def login(client):
    """Log in a seeded account and return bearer headers."""
    passwords = {
        "admin": "admin123",
        "doctor1": "doctor123",
        "nurse1": "nurse123",
        "secretary1": "secretary123",
        "patient1": "patient123",
        "pharmacist1": "pharmacist123",
        "labtech1": "labtech123",
    }

    def _do(username, password=None):
        return _login(client, username, password or passwords[username])
    return _do


@pytest.fixture
def user_ids():
    """Seeded usernames mapped to ids."""
    from database import list_users
    return {u["username"]: u["id"] for u in list_users()}
