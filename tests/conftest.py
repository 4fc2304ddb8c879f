from __future__ import annotations

import os
import sys
from pathlib import Path

os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

import mongomock  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from database import get_db  # noqa: E402
from main import app  # noqa: E402


@pytest.fixture
def db():
    return mongomock.MongoClient().db


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_form(client):
    """Create a form through the API and return its JSON."""

    def _make(fields, title="Contact", settings=None, publish=True):
        body = {"title": title, "fields": fields}
        if settings is not None:
            body["settings"] = settings
        resp = client.post("/api/forms", json=body)
        assert resp.status_code == 201, resp.text
        form = resp.json()["data"]
        if publish:
            resp = client.patch(f"/api/forms/{form['id']}/publish")
            assert resp.status_code == 200, resp.text
            form = resp.json()["data"]
        return form

    return _make
