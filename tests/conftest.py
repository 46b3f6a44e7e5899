import pytest
from fastapi.testclient import TestClient

import golfclub.storage as storage


@pytest.fixture(autouse=True)
def use_sqlite(tmp_path, monkeypatch):
    db = tmp_path / "golfclub.db"
    monkeypatch.setattr(storage, "DB_FILE", db)
    monkeypatch.setattr(storage, "DATABASE_URL", "")
    monkeypatch.setattr(storage, "IS_PG", False)
    yield db


@pytest.fixture
def client():
    from golfclub.api import app

    with TestClient(app) as c:
        yield c


@pytest.fixture
def signup(client):
    """Register an account and return ``(user_id, headers)``.

    The session cookie set by registration is dropped so later calls on the
    same client authenticate only through the returned bearer header.
    """

    def _signup(email, name, password="pw"):
        resp = client.post(
            "/auth/register",
            json={"email": email, "name": name, "password": password},
        )
        assert resp.status_code == 201, resp.text
        client.cookies.clear()
        data = resp.json()
        return data["user"]["user_id"], {"Authorization": f"Bearer {data['token']}"}

    return _signup


@pytest.fixture
def new_club(client):
    def _new_club(headers, name="Club", description=None):
        resp = client.post("/clubs", json={"name": name, "description": description}, headers=headers)
        assert resp.status_code == 201, resp.text
        return resp.json()["club_id"]

    return _new_club
