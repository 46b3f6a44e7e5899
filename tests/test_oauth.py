import asyncio
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from golfclub import oauth, storage
from golfclub.services import users as user_service
from golfclub.services.exceptions import ValidationError


@pytest.fixture
def google(monkeypatch):
    monkeypatch.setenv("GOOGLE_CLIENT_ID", "gid")
    monkeypatch.setenv("GOOGLE_CLIENT_SECRET", "gsecret")
    monkeypatch.setenv("CLIENT_URL", "http://client.test")
    monkeypatch.setenv("OAUTH_CALLBACK_BASE", "http://localhost:8000")
    profile = {"id": "g-123", "email": "golfer@example.com", "name": "Golfer", "email_verified": True}

    async def fake_exchange(provider, code):
        assert provider == "google"
        if code == "bad":
            raise oauth.OAuthError("Token exchange failed")
        return "provider-token"

    async def fake_profile(provider, access_token):
        assert access_token == "provider-token"
        return dict(profile)

    monkeypatch.setattr(oauth, "exchange_code", fake_exchange)
    monkeypatch.setattr(oauth, "fetch_profile", fake_profile)
    return profile


def _start(client):
    resp = client.get("/auth/google", follow_redirects=False)
    assert resp.status_code == 302
    location = urlsplit(resp.headers["location"])
    assert location.netloc == "accounts.google.com"
    query = parse_qs(location.query)
    assert query["client_id"] == ["gid"]
    assert query["redirect_uri"] == ["http://localhost:8000/auth/google/callback"]
    return query["state"][0]


def _token_from(resp):
    assert resp.status_code == 302
    location = urlsplit(resp.headers["location"])
    assert location.netloc == "client.test"
    return parse_qs(location.query)["token"][0]


def test_first_login_creates_account(client, google):
    state = _start(client)
    resp = client.get(
        "/auth/google/callback",
        params={"code": "ok", "state": state},
        follow_redirects=False,
    )
    token = _token_from(resp)
    client.cookies.clear()

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"}).json()
    assert me["email"] == "golfer@example.com"
    assert me["has_password"] is False
    assert me["google_linked"] is True

    user = storage.get_user_by_provider("google", "g-123")
    assert user.user_id == me["user_id"]

    # a second login resolves the same account
    state = _start(client)
    resp = client.get(
        "/auth/google/callback",
        params={"code": "ok", "state": state},
        follow_redirects=False,
    )
    client.cookies.clear()
    again = client.get("/auth/me", headers={"Authorization": f"Bearer {_token_from(resp)}"}).json()
    assert again["user_id"] == me["user_id"]


def test_login_links_existing_email(client, signup, google):
    uid, _ = signup("golfer@example.com", "Local Golfer")
    state = _start(client)
    resp = client.get(
        "/auth/google/callback",
        params={"code": "ok", "state": state},
        follow_redirects=False,
    )
    _token_from(resp)

    user = storage.get_user(uid)
    assert user.google_id == "g-123"
    assert user.has_password
    assert storage.get_user_by_provider("google", "g-123").user_id == uid


def test_callback_rejects_bad_state(client, google):
    _start(client)
    resp = client.get(
        "/auth/google/callback",
        params={"code": "ok", "state": "forged"},
        follow_redirects=False,
    )
    assert resp.status_code == 302
    assert resp.headers["location"] == "http://client.test/login"
    assert storage.get_user_by_provider("google", "g-123") is None


def test_callback_provider_failure(client, google):
    state = _start(client)
    resp = client.get(
        "/auth/google/callback",
        params={"code": "bad", "state": state},
        follow_redirects=False,
    )
    assert resp.status_code == 302
    assert resp.headers["location"] == "http://client.test/login"


def test_unverified_email_does_not_take_over_account(client, signup, google):
    uid, _ = signup("golfer@example.com", "Local Golfer")
    google["email_verified"] = False
    state = _start(client)
    resp = client.get(
        "/auth/google/callback",
        params={"code": "ok", "state": state},
        follow_redirects=False,
    )
    assert resp.status_code == 302
    assert resp.headers["location"] == "http://client.test/login"
    assert storage.get_user(uid).google_id is None
    assert storage.get_user_by_provider("google", "g-123") is None


def test_facebook_profile_cannot_claim_password_account():
    uid = user_service.create_user("victim@example.com", "Victim", "s3cret")
    with pytest.raises(ValidationError):
        user_service.oauth_login(
            "facebook",
            {"id": "fb-1", "email": "victim@example.com", "name": "Other"},
        )
    assert storage.get_user(uid).facebook_id is None


def test_verified_email_does_not_replace_linked_provider():
    uid = user_service.create_user("a@example.com", "A", "pw")
    _, user, _ = user_service.oauth_login(
        "google", {"id": "g-1", "email": "a@example.com", "name": "A", "email_verified": True}
    )
    assert user.user_id == uid
    with pytest.raises(ValidationError):
        user_service.oauth_login(
            "google", {"id": "g-2", "email": "a@example.com", "name": "A", "email_verified": True}
        )
    assert storage.get_user(uid).google_id == "g-1"


_REAL_ASYNC_CLIENT = httpx.AsyncClient


def _profile_client(monkeypatch, payload):
    real_client = _REAL_ASYNC_CLIENT

    def handler(request):
        return httpx.Response(200, json=payload)

    monkeypatch.setattr(
        httpx,
        "AsyncClient",
        lambda **kw: real_client(transport=httpx.MockTransport(handler), **kw),
    )


def test_fetch_profile_keeps_google_verification(monkeypatch):
    _profile_client(monkeypatch, {"id": 7, "email": "a@example.com", "name": "A", "verified_email": True})
    profile = asyncio.run(oauth.fetch_profile("google", "tok"))
    assert profile == {"id": "7", "email": "a@example.com", "name": "A", "email_verified": True}

    _profile_client(monkeypatch, {"id": 7, "email": "a@example.com", "name": "A"})
    assert asyncio.run(oauth.fetch_profile("google", "tok"))["email_verified"] is False


def test_fetch_profile_facebook_never_verified(monkeypatch):
    _profile_client(monkeypatch, {"id": "9", "email": "a@example.com", "name": "A", "verified_email": True})
    assert asyncio.run(oauth.fetch_profile("facebook", "tok"))["email_verified"] is False
