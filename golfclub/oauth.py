"""Identity provider support for Google and Facebook sign-in."""
from __future__ import annotations

import secrets
from urllib.parse import urlencode

import httpx
from loguru import logger

from .config import (
    get_facebook_app_id,
    get_facebook_app_secret,
    get_google_client_id,
    get_google_client_secret,
    get_oauth_callback_base,
)

OAUTH_PROVIDERS = {
    "google": {
        "authorize_url": "https://accounts.google.com/o/oauth2/v2/auth",
        "token_url": "https://oauth2.googleapis.com/token",
        "userinfo_url": "https://www.googleapis.com/oauth2/v2/userinfo",
        "scopes": ["openid", "email", "profile"],
    },
    "facebook": {
        "authorize_url": "https://www.facebook.com/v18.0/dialog/oauth",
        "token_url": "https://graph.facebook.com/v18.0/oauth/access_token",
        "userinfo_url": "https://graph.facebook.com/me",
        "scopes": ["email"],
    },
}


class OAuthError(Exception):
    """The provider rejected the exchange or returned an unusable profile."""


def _credentials(provider: str) -> tuple[str, str]:
    if provider == "google":
        return get_google_client_id(), get_google_client_secret()
    if provider == "facebook":
        return get_facebook_app_id(), get_facebook_app_secret()
    return "", ""


def is_configured(provider: str) -> bool:
    """Return True if the provider's client id and secret are both set."""
    client_id, client_secret = _credentials(provider)
    return provider in OAUTH_PROVIDERS and bool(client_id and client_secret)


def get_available_providers() -> list[str]:
    return [p for p in OAUTH_PROVIDERS if is_configured(p)]


def redirect_uri(provider: str) -> str:
    return f"{get_oauth_callback_base().rstrip('/')}/auth/{provider}/callback"


def new_state() -> str:
    """Random CSRF token stored in the session between redirect and callback."""
    return secrets.token_urlsafe(32)


def authorization_url(provider: str, state: str) -> str:
    config = OAUTH_PROVIDERS[provider]
    client_id, _ = _credentials(provider)
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri(provider),
        "response_type": "code",
        "scope": " ".join(config["scopes"]),
        "state": state,
    }
    return f"{config['authorize_url']}?{urlencode(params)}"


async def exchange_code(provider: str, code: str) -> str:
    """Trade an authorization code for a provider access token."""
    config = OAUTH_PROVIDERS[provider]
    client_id, client_secret = _credentials(provider)
    data = {
        "grant_type": "authorization_code",
        "client_id": client_id,
        "client_secret": client_secret,
        "redirect_uri": redirect_uri(provider),
        "code": code,
    }
    try:
        async with httpx.AsyncClient(timeout=10) as client:
            response = await client.post(
                config["token_url"],
                data=data,
                headers={"Accept": "application/json"},
            )
    except httpx.HTTPError as e:
        raise OAuthError(f"Token exchange failed: {e}")
    if response.status_code != 200:
        logger.error("Token exchange with {} failed: {} - {}", provider, response.status_code, response.text)
        raise OAuthError("Token exchange failed")
    token = response.json().get("access_token")
    if not token:
        raise OAuthError("Provider returned no access token")
    return token


async def fetch_profile(provider: str, access_token: str) -> dict:
    """Return ``{"id", "email", "name", "email_verified"}`` for the signed-in account.

    Google reports ``verified_email``; the Graph API gives no such flag, so
    Facebook emails are never treated as verified.
    """
    config = OAUTH_PROVIDERS[provider]
    params = {"fields": "id,name,email"} if provider == "facebook" else None
    try:
        async with httpx.AsyncClient(timeout=10) as client:
            response = await client.get(
                config["userinfo_url"],
                headers={"Authorization": f"Bearer {access_token}"},
                params=params,
            )
    except httpx.HTTPError as e:
        raise OAuthError(f"Profile request failed: {e}")
    if response.status_code != 200:
        logger.error("Profile request to {} failed: {}", provider, response.status_code)
        raise OAuthError("Profile request failed")
    data = response.json()
    if not data.get("id"):
        raise OAuthError("Provider profile has no id")
    return {
        "id": str(data["id"]),
        "email": data.get("email"),
        "name": data.get("name"),
        "email_verified": provider == "google" and data.get("verified_email") is True,
    }
