from __future__ import annotations
import sqlite3

import psycopg2
from loguru import logger

from .exceptions import InvalidCredentials, NotFound, ValidationError
from .auth import create_access_token
from .helpers import club_ref
from ..cli import register_user, authenticate, normalize_email
from ..storage import (
    create_user as create_user_record,
    get_user as get_user_record,
    get_user_by_email,
    get_user_by_provider,
    get_club,
    save_user,
    transaction,
)
from ..models import User

PROVIDER_FIELDS = {"google": "google_id", "facebook": "facebook_id"}


def _insert_user(user: User) -> None:
    try:
        with transaction() as conn:
            create_user_record(user, conn=conn)
    except (sqlite3.IntegrityError, psycopg2.IntegrityError):
        # lost a race with a concurrent registration of the same email
        raise ValidationError("Email already registered")


def create_user(email: str, name: str, password: str) -> str:
    """Register a local account and return its id."""
    if not password:
        raise ValidationError("Password is required")
    existing = get_user_by_email(normalize_email(email))
    users = {existing.user_id: existing} if existing else {}
    uid = register_user(users, email, name, password)
    _insert_user(users[uid])
    logger.info("New user registered: {}", users[uid].email)
    return uid


def login(email: str, password: str) -> tuple[str, User]:
    """Return ``(access_token, user)`` or raise ``InvalidCredentials``."""
    user = get_user_by_email(normalize_email(email))
    try:
        authenticate(user, password)
    except InvalidCredentials:
        logger.warning("Failed login for {}", normalize_email(email))
        raise
    logger.info("User logged in: {}", user.email)
    return create_access_token(user.user_id), user


def oauth_login(provider: str, profile: dict) -> tuple[str, User, bool]:
    """Resolve or create the user behind an identity provider profile.

    ``profile`` carries ``id``, ``email``, ``name`` and ``email_verified``.
    An existing account with the same email is linked only when the
    provider vouches for the address. Returns
    ``(access_token, user, just_created)``.
    """
    field = PROVIDER_FIELDS.get(provider)
    if field is None:
        raise ValidationError(f"Unsupported provider: {provider}")
    subject = str(profile.get("id") or "")
    if not subject:
        raise ValidationError("Provider profile has no id")

    user = get_user_by_provider(provider, subject)
    created = False
    if user is None:
        email = normalize_email(profile.get("email"))
        existing = get_user_by_email(email) if email else None
        if existing is not None:
            if profile.get("email_verified") is not True or getattr(existing, field):
                logger.warning("Refused {} login for existing email {}", provider, email)
                raise ValidationError("Email already registered")
            setattr(existing, field, subject)
            with transaction() as conn:
                save_user(existing, conn=conn)
            user = existing
            logger.info("Linked {} account to {}", provider, user.email)
        else:
            users: dict[str, User] = {}
            uid = register_user(users, email, profile.get("name") or email, None)
            user = users[uid]
            setattr(user, field, subject)
            _insert_user(user)
            created = True
            logger.info("Created user {} from {} login", user.email, provider)
    return create_access_token(user.user_id), user, created


def public_profile(user: User) -> dict:
    return {
        "user_id": user.user_id,
        "email": user.email,
        "name": user.name,
        "has_password": user.has_password,
        "google_linked": bool(user.google_id),
        "facebook_linked": bool(user.facebook_id),
    }


def user_info(user_id: str) -> dict:
    """Return the caller profile with clubs and managed clubs expanded."""
    user = get_user_record(user_id)
    if not user:
        raise NotFound("User not found")
    info = public_profile(user)
    info["clubs"] = [c for c in (club_ref(get_club(cid)) for cid in sorted(user.clubs)) if c]
    info["managed_clubs"] = [
        c for c in (club_ref(get_club(cid)) for cid in sorted(user.managed_clubs)) if c
    ]
    return info
