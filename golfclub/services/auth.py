from __future__ import annotations
import datetime
import secrets
from fastapi import Request
from jose import jwt, JWTError
from loguru import logger
from .exceptions import Unauthenticated
from . import state
from .. import storage
from ..config import get_jwt_secret, get_jwt_algorithm

SESSION_USER_KEY = "user_id"


def create_access_token(user_id: str, expires_delta: datetime.timedelta | None = None) -> str:
    """Return a signed token naming ``user_id`` that expires after ``TOKEN_TTL``."""
    now = datetime.datetime.utcnow()
    payload = {
        "sub": user_id,
        "iat": now,
        "exp": now + (expires_delta or state.TOKEN_TTL),
        "jti": secrets.token_hex(16),
    }
    return jwt.encode(payload, get_jwt_secret(), algorithm=get_jwt_algorithm())


def decode_access_token(token: str) -> dict:
    """Verify signature and expiry; raise :class:`Unauthenticated` otherwise."""
    try:
        payload = jwt.decode(token, get_jwt_secret(), algorithms=[get_jwt_algorithm()])
    except JWTError as e:
        logger.warning("Rejected access token: {}", e)
        raise Unauthenticated("Not authenticated")
    if not payload.get("sub"):
        raise Unauthenticated("Not authenticated")
    jti = payload.get("jti")
    if jti and storage.is_token_revoked(jti):
        raise Unauthenticated("Token revoked")
    return payload


def bearer_token(header: str | None) -> str | None:
    if not header or not header.startswith("Bearer "):
        return None
    return header[7:].strip() or None


def require_auth(authorization: str | None = None, request: Request | None = None) -> str:
    """Return the id of the authenticated caller.

    A session established at login wins; otherwise the ``Authorization``
    header must carry a valid bearer token for a user that still exists.
    """
    if request is not None:
        session_uid = request.session.get(SESSION_USER_KEY) if "session" in request.scope else None
        if session_uid:
            if storage.get_user(session_uid):
                return session_uid
            request.session.pop(SESSION_USER_KEY, None)

    header = authorization
    if request is not None and not header:
        header = request.headers.get("Authorization")

    if not header:
        raise Unauthenticated("No auth token provided")
    token = bearer_token(header)
    if not token:
        raise Unauthenticated("Not authenticated")

    payload = decode_access_token(token)
    user_id = payload["sub"]
    if not storage.get_user(user_id):
        raise Unauthenticated("User not found")
    return user_id


def start_session(request: Request, user_id: str) -> None:
    if "session" in request.scope:
        request.session[SESSION_USER_KEY] = user_id


def end_session(request: Request) -> None:
    """Clear the session and revoke any bearer token sent with the request."""
    if "session" in request.scope:
        request.session.clear()
    token = bearer_token(request.headers.get("Authorization"))
    if not token:
        return
    try:
        payload = jwt.decode(token, get_jwt_secret(), algorithms=[get_jwt_algorithm()])
    except JWTError:
        return
    jti = payload.get("jti")
    if jti:
        expires = datetime.datetime.utcfromtimestamp(payload["exp"])
        storage.revoke_token(jti, expires)
        logger.info("Revoked token for user {}", payload.get("sub"))
