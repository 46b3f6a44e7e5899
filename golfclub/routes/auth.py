from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import RedirectResponse
from loguru import logger
from pydantic import BaseModel

from .. import oauth
from ..config import get_client_url
from ..services import users as user_service
from ..services.auth import require_auth, start_session, end_session
from ..services.exceptions import ServiceError

router = APIRouter(prefix="/auth", tags=["auth"])

OAUTH_STATE_KEY = "oauth_state"


class RegisterRequest(BaseModel):
    email: str
    password: str
    name: str


class LoginRequest(BaseModel):
    email: str
    password: str


@router.post("/register", status_code=201)
def register_api(data: RegisterRequest, request: Request):
    uid = user_service.create_user(data.email, data.name, data.password)
    token, user = user_service.login(data.email, data.password)
    start_session(request, uid)
    return {"token": token, "user": user_service.public_profile(user)}


@router.post("/login")
def login_api(data: LoginRequest, request: Request):
    token, user = user_service.login(data.email, data.password)
    start_session(request, user.user_id)
    return {"token": token, "user": user_service.public_profile(user)}


@router.post("/logout")
def logout_api(request: Request):
    end_session(request)
    return {"message": "Logged out successfully"}


@router.get("/me")
def me_api(request: Request):
    uid = require_auth(request=request)
    return user_service.user_info(uid)


@router.get("/providers")
def providers_api():
    return {"providers": oauth.get_available_providers()}


def _begin(provider: str, request: Request):
    if not oauth.is_configured(provider):
        raise HTTPException(404, "Not Found")
    state = oauth.new_state()
    request.session[OAUTH_STATE_KEY] = {"provider": provider, "state": state}
    return RedirectResponse(oauth.authorization_url(provider, state), status_code=302)


async def _complete(provider: str, request: Request, code: str | None, state: str | None):
    if not oauth.is_configured(provider):
        raise HTTPException(404, "Not Found")
    failure = RedirectResponse(f"{get_client_url().rstrip('/')}/login", status_code=302)
    expected = request.session.pop(OAUTH_STATE_KEY, None)
    if not code or not expected or expected != {"provider": provider, "state": state}:
        logger.warning("Rejected {} callback with missing or mismatched state", provider)
        return failure
    try:
        access_token = await oauth.exchange_code(provider, code)
        profile = await oauth.fetch_profile(provider, access_token)
        token, user, _ = user_service.oauth_login(provider, profile)
    except (oauth.OAuthError, ServiceError) as e:
        logger.warning("{} login failed: {}", provider, e)
        return failure
    start_session(request, user.user_id)
    return RedirectResponse(f"{get_client_url()}?token={token}", status_code=302)


@router.get("/google")
def google_login(request: Request):
    return _begin("google", request)


@router.get("/google/callback")
async def google_callback(request: Request, code: str | None = None, state: str | None = None):
    return await _complete("google", request, code, state)


@router.get("/facebook")
def facebook_login(request: Request):
    return _begin("facebook", request)


@router.get("/facebook/callback")
async def facebook_callback(request: Request, code: str | None = None, state: str | None = None):
    return await _complete("facebook", request, code, state)
