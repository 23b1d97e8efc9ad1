import os
import logging
from dotenv import load_dotenv

from fastapi.responses import JSONResponse
from fastapi import APIRouter, status, HTTPException, Request, Response, Depends

from app.core.context import UserContext
from app.core.errors import RallyError
from app.core.services import Services
from app.core.dependencies import get_services, get_user_context, http_error
from app.utils.env_helper import env_bool, env_none_or_str
from .schemas import (
    UserRegistrationModel,
    UserRegistrationResponseModel,
    UserLoginModel,
    UserLoginResponseModel,
    AccessTokenResponseModel,
    MeResponseModel,
)


load_dotenv()
logger = logging.getLogger(__name__)
router = APIRouter()

COOKIE_NAME = "refresh_token"


def set_refresh_cookie(response: Response, refresh_token: str):
    response.set_cookie(
        key=COOKIE_NAME,
        value=refresh_token,
        httponly=env_bool("HTTPONLY", default=True),
        secure=env_bool("SECURE", default=False),
        samesite=os.getenv("SAMESITE", "Lax"),
        domain=env_none_or_str("COOKIE_DOMAIN", None),
        max_age=60 * 60 * 24 * 7,  # 7 days
        path="/auth/access",
    )


def require_identity(services: Services):
    if services.identity is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication is not configured for this server.",
        )
    return services.identity


@router.post("/register", response_model=UserRegistrationResponseModel, status_code=201)
async def register_user(
    data: UserRegistrationModel, services: Services = Depends(get_services)
):
    """
    Register a new user.

    Creates the auth principal, then writes a stub profile (empty bio, no
    sports, beginner, default location). The profile is incomplete until the
    setup flow (`/profiles/me/setup`) runs.

    **Input Fields**
    - **email**: A valid user email. Must not already exist.
    - **full_name**: The name shown to other players.
    - **password**: Minimum 6 characters.

    **Errors**
    - 401: Email already registered or rejected by the auth service
    - 503: Auth not configured
    """
    identity = require_identity(services)

    try:
        user_id = await identity.sign_up(
            data.email, data.password.get_secret_value(), data.full_name
        )
    except RallyError as e:
        raise http_error(e)

    return {
        "id": user_id,
        "email": data.email,
        "full_name": data.full_name,
        "profile_complete": False,
    }


@router.post("/login", response_model=UserLoginResponseModel, status_code=200)
async def login_user(
    user_data: UserLoginModel,
    response: Response,
    services: Services = Depends(get_services),
):
    """
    Authenticate a user with email and password.

    Returns a short-lived access token and whether the profile is complete, so
    the client knows whether to show the setup flow. The refresh token is set
    in an HttpOnly cookie.

    **Errors**
    - 401: Wrong password, unknown account, invalid email or too many attempts
    - 404: Signed in but no profile document exists
    """
    identity = require_identity(services)

    try:
        session = await identity.sign_in(
            user_data.email, user_data.password.get_secret_value()
        )
        profile_complete = await services.profiles.is_profile_complete(session["user_id"])
    except RallyError as e:
        raise http_error(e)

    set_refresh_cookie(response, session["refresh_token"])

    return {
        "access_token": session["access_token"],
        "expires_in": session["expires_in"],
        "user_id": session["user_id"],
        "email": session["email"],
        "profile_complete": profile_complete,
    }


@router.get("/access", response_model=AccessTokenResponseModel, status_code=200)
async def get_new_access(
    request: Request, response: Response, services: Services = Depends(get_services)
):
    """
    Issue a new access token using the refresh token stored in an HttpOnly cookie.

    **Errors**
    - 401: Missing, expired, revoked, or invalid refresh token
    """
    identity = require_identity(services)

    refresh_token = request.cookies.get(COOKIE_NAME)

    if not refresh_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No refresh token provided.",
        )

    try:
        session = await identity.refresh(refresh_token)
    except RallyError:
        response.delete_cookie(
            key=COOKIE_NAME,
            domain=env_none_or_str("COOKIE_DOMAIN", None),
            path="/auth/access",
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh token invalid or expired. Please log in again.",
        )

    set_refresh_cookie(response, session["refresh_token"])
    return {"access_token": session["access_token"]}


@router.get("/me", response_model=MeResponseModel, status_code=200)
async def get_me(
    ctx: UserContext = Depends(get_user_context),
    services: Services = Depends(get_services),
):
    """
    Get the authenticated user's profile with their hosted and joined sessions.

    **Errors**
    - 401: Invalid or expired token
    - 404: Profile not found
    - 422: Profile document is missing required fields
    """
    try:
        profile = await services.orchestrator.current_profile(ctx)
        hosted, joined = await services.sessions.sessions_for_user(ctx.user_id)
    except RallyError as e:
        raise http_error(e)

    return {
        "profile": profile,
        "profile_complete": profile.is_complete,
        "hosted_sessions": hosted,
        "joined_sessions": joined,
    }


@router.post("/logout")
async def logout(services: Services = Depends(get_services)):
    """
    Logs out the user by clearing the refresh_token cookie. Access tokens can't
    be revoked early, so they stay valid until they expire.
    """
    if services.identity is not None:
        await services.identity.sign_out()

    response = JSONResponse({"logged_out": True})

    response.delete_cookie(
        key=COOKIE_NAME,
        path="/auth/access",  # must match set_cookie()
        domain=env_none_or_str("COOKIE_DOMAIN", None),
    )

    return response
