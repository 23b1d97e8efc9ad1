import logging

from fastapi import APIRouter, Depends

from app.core.context import UserContext
from app.core.errors import RallyError
from app.core.services import Services
from app.core.dependencies import get_services, get_user_context, http_error
from app.sessions.schemas import UserSessionsResponseModel

from .schemas import (
    LocationUpdateModel,
    ProfileCompletenessResponseModel,
    ProfileResponseModel,
    ProfileSetupModel,
    ProfileUpdateModel,
)

logger = logging.getLogger(__name__)
router = APIRouter()


async def profile_response(services: Services, user_id: str):
    profile = await services.profiles.get_profile(user_id)
    return {"profile": profile, "is_complete": profile.is_complete}


@router.get("/me/complete", response_model=ProfileCompletenessResponseModel, status_code=200)
async def get_profile_completeness(
    ctx: UserContext = Depends(get_user_context),
    services: Services = Depends(get_services),
):
    """
    Whether the caller has a bio and at least one sport. Clients gate the rest
    of the app on this.
    """
    try:
        is_complete = await services.profiles.is_profile_complete(ctx.user_id)
    except RallyError as e:
        raise http_error(e)

    return {"user_id": ctx.user_id, "is_complete": is_complete}


@router.put("/me/setup", response_model=ProfileResponseModel, status_code=200)
async def setup_profile(
    data: ProfileSetupModel,
    ctx: UserContext = Depends(get_user_context),
    services: Services = Depends(get_services),
):
    """
    Finish the profile after sign-up: bio, sports, skill level and location.

    **Errors**
    - 404: No profile document for the caller
    - 422: Empty bio or no sports selected
    """
    try:
        await services.profiles.complete_profile(ctx.user_id, data)
        return await profile_response(services, ctx.user_id)
    except RallyError as e:
        raise http_error(e)


@router.patch("/me", response_model=ProfileResponseModel, status_code=200)
async def edit_profile(
    data: ProfileUpdateModel,
    ctx: UserContext = Depends(get_user_context),
    services: Services = Depends(get_services),
):
    """Edit name, bio, sports or skill level. Fields left out are not touched."""
    try:
        await services.profiles.update_profile(ctx.user_id, data)
        return await profile_response(services, ctx.user_id)
    except RallyError as e:
        raise http_error(e)


@router.put("/me/location", response_model=ProfileResponseModel, status_code=200)
async def edit_location(
    data: LocationUpdateModel,
    ctx: UserContext = Depends(get_user_context),
    services: Services = Depends(get_services),
):
    try:
        await services.profiles.update_location(ctx.user_id, data)
        return await profile_response(services, ctx.user_id)
    except RallyError as e:
        raise http_error(e)


@router.get("/{user_id}", response_model=ProfileResponseModel, status_code=200)
async def get_profile(
    user_id: str,
    ctx: UserContext = Depends(get_user_context),
    services: Services = Depends(get_services),
):
    """
    Get any user's profile.

    **Errors**
    - 404: Profile not found
    - 422: Profile document is missing required fields
    """
    try:
        return await profile_response(services, user_id)
    except RallyError as e:
        raise http_error(e)


@router.get("/{user_id}/sessions", response_model=UserSessionsResponseModel, status_code=200)
async def get_user_sessions(
    user_id: str,
    ctx: UserContext = Depends(get_user_context),
    services: Services = Depends(get_services),
):
    """Sessions a user hosts and sessions they joined. Deleted sessions are left out."""
    try:
        hosted, joined = await services.sessions.sessions_for_user(user_id)
    except RallyError as e:
        raise http_error(e)

    return {"hosted": hosted, "joined": joined}
