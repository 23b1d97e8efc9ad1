import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.chat.schemas import CreateDirectConversationResponseModel
from app.core.context import UserContext
from app.core.errors import RallyError
from app.core.services import Services
from app.core.dependencies import get_services, get_user_context, http_error
from app.models.common import Sport

from .repository import is_cancel_step
from .schemas import (
    CancelSessionResponseModel,
    CreateSessionResponseModel,
    ParticipationResponseModel,
    Session,
    SessionDraft,
    SessionListResponseModel,
    SessionUpdateModel,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=SessionListResponseModel, status_code=200)
async def list_sessions(
    sport: Optional[Sport] = None,
    ctx: UserContext = Depends(get_user_context),
    services: Services = Depends(get_services),
):
    """
    List every session, soonest first, optionally for one sport.

    Sessions whose stored data can't be read are left out of the list.
    """
    try:
        sessions = await services.sessions.list_sessions(sport)
    except RallyError as e:
        raise http_error(e)

    return {"sessions": sessions}


@router.post("", response_model=CreateSessionResponseModel, status_code=201)
async def create_session(
    data: SessionDraft,
    ctx: UserContext = Depends(get_user_context),
    services: Services = Depends(get_services),
):
    """
    Host a new session. The host is its first participant.

    **Input**
    - `title`, `sport`, `date_time`, `max_participants` (2-30)
    - either `location` + `address`, or a `venue` picked from `/venues/search`

    **Errors**
    - 403: Profile not complete
    - 500: Session saved but the host's profile was not updated (partial)
    """
    try:
        session_id = await services.orchestrator.create_session(ctx, data)
    except RallyError as e:
        raise http_error(e)

    return {"session_id": session_id}


@router.get("/{session_id}", response_model=Session, status_code=200)
async def get_session(
    session_id: str,
    ctx: UserContext = Depends(get_user_context),
    services: Services = Depends(get_services),
):
    try:
        return await services.sessions.get_session(session_id)
    except RallyError as e:
        raise http_error(e)


@router.patch("/{session_id}", response_model=Session, status_code=200)
async def update_session(
    session_id: str,
    data: SessionUpdateModel,
    ctx: UserContext = Depends(get_user_context),
    services: Services = Depends(get_services),
):
    """
    Host edits title, description or capacity. Capacity can't drop below the
    number of people already in.

    **Errors**
    - 403: Caller is not the host
    - 400: Empty title or capacity out of range
    """
    try:
        return await services.orchestrator.update_session(ctx, session_id, data)
    except RallyError as e:
        raise http_error(e)


@router.post(
    "/{session_id}/participation",
    response_model=ParticipationResponseModel,
    status_code=200,
)
async def toggle_participation(
    session_id: str,
    ctx: UserContext = Depends(get_user_context),
    services: Services = Depends(get_services),
):
    """
    Join the session if the caller is not in it, leave it otherwise.

    **Errors**
    - 403: The host tried to leave
    - 409: Session is full
    """
    try:
        is_participant = await services.orchestrator.toggle_participation(ctx, session_id)
    except RallyError as e:
        raise http_error(e)

    return {"session_id": session_id, "is_participant": is_participant}


@router.post(
    "/{session_id}/message-host",
    response_model=CreateDirectConversationResponseModel,
    status_code=200,
)
async def message_host(
    session_id: str,
    ctx: UserContext = Depends(get_user_context),
    services: Services = Depends(get_services),
):
    """
    Open the conversation with the session's host, starting it with an
    "I'm interested" message when there is none yet.

    **Errors**
    - 403: The caller is the host
    """
    try:
        conversation, created = await services.orchestrator.message_host(ctx, session_id)
    except RallyError as e:
        raise http_error(e)

    return {
        "conversation": conversation,
        "messages": conversation.messages,
        "is_new": created,
    }


@router.delete(
    "/{session_id}/participants/{participant_id}",
    response_model=Session,
    status_code=200,
)
async def remove_participant(
    session_id: str,
    participant_id: str,
    ctx: UserContext = Depends(get_user_context),
    services: Services = Depends(get_services),
):
    """Host removes a player. The player gets a message saying so."""
    try:
        return await services.orchestrator.remove_participant(ctx, session_id, participant_id)
    except RallyError as e:
        raise http_error(e)


@router.delete("/{session_id}", response_model=CancelSessionResponseModel, status_code=200)
async def cancel_session(
    session_id: str,
    skip: List[str] = Query(default=[]),
    ctx: UserContext = Depends(get_user_context),
    services: Services = Depends(get_services),
):
    """
    Host cancels the session.

    Every other participant is messaged, the session is removed from every
    profile, then deleted. On a partial failure the response lists the
    completed steps; send them back as `skip` to finish.

    **Errors**
    - 400: Unknown step in `skip`
    - 403: Caller is not the host
    - 500: Partial failure (body lists completed and remaining steps)
    """
    unknown = [step for step in skip if not is_cancel_step(step)]
    if unknown:
        raise HTTPException(status_code=400, detail=f"Unknown steps: {unknown}")

    try:
        result = await services.orchestrator.cancel_session(ctx, session_id, skip=skip)
    except RallyError as e:
        raise http_error(e)

    return {
        "session_id": result.session_id,
        "already_deleted": result.already_deleted,
        "notified": result.notified,
        "completed_steps": result.completed_steps,
    }
