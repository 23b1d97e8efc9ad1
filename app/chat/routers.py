import logging

import anyio
from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status

from app.core.context import UserContext
from app.core.errors import RallyError
from app.core.services import Services
from app.core.dependencies import decode_token, get_services, get_user_context, http_error

from .schemas import (
    ConversationDetailResponseModel,
    CreateDirectConversationModel,
    CreateDirectConversationResponseModel,
    GetConversationsResponseModel,
    MarkReadModel,
    MarkReadResponseModel,
    SendMessageModel,
    SendMessageResponseModel,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post(
    "/conversations/direct",
    response_model=CreateDirectConversationResponseModel,
    status_code=200,
)
async def get_or_create_direct_conversation(
    data: CreateDirectConversationModel,
    ctx: UserContext = Depends(get_user_context),
    services: Services = Depends(get_services),
):
    """
    Get or create a direct (1-on-1) conversation with another user.

    If a conversation between the two users already exists it is returned with
    its messages and `content` is not sent. Otherwise a new conversation is
    created with `content` as its first message.

    **Input**
    - `receiver_id`: id of the other user
    - `content`: first message, used only when the conversation is new

    **Errors**
    - 401: Unauthorized
    - 403: Messaging yourself
    - 500: Database error
    """
    try:
        conversation, created = await services.conversations.find_or_create_conversation(
            ctx.user_id, data.receiver_id, data.content
        )
    except RallyError as e:
        raise http_error(e)

    return {
        "conversation": conversation,
        "messages": conversation.messages,
        "is_new": created,
    }


@router.get(
    "/conversations",
    response_model=GetConversationsResponseModel,
    status_code=200,
)
async def get_conversations(
    ctx: UserContext = Depends(get_user_context),
    services: Services = Depends(get_services),
):
    """
    Retrieve all conversations of the authenticated user, most recent first.

    Each conversation carries its participant names and last message, which is
    enough to draw an inbox without loading any messages.
    """
    try:
        conversations = await services.conversations.list_conversations(ctx.user_id)
    except RallyError as e:
        raise http_error(e)

    return {"conversations": conversations}


@router.get(
    "/conversations/{conversation_id}",
    response_model=ConversationDetailResponseModel,
    status_code=200,
)
async def get_conversation(
    conversation_id: str,
    ctx: UserContext = Depends(get_user_context),
    services: Services = Depends(get_services),
):
    """
    Open a conversation: all messages oldest first. Messages sent to the
    caller are marked read.

    **Errors**
    - 403: User is not a member of the conversation
    - 404: Conversation does not exist
    """
    try:
        conversation = await services.conversations.get_conversation(conversation_id, ctx.user_id)
        marked = set(await services.conversations.mark_read(conversation_id, ctx.user_id))
    except RallyError as e:
        raise http_error(e)

    messages = [
        m.model_copy(update={"is_read": True}) if m.id in marked else m
        for m in conversation.messages
    ]
    other_id = conversation.other_participant(ctx.user_id)

    return {
        "conversation": conversation,
        "messages": messages,
        "other_participant_name": conversation.name_of(other_id),
    }


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=SendMessageResponseModel,
    status_code=201,
)
async def send_message(
    conversation_id: str,
    data: SendMessageModel,
    ctx: UserContext = Depends(get_user_context),
    services: Services = Depends(get_services),
):
    """
    Send a message to the other participant of a conversation.

    **Errors**
    - 400: Empty message
    - 403: User is not a participant of the conversation
    - 404: Conversation not found
    - 500: Message stored but the inbox preview was not updated (partial)
    """
    try:
        conversation = await services.conversations.get_conversation(
            conversation_id, ctx.user_id, with_messages=False
        )
        message = await services.conversations.send_message(
            conversation_id,
            ctx.user_id,
            conversation.other_participant(ctx.user_id),
            data.content,
        )
    except RallyError as e:
        raise http_error(e)

    return {"message": message}


@router.post(
    "/conversations/{conversation_id}/read",
    response_model=MarkReadResponseModel,
    status_code=200,
)
async def mark_read(
    conversation_id: str,
    data: MarkReadModel,
    ctx: UserContext = Depends(get_user_context),
    services: Services = Depends(get_services),
):
    """Mark messages sent to the caller as read; all of them when `message_ids` is omitted."""
    try:
        await services.conversations.get_conversation(conversation_id, ctx.user_id, with_messages=False)
        marked = await services.conversations.mark_read(conversation_id, ctx.user_id, data.message_ids)
    except RallyError as e:
        raise http_error(e)

    return {"marked": marked}


@router.websocket("/ws/{conversation_id}")
async def stream_messages(
    websocket: WebSocket,
    conversation_id: str,
    token: str,
    services: Services = Depends(get_services),
):
    """
    Stream the full message list of a conversation every time it changes.

    Authenticate with `?token=<access token>`. The subscription is dropped as
    soon as the client disconnects.
    """
    try:
        user_id = decode_token(token).get("sub")
        await services.conversations.get_conversation(conversation_id, user_id, with_messages=False)
    except (HTTPException, RallyError) as e:
        logger.warning(f"ws_rejected conversation_id={conversation_id} error={e}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()

    async def pump(tg):
        try:
            async with services.conversations.listen_for_messages(conversation_id) as snapshots:
                async for messages in snapshots:
                    await websocket.send_json(
                        {"messages": [m.model_dump(mode="json") for m in messages]}
                    )
        except WebSocketDisconnect:
            pass
        except RallyError as e:
            logger.error(f"ws_stream_failed conversation_id={conversation_id} error={e}")
        tg.cancel_scope.cancel()

    async def drain(tg):
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        tg.cancel_scope.cancel()

    async with anyio.create_task_group() as tg:
        tg.start_soon(pump, tg)
        tg.start_soon(drain, tg)

    logger.info(f"ws_closed conversation_id={conversation_id} user_id={user_id}")
