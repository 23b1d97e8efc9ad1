import logging
from typing import Iterable, Tuple

from app.chat.coordinator import ConversationCoordinator
from app.chat.schemas import Conversation
from app.core.context import UserContext
from app.core.errors import (
    CannotMessageSelf,
    HostCannotLeave,
    PartialFailure,
    ProfileIncomplete,
    RallyError,
)
from app.profiles.repository import ProfileRepository
from app.profiles.schemas import User

from .repository import SessionCancellation, SessionRepository
from .schemas import Session, SessionDraft, SessionUpdateModel

logger = logging.getLogger(__name__)

INTEREST_MESSAGE = "Hi! I'm interested in your {sport} session: {title}"
CANCELLATION_MESSAGE = "The session '{title}' has been cancelled by the host."
REMOVAL_MESSAGE = (
    "Sorry, you have been removed from the session '{title}'. "
    "Please contact the host if you have any questions."
)


class SessionOrchestrator:
    """
    Session flows that span profiles, sessions and conversations.

    Every operation takes the caller's UserContext explicitly. Errors from the
    composed calls are raised as-is; writes that already went through stay.
    """

    def __init__(
        self,
        profiles: ProfileRepository,
        sessions: SessionRepository,
        conversations: ConversationCoordinator,
    ):
        self.profiles = profiles
        self.sessions = sessions
        self.conversations = conversations

    async def current_profile(self, ctx: UserContext) -> User:
        if ctx.profile is None:
            ctx.profile = await self.profiles.get_profile(ctx.user_id)
        return ctx.profile

    async def create_session(self, ctx: UserContext, draft: SessionDraft) -> str:
        if not await self.profiles.is_profile_complete(ctx.user_id):
            raise ProfileIncomplete()

        session_id = await self.sessions.create_session(ctx.user_id, draft)
        ctx.profile = None
        return session_id

    async def update_session(
        self, ctx: UserContext, session_id: str, update: SessionUpdateModel
    ) -> Session:
        return await self.sessions.update_session_details(session_id, ctx.user_id, update)

    async def toggle_participation(self, ctx: UserContext, session_id: str) -> bool:
        """Join when outside the session, leave when inside. Returns the new membership."""
        session = await self.sessions.get_session(session_id)

        if session.is_member(ctx.user_id):
            if ctx.user_id == session.host_id:
                raise HostCannotLeave()
            await self.sessions.leave_session(session_id, ctx.user_id)
            is_member = False
        else:
            await self.sessions.join_session(session_id, ctx.user_id)
            is_member = True

        ctx.profile = None
        return is_member

    async def message_host(self, ctx: UserContext, session_id: str) -> Tuple[Conversation, bool]:
        session = await self.sessions.get_session(session_id)
        if ctx.user_id == session.host_id:
            raise CannotMessageSelf("You're hosting this session.")

        content = INTEREST_MESSAGE.format(sport=session.sport.value, title=session.title)
        return await self.conversations.find_or_create_conversation(
            ctx.user_id, session.host_id, content
        )

    async def remove_participant(
        self, ctx: UserContext, session_id: str, participant_id: str
    ) -> Session:
        session = await self.sessions.remove_participant(session_id, ctx.user_id, participant_id)

        try:
            await self.conversations.deliver(
                ctx.user_id, participant_id, REMOVAL_MESSAGE.format(title=session.title)
            )
        except RallyError as e:
            raise PartialFailure(
                "remove_participant",
                ["remove_participant", "forget_history"],
                "notify_participant",
                ["notify_participant"],
                e,
            ) from e

        return session

    async def cancel_session(
        self, ctx: UserContext, session_id: str, skip: Iterable[str] = ()
    ) -> SessionCancellation:
        """
        Host cancels a session. Every other participant gets a cancellation
        message before any reference is scrubbed. A PartialFailure lists the
        finished steps, one ``notify:{uid}`` per participant already messaged;
        pass them back as ``skip`` to finish the job.
        """

        async def notify(session: Session, user_id: str):
            # Both names come through the profile name cache
            content = CANCELLATION_MESSAGE.format(title=session.title)
            await self.conversations.deliver(session.host_id, user_id, content)

        result = await self.sessions.delete_session(session_id, ctx.user_id, notify, skip=skip)
        ctx.profile = None
        return result
