import uuid
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, List, Optional, Tuple

from app.core.errors import (
    CapacityExceeded,
    HostCannotLeave,
    MalformedData,
    NotFound,
    NotHost,
    PermissionDenied,
    ValidationFailed,
)
from app.core.saga import Saga
from app.core.store import ArrayRemove, ArrayUnion, DocumentStore, Query
from app.models.common import Sport
from app.profiles.repository import ProfileRepository

from .schemas import (
    MAX_PARTICIPANTS,
    MIN_PARTICIPANTS,
    Session,
    SessionDraft,
    SessionUpdateModel,
)

logger = logging.getLogger(__name__)

SESSIONS = "sessions"

NOTIFY_STEP_PREFIX = "notify:"
CANCEL_STEPS = ("scrub_histories", "scrub_created", "delete_session")

def notify_step(user_id: str) -> str:
    return f"{NOTIFY_STEP_PREFIX}{user_id}"

def is_cancel_step(name: str) -> bool:
    return name in CANCEL_STEPS or (
        name.startswith(NOTIFY_STEP_PREFIX) and len(name) > len(NOTIFY_STEP_PREFIX)
    )

@dataclass
class SessionCancellation:
    session_id: str
    already_deleted: bool = False
    notified: List[str] = field(default_factory=list)
    completed_steps: List[str] = field(default_factory=list)

def venue_name_from_address(address: str) -> Optional[str]:
    """``"Kiwanis Park, 6111 S All America Way"`` -> ``"Kiwanis Park"``"""
    components = address.split(", ")
    if len(components) > 1 and components[0].strip():
        return components[0].strip()
    return None

class SessionRepository:
    def __init__(self, store: DocumentStore, profiles: ProfileRepository):
        self.store = store
        self.profiles = profiles

    async def get_session(self, session_id: str) -> Session:
        document = await self.store.get_document(SESSIONS, session_id)
        if document is None:
            raise NotFound(SESSIONS, session_id)
        return Session.from_document(SESSIONS, document)

    async def _find_session(self, session_id: str) -> Optional[Session]:
        try:
            return await self.get_session(session_id)
        except NotFound:
            return None
        except MalformedData as e:
            logger.warning(f"session_skipped_malformed session_id={session_id} reason={e.reason}")
            return None

    async def create_session(self, host_id: str, draft: SessionDraft) -> str:
        """
        Persist a new session with the host as its first participant, then
        record it on the host's profile. The two writes are not atomic: a
        PartialFailure means the session exists but the host's lists lack it.
        """
        session_id = str(uuid.uuid4())
        venue = draft.venue

        if venue is not None:
            location = draft.location or venue.coordinate
            address = draft.address or venue.address
            venue_name, venue_category = venue.name, venue.category
        else:
            location = draft.location
            address = draft.address
            venue_name, venue_category = venue_name_from_address(address), None

        session = Session(
            id=session_id,
            host_id=host_id,
            title=draft.title,
            sport=draft.sport,
            date_time=draft.date_time,
            location=location,
            address=address,
            max_participants=draft.max_participants,
            current_participants=[host_id],
            description=draft.description,
            is_private=draft.is_private,
            skill_level=draft.skill_level,
            venue_name=venue_name,
            venue_category=venue_category,
        )

        async def write_session():
            await self.store.set_document(SESSIONS, session_id, session.to_document())

        async def record_on_host():
            await self.profiles.record_session(host_id, session_id, hosted=True)

        await (
            Saga("create_session")
            .step("write_session", write_session)
            .step("record_on_host", record_on_host)
            .run()
        )

        logger.info(f"session_created session_id={session_id} host_id={host_id} sport={draft.sport.value}")
        return session_id

    async def list_sessions(self, sport: Optional[Sport] = None) -> List[Session]:
        """
        Read every session, optionally keeping one sport. Documents that fail
        to parse are skipped rather than failing the listing.
        """
        sessions = []
        for document in await self.store.query(Query(SESSIONS, order_by="date_time")):
            try:
                session = Session.from_document(SESSIONS, document)
            except MalformedData as e:
                logger.warning(f"session_skipped_malformed session_id={e.doc_id} reason={e.reason}")
                continue

            if sport is None or session.sport == sport:
                sessions.append(session)

        return sorted(sessions, key=lambda s: s.date_time)

    async def get_sessions(self, session_ids: Iterable[str]) -> List[Session]:
        """Load many sessions concurrently, dropping ids that no longer resolve."""
        found = await asyncio.gather(*(self._find_session(sid) for sid in session_ids))
        return [session for session in found if session is not None]

    async def sessions_for_user(self, user_id: str) -> Tuple[List[Session], List[Session]]:
        profile = await self.profiles.get_profile(user_id)
        hosted_ids = list(profile.created_sessions)
        joined_ids = [sid for sid in profile.session_history if sid not in hosted_ids]

        hosted, joined = await asyncio.gather(
            self.get_sessions(hosted_ids), self.get_sessions(joined_ids)
        )
        return hosted, joined

    async def join_session(self, session_id: str, user_id: str) -> Session:
        """
        Add a user to a session and the session to the user's history.

        Raises CapacityExceeded when the session is full. Calling it again for
        a user who is already in the session only repairs their history.
        """
        session = await self.get_session(session_id)
        already_member = session.is_member(user_id)

        if not already_member and session.is_full:
            raise CapacityExceeded(
                f"{session.title} already has {session.participant_count} of "
                f"{session.max_participants} players."
            )

        async def add_participant():
            await self.store.update_document(
                SESSIONS, session_id, {"current_participants": ArrayUnion(user_id)}
            )

        async def record_history():
            await self.profiles.record_session(user_id, session_id)

        await (
            Saga("join_session")
            .step("add_participant", add_participant)
            .step("record_history", record_history)
            .run(skip=["add_participant"] if already_member else [])
        )

        logger.info(f"session_joined session_id={session_id} user_id={user_id}")
        if not already_member:
            session.current_participants.append(user_id)
        return session

    async def leave_session(self, session_id: str, user_id: str) -> Session:
        session = await self.get_session(session_id)
        if user_id == session.host_id:
            raise HostCannotLeave()

        await self._drop_participant("leave_session", session_id, user_id)

        logger.info(f"session_left session_id={session_id} user_id={user_id}")
        session.current_participants = [p for p in session.current_participants if p != user_id]
        return session

    async def remove_participant(self, session_id: str, host_id: str, participant_id: str) -> Session:
        session = await self.get_session(session_id)
        if host_id != session.host_id:
            raise NotHost("Only the host can remove participants.")
        if participant_id == session.host_id:
            raise PermissionDenied("The host can't be removed from their own session.")
        if not session.is_member(participant_id):
            raise ValidationFailed("That player isn't part of this session.")

        await self._drop_participant("remove_participant", session_id, participant_id)

        logger.info(f"session_participant_removed session_id={session_id} participant_id={participant_id}")
        session.current_participants = [p for p in session.current_participants if p != participant_id]
        return session

    async def _drop_participant(self, operation: str, session_id: str, user_id: str):
        async def remove_from_session():
            await self.store.update_document(
                SESSIONS, session_id, {"current_participants": ArrayRemove(user_id)}
            )

        async def forget_history():
            await self.profiles.forget_session(user_id, session_id)

        await (
            Saga(operation)
            .step("remove_participant", remove_from_session)
            .step("forget_history", forget_history)
            .run()
        )

    async def update_session_details(
        self, session_id: str, host_id: str, update: SessionUpdateModel
    ) -> Session:
        session = await self.get_session(session_id)
        if host_id != session.host_id:
            raise NotHost()

        fields = update.model_dump(exclude_unset=True, exclude_none=True)

        if "title" in fields:
            fields["title"] = fields["title"].strip()
            if not fields["title"]:
                raise ValidationFailed("The session title can't be empty.")

        if "max_participants" in fields:
            floor = max(session.participant_count, MIN_PARTICIPANTS)
            if not floor <= fields["max_participants"] <= MAX_PARTICIPANTS:
                raise ValidationFailed(
                    f"Max participants must be between {floor} and {MAX_PARTICIPANTS}."
                )

        if not fields:
            return session

        await self.store.update_document(SESSIONS, session_id, fields)

        logger.info(f"session_updated session_id={session_id} fields={sorted(fields)}")
        return session.model_copy(update=fields)

    async def delete_session(
        self,
        session_id: str,
        host_id: str,
        notify: Callable[[Session, str], Awaitable[object]],
        skip: Iterable[str] = (),
    ) -> SessionCancellation:
        """
        Cancel a session: notify, scrub every reference, then delete it.

        Every non-host participant gets their own ``notify:{uid}`` step; those
        run concurrently and are tracked one by one, so a retry skipping them
        never messages anyone twice. Steps are independent writes with no
        rollback, and each one is safe to repeat. When the document is already
        gone only the caller's own references are scrubbed.
        """
        document = await self.store.get_document(SESSIONS, session_id)

        if document is None:
            await self.profiles.forget_session(host_id, session_id, history=True, hosted=True)
            logger.info(f"session_already_deleted session_id={session_id}")
            return SessionCancellation(session_id=session_id, already_deleted=True)

        session = Session.from_document(SESSIONS, document)
        if host_id != session.host_id:
            raise NotHost("Only the host can cancel this session.")

        result = SessionCancellation(session_id=session_id)
        recipients = [uid for uid in session.current_participants if uid != session.host_id]

        def notify_participant(uid: str):
            async def action():
                await notify(session, uid)
                result.notified.append(uid)

            return action

        async def scrub_histories():
            await asyncio.gather(
                *(
                    self.profiles.forget_session(uid, session_id)
                    for uid in session.current_participants
                )
            )

        async def scrub_created():
            await self.profiles.forget_session(host_id, session_id, history=False, hosted=True)

        async def delete_document():
            await self.store.delete_document(SESSIONS, session_id)

        saga = Saga("cancel_session").parallel(
            (notify_step(uid), notify_participant(uid)) for uid in recipients
        )
        for name, action in zip(CANCEL_STEPS, (scrub_histories, scrub_created, delete_document)):
            saga.step(name, action)

        result.completed_steps = await saga.run(skip=skip)

        logger.info(f"session_cancelled session_id={session_id} notified={len(result.notified)}")
        return result
