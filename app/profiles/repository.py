import logging
from typing import Dict, Iterable, Optional

from app.core.context import NameCache
from app.core.errors import NotFound, ValidationFailed
from app.core.store import ArrayRemove, ArrayUnion, DocumentStore
from app.models.common import SkillLevel

from .schemas import (
    DEFAULT_LOCATION,
    LocationUpdateModel,
    ProfileSetupModel,
    ProfileUpdateModel,
    User,
)

logger = logging.getLogger(__name__)

USERS = "users"


class ProfileRepository:
    """CRUD over ``users/{uid}`` documents plus a display-name cache."""

    def __init__(self, store: DocumentStore):
        self.store = store
        self.names = NameCache(self._load_name)

    async def _load_name(self, user_id: str) -> Optional[str]:
        document = await self.store.get_document(USERS, user_id)
        if not document or not isinstance(document.get("full_name"), str):
            return None
        return document["full_name"] or None

    async def get_profile(self, user_id: str) -> User:
        """
        Load a profile.

        Raises NotFound when there is no document and MalformedData when a
        required field (name, email, skill level, sports, location) is missing
        or has the wrong type. An empty bio is not an error here.
        """
        document = await self.store.get_document(USERS, user_id)
        if document is None:
            raise NotFound(USERS, user_id)

        user = User.from_document(USERS, document)
        self.names.prime(user.id, user.full_name)
        return user

    async def is_profile_complete(self, user_id: str) -> bool:
        document = await self.store.get_document(USERS, user_id)
        if document is None:
            raise NotFound(USERS, user_id)

        bio = document.get("bio")
        sports = document.get("preferred_sports")
        return (
            isinstance(bio, str)
            and bool(bio.strip())
            and isinstance(sports, list)
            and bool(sports)
        )

    async def create_stub_profile(self, user_id: str, full_name: str, email: str) -> User:
        if not full_name.strip() or not email.strip():
            raise ValidationFailed("A name and an email are required to sign up.")

        stub = User(
            id=user_id,
            full_name=full_name.strip(),
            email=email.strip(),
            bio="",
            preferred_sports=[],
            skill_level=SkillLevel.beginner,
            location=DEFAULT_LOCATION,
            location_name="",
            session_history=[],
            created_sessions=[],
            availability="",
            profile_complete=False,
        )
        await self.store.set_document(USERS, user_id, stub.to_document(), merge=True)
        self.names.prime(user_id, stub.full_name)

        logger.info(f"profile_stub_created user_id={user_id}")
        return stub

    async def complete_profile(self, user_id: str, setup: ProfileSetupModel):
        fields = setup.model_dump(mode="json")
        fields["profile_complete"] = True
        await self.store.update_document(USERS, user_id, fields)
        logger.info(f"profile_completed user_id={user_id}")

    async def update_profile(self, user_id: str, update: ProfileUpdateModel):
        """Write only the fields that were set; everything else is left alone."""
        fields = update.model_dump(mode="json", exclude_unset=True, exclude_none=True)
        if not fields:
            return

        if "full_name" in fields:
            fields["full_name"] = fields["full_name"].strip()
            if not fields["full_name"]:
                raise ValidationFailed("Your name can't be empty.")

        await self.store.update_document(USERS, user_id, fields)

        if "full_name" in fields:
            self.names.invalidate(user_id)
        logger.info(f"profile_updated user_id={user_id} fields={sorted(fields)}")

    async def update_location(self, user_id: str, update: LocationUpdateModel):
        await self.store.update_document(
            USERS,
            user_id,
            {
                "location": update.location.model_dump(),
                "location_name": update.location_name,
            },
        )
        logger.info(f"profile_location_updated user_id={user_id}")

    async def display_name(self, user_id: str) -> Optional[str]:
        return await self.names.get(user_id)

    async def display_names(self, user_ids: Iterable[str]) -> Dict[str, Optional[str]]:
        return await self.names.get_many(user_ids)

    async def record_session(self, user_id: str, session_id: str, hosted: bool = False):
        fields = {"session_history": ArrayUnion(session_id)}
        if hosted:
            fields["created_sessions"] = ArrayUnion(session_id)
        await self.store.update_document(USERS, user_id, fields)

    async def forget_session(
        self, user_id: str, session_id: str, history: bool = True, hosted: bool = False
    ):
        """Remove a session id from a profile's lists. Safe to repeat."""
        fields = {}
        if history:
            fields["session_history"] = ArrayRemove(session_id)
        if hosted:
            fields["created_sessions"] = ArrayRemove(session_id)

        try:
            await self.store.update_document(USERS, user_id, fields)
        except NotFound:
            logger.warning(f"forget_session_missing_profile user_id={user_id} session_id={session_id}")
