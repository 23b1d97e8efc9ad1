from datetime import datetime, timedelta, timezone
from typing import List, Optional

from app.core.context import UserContext
from app.core.errors import WriteFailure
from app.core.store import InMemoryDocumentStore
from app.models.common import Location, SkillLevel, Sport
from app.profiles.schemas import ProfileSetupModel
from app.sessions.schemas import SessionDraft


class FlakyStore(InMemoryDocumentStore):
    """In-memory store that can be told to reject specific writes."""

    def __init__(self):
        super().__init__()
        self.rules: List[dict] = []
        self.writes: List[tuple] = []

    def fail(self, method: str, collection: str, doc_id: Optional[str] = None, times: Optional[int] = None):
        self.rules.append(
            {"method": method, "collection": collection, "doc_id": doc_id, "remaining": times}
        )

    def heal(self):
        self.rules.clear()

    def _check(self, method: str, collection: str, doc_id: str):
        for rule in self.rules:
            if rule["method"] != method:
                continue
            if rule["collection"] != collection and not collection.startswith(rule["collection"] + "/"):
                continue
            if rule["doc_id"] is not None and rule["doc_id"] != doc_id:
                continue
            if rule["remaining"] is not None:
                if rule["remaining"] <= 0:
                    continue
                rule["remaining"] -= 1
            raise WriteFailure(f"injected {method} failure on {collection}/{doc_id}")

    async def set_document(self, collection, doc_id, fields, merge=False):
        self._check("set", collection, doc_id)
        self.writes.append(("set", collection, doc_id))
        await super().set_document(collection, doc_id, fields, merge)

    async def update_document(self, collection, doc_id, fields):
        self._check("update", collection, doc_id)
        self.writes.append(("update", collection, doc_id))
        await super().update_document(collection, doc_id, fields)

    async def delete_document(self, collection, doc_id):
        self._check("delete", collection, doc_id)
        self.writes.append(("delete", collection, doc_id))
        await super().delete_document(collection, doc_id)


def setup_for(sport: Sport = Sport.pickleball) -> ProfileSetupModel:
    return ProfileSetupModel(
        bio="Weekend player, always up for a game.",
        preferred_sports=[sport],
        skill_level=SkillLevel.intermediate,
        location=Location(lat=33.42, lng=-111.93),
        location_name="Tempe, AZ",
    )


def draft(title: str = "Sunday doubles", max_participants: int = 4, sport: Sport = Sport.pickleball, **extra) -> SessionDraft:
    fields = {
        "title": title,
        "sport": sport,
        "date_time": datetime.now(timezone.utc) + timedelta(days=2),
        "location": Location(lat=33.42, lng=-111.93),
        "address": "Kiwanis Park, 6111 S All America Way, Tempe",
        "max_participants": max_participants,
        "description": "Bring water.",
        "skill_level": SkillLevel.intermediate,
    }
    fields.update(extra)
    return SessionDraft(**fields)


async def add_user(services, user_id: str, name: str, complete: bool = True) -> UserContext:
    await services.profiles.create_stub_profile(user_id, name, f"{user_id}@example.com")
    if complete:
        await services.profiles.complete_profile(user_id, setup_for())
    return UserContext(user_id=user_id)
