from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.common import DocumentModel, Location, SkillLevel, Sport
from app.venues.schemas import Venue


MIN_PARTICIPANTS = 2
MAX_PARTICIPANTS = 30


def as_utc(value: datetime) -> datetime:
    # naive times are read as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


"""
Stored session
"""


class Session(DocumentModel):
    host_id: str
    title: str
    sport: Sport
    date_time: datetime
    location: Location
    address: str
    max_participants: int
    current_participants: List[str]
    description: str = ""
    is_private: bool = False
    skill_level: SkillLevel
    venue_name: Optional[str] = None
    venue_category: Optional[str] = None

    @field_validator("date_time")
    @classmethod
    def date_time_as_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @field_validator("venue_name", "venue_category")
    @classmethod
    def empty_as_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None

    @property
    def participant_count(self) -> int:
        return len(self.current_participants)

    @property
    def is_full(self) -> bool:
        return self.participant_count >= self.max_participants

    @property
    def spots_left(self) -> int:
        return max(self.max_participants - self.participant_count, 0)

    def is_member(self, user_id: str) -> bool:
        return user_id in self.current_participants


"""
sessions (create)
"""


class SessionDraft(BaseModel):
    title: str
    sport: Sport
    date_time: datetime
    location: Optional[Location] = None
    address: str = ""
    max_participants: int = Field(default=10, ge=MIN_PARTICIPANTS, le=MAX_PARTICIPANTS)
    description: str = ""
    is_private: bool = False
    skill_level: SkillLevel = SkillLevel.beginner
    venue: Optional[Venue] = None

    @field_validator("date_time")
    @classmethod
    def date_time_as_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @field_validator("title")
    @classmethod
    def validate_title(cls, title: str) -> str:
        if not title.strip():
            raise ValueError("Give your session a title.")
        return title.strip()

    @model_validator(mode="after")
    def require_place(self):
        if self.venue is None and self.location is None:
            raise ValueError("Pick a venue or a location for the session.")
        return self


"""
sessions/{id} (host edit)
"""


class SessionUpdateModel(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    max_participants: Optional[int] = None


"""
responses
"""


class SessionListResponseModel(BaseModel):
    sessions: List[Session]


class CreateSessionResponseModel(BaseModel):
    session_id: str


class ParticipationResponseModel(BaseModel):
    session_id: str
    is_participant: bool


class UserSessionsResponseModel(BaseModel):
    hosted: List[Session]
    joined: List[Session]


class CancelSessionResponseModel(BaseModel):
    session_id: str
    already_deleted: bool
    notified: List[str]
    completed_steps: List[str]
