from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from app.models.common import DocumentModel, Location, SkillLevel, Sport


DEFAULT_LOCATION = Location(lat=33.4255, lng=-111.9400)


"""
Stored profile
"""


class User(DocumentModel):
    full_name: str
    email: str
    bio: str = ""
    preferred_sports: List[Sport]
    skill_level: SkillLevel
    location: Location
    location_name: str = ""
    session_history: List[str] = []
    created_sessions: List[str] = []
    availability: str = ""
    profile_complete: bool = False

    @property
    def first_name(self) -> str:
        return self.full_name.split(" ")[0] if self.full_name else "there"

    @property
    def is_complete(self) -> bool:
        return bool(self.bio.strip()) and bool(self.preferred_sports)


"""
profiles/setup
"""


class ProfileSetupModel(BaseModel):
    bio: str
    preferred_sports: List[Sport]
    skill_level: SkillLevel = SkillLevel.beginner
    location: Location
    location_name: str = ""

    @field_validator("bio")
    @classmethod
    def validate_bio(cls, bio: str) -> str:
        if not bio.strip():
            raise ValueError("Tell other players a little about yourself.")
        return bio.strip()

    @field_validator("preferred_sports")
    @classmethod
    def validate_sports(cls, sports: List[Sport]) -> List[Sport]:
        if not sports:
            raise ValueError("Pick at least one sport.")
        # keep first occurrence order
        return list(dict.fromkeys(sports))


"""
profiles/me (edit)
"""


class ProfileUpdateModel(BaseModel):
    full_name: Optional[str] = Field(default=None, min_length=1)
    bio: Optional[str] = None
    preferred_sports: Optional[List[Sport]] = None
    skill_level: Optional[SkillLevel] = None


class LocationUpdateModel(BaseModel):
    location: Location
    location_name: str = ""


"""
responses
"""


class ProfileResponseModel(BaseModel):
    profile: User
    is_complete: bool


class ProfileCompletenessResponseModel(BaseModel):
    user_id: str
    is_complete: bool
