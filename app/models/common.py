from enum import Enum
from typing import Type, TypeVar

from pydantic import BaseModel, Field, ValidationError

from app.core.errors import MalformedData


class Sport(str, Enum):
    pickleball = "pickleball"
    badminton = "badminton"
    basketball = "basketball"
    soccer = "soccer"
    tennis = "tennis"
    volleyball = "volleyball"


class SkillLevel(str, Enum):
    beginner = "beginner"
    intermediate = "intermediate"
    advanced = "advanced"
    professional = "professional"


class Location(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


DocumentT = TypeVar("DocumentT", bound="DocumentModel")


class DocumentModel(BaseModel):
    """A pydantic model stored as one document of a collection."""

    id: str

    @classmethod
    def from_document(cls: Type[DocumentT], collection: str, document: dict) -> DocumentT:
        try:
            return cls.model_validate(document)
        except ValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            raise MalformedData(collection, str(document.get("id")), f"Bad fields: {fields}")

    def to_document(self, **kwargs) -> dict:
        return self.model_dump(mode="json", **kwargs)
