from typing import List

from pydantic import BaseModel

from app.models.common import Location


class Venue(BaseModel):
    id: str
    name: str
    category: str = "Sports Venue"
    address: str = "No address available"
    distance: int = 0
    coordinate: Location


class VenueSearchResponseModel(BaseModel):
    venues: List[Venue]
