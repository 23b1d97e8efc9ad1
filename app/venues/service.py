import os
import logging
from typing import List, Optional

import httpx
from dotenv import load_dotenv

from app.core.errors import VenueLookupError
from app.models.common import Location

from .schemas import Venue

load_dotenv()
logger = logging.getLogger(__name__)

FOURSQUARE_SEARCH_URL = "https://api.foursquare.com/v3/places/search"
DEFAULT_RADIUS = 10000


def parse_venue(result: dict) -> Optional[Venue]:
    venue_id = result.get("fsq_id")
    name = result.get("name")
    if not isinstance(venue_id, str) or not isinstance(name, str):
        return None

    category = "Sports Venue"
    categories = result.get("categories") or []
    if categories and isinstance(categories[0], dict) and isinstance(categories[0].get("name"), str):
        category = categories[0]["name"]

    address = (result.get("location") or {}).get("formatted_address") or "No address available"

    distance = result.get("distance")
    if not isinstance(distance, int):
        distance = 0

    main = (result.get("geocodes") or {}).get("main") or {}
    lat, lng = main.get("latitude"), main.get("longitude")
    if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
        lat, lng = 0.0, 0.0

    return Venue(
        id=venue_id,
        name=name,
        category=category,
        address=address,
        distance=distance,
        coordinate=Location(lat=lat, lng=lng),
    )


class VenueService:
    """Nearby venue search against the Foursquare places API."""

    def __init__(self, api_key: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
        self.api_key = api_key if api_key is not None else os.getenv("FOURSQUARE_API_KEY", "")
        self.client = client

    async def search(
        self,
        lat: float,
        lng: float,
        category_hint: str,
        radius: int = DEFAULT_RADIUS,
    ) -> List[Venue]:
        params = {"query": category_hint, "ll": f"{lat},{lng}", "radius": radius}
        headers = {"Accept": "application/json", "Authorization": self.api_key}

        try:
            if self.client is not None:
                response = await self.client.get(FOURSQUARE_SEARCH_URL, params=params, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=10.0) as client:
                    response = await client.get(FOURSQUARE_SEARCH_URL, params=params, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"venue_search_failed error={e}")
            raise VenueLookupError() from e

        if not response.is_success:
            logger.error(f"venue_search_bad_status status={response.status_code}")
            raise VenueLookupError(f"Venue search returned {response.status_code}.")

        try:
            results = response.json()["results"]
        except (ValueError, KeyError, TypeError) as e:
            raise VenueLookupError("Venue search returned an unexpected body.") from e

        if not isinstance(results, list):
            raise VenueLookupError("Venue search returned an unexpected body.")

        venues = [venue for venue in map(parse_venue, results) if venue is not None]
        logger.info(f"venue_search_done query={category_hint} results={len(venues)}")
        return venues
