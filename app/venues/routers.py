import logging

from fastapi import APIRouter, Depends, Query

from app.core.context import UserContext
from app.core.errors import RallyError
from app.core.services import Services
from app.core.dependencies import get_services, get_user_context, http_error
from app.models.common import Sport

from .schemas import VenueSearchResponseModel
from .service import DEFAULT_RADIUS

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/search", response_model=VenueSearchResponseModel, status_code=200)
async def search_venues(
    lat: float = Query(ge=-90, le=90),
    lng: float = Query(ge=-180, le=180),
    sport: Sport = Sport.pickleball,
    radius: int = Query(default=DEFAULT_RADIUS, gt=0, le=100000),
    ctx: UserContext = Depends(get_user_context),
    services: Services = Depends(get_services),
):
    """
    Venues near a point for a sport. A result can be passed as `venue` when
    creating a session.

    **Errors**
    - 502: The places API failed or answered with something unreadable
    """
    try:
        venues = await services.venues.search(lat, lng, sport.value, radius=radius)
    except RallyError as e:
        raise http_error(e)

    return {"venues": venues}
