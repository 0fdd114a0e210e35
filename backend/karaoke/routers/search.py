from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request

from karaoke.config import Settings
from karaoke.exceptions import ForbiddenException, InvalidInputException
from karaoke.routers.deps import get_bearer_token, get_settings_dep, get_store
from karaoke.schemas.search import SearchResponse
from karaoke.services.room_store import RoomStore
from karaoke.services.search_service import YouTubeSearchService
from karaoke.utils.rate_limit import rate_limit

router = APIRouter(prefix="/api", tags=["Search"])


def get_search_service(request: Request) -> YouTubeSearchService:
    return request.app.state.search_service


@router.get("/search", response_model=SearchResponse)
@rate_limit(limit=60, window=60, identifier="search")
async def search(
    request: Request,
    token: Annotated[str, Depends(get_bearer_token)],
    store: Annotated[RoomStore, Depends(get_store)],
    settings: Annotated[Settings, Depends(get_settings_dep)],
    service: Annotated[YouTubeSearchService, Depends(get_search_service)],
    query: str = Query(""),
    page_token: Optional[str] = Query(None, alias="pageToken"),
):
    """
    Search YouTube for videos and playlists.
    Bearer must be a control key or an enabled controller key of a live room.
    - 60 requests / minute
    """
    if not store.is_search_token_valid(token):
        raise ForbiddenException("Search requires a valid controller key")

    query = query.strip()
    if not query or len(query) > settings.MAX_QUERY_LENGTH:
        raise InvalidInputException("query", f"must be 1 to {settings.MAX_QUERY_LENGTH} characters")

    result = await service.search(query, page_token)
    return result.dump()
