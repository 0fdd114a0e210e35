"""
YouTube search proxy.

Stateless pass-through to the YouTube Data API ``search`` endpoint. Results
are narrowed to videos and playlists and reshaped into the flat items the
controller UI renders.
"""
import html
from typing import Optional

import httpx

from karaoke.config import Settings
from karaoke.exceptions import ExternalServiceException
from karaoke.schemas.search import SearchItem, SearchResponse
from karaoke.utils.logging_config import search_logger

VIDEO_KIND = "youtube#video"
PLAYLIST_KIND = "youtube#playlist"


class YouTubeSearchService:
    def __init__(
        self,
        api_key: str,
        url: str,
        max_results: int = 10,
        timeout: float = 8.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.url = url
        self.max_results = max_results
        self.timeout = timeout
        # Tests inject httpx.MockTransport here
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "YouTubeSearchService":
        return cls(
            api_key=settings.YOUTUBE_API_KEY,
            url=settings.YOUTUBE_API_URL,
            max_results=settings.SEARCH_MAX_RESULTS,
            timeout=settings.SEARCH_TIMEOUT_SECONDS,
        )

    async def search(self, query: str, page_token: Optional[str] = None) -> SearchResponse:
        if not self.api_key:
            search_logger.error("YouTube API key not configured")
            raise ExternalServiceException("YouTube", "Search is not configured on this server", status_code=503)

        params = {
            "part": "snippet",
            "q": query,
            "type": "video,playlist",
            "key": self.api_key,
            "maxResults": self.max_results,
            "safeSearch": "none",
        }
        if page_token:
            params["pageToken"] = page_token

        search_logger.info("Searching YouTube", extra={"query": query, "page_token": page_token})
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(self.url, params=params)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            search_logger.warning(
                "YouTube search rejected",
                extra={"status": e.response.status_code, "query": query},
            )
            raise ExternalServiceException("YouTube", "Error searching YouTube videos")
        except (httpx.HTTPError, ValueError) as e:
            search_logger.warning(
                "YouTube search failed",
                extra={"error": str(e), "error_type": type(e).__name__, "query": query},
            )
            raise ExternalServiceException("YouTube", "Error searching YouTube videos")

        items = [item for item in map(self._normalize, data.get("items", [])) if item is not None]
        search_logger.info("YouTube search finished", extra={"query": query, "results": len(items)})
        return SearchResponse(
            items=items,
            next_page_token=data.get("nextPageToken"),
            prev_page_token=data.get("prevPageToken"),
        )

    @staticmethod
    def _normalize(raw: dict) -> Optional[SearchItem]:
        ident = raw.get("id") or {}
        kind = ident.get("kind")
        if kind == VIDEO_KIND:
            item_id = ident.get("videoId")
        elif kind == PLAYLIST_KIND:
            item_id = ident.get("playlistId")
        else:
            return None
        if not item_id:
            return None

        snippet = raw.get("snippet") or {}
        thumbnails = snippet.get("thumbnails") or {}
        thumb = thumbnails.get("medium") or thumbnails.get("default") or {}
        # The API returns HTML-escaped titles
        return SearchItem(
            id=item_id,
            title=html.unescape(snippet.get("title", "")),
            channel_title=html.unescape(snippet.get("channelTitle", "")),
            is_playlist=kind == PLAYLIST_KIND,
            thumbnail=thumb.get("url"),
        )
