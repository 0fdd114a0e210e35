from typing import Optional

from karaoke.schemas.room import CamelModel


class SearchItem(CamelModel):
    id: str
    title: str
    channel_title: str = ""
    is_playlist: bool = False
    thumbnail: Optional[str] = None


class SearchResponse(CamelModel):
    items: list[SearchItem]
    next_page_token: Optional[str] = None
    prev_page_token: Optional[str] = None
