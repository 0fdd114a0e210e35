from karaoke.schemas.room import RoomResponse, AdminRoomResponse, RoomCreateResponse, RoomQRResponse
from karaoke.schemas.search import SearchItem, SearchResponse

__all__ = [
    "RoomResponse", "AdminRoomResponse", "RoomCreateResponse", "RoomQRResponse",
    "SearchItem", "SearchResponse",
]
