from karaoke.routers.rooms import router as rooms_router
from karaoke.routers.search import router as search_router
from karaoke.routers.websocket import router as websocket_router

__all__ = ["rooms_router", "search_router", "websocket_router"]
