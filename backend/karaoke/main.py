from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from karaoke import __version__
from karaoke.config import Settings, get_settings
from karaoke.error_handlers import register_exception_handlers
from karaoke.middleware import RateLimitHeaderMiddleware, RequestLogMiddleware
from karaoke.routers import rooms_router, search_router, websocket_router
from karaoke.services.gateway import ChannelGateway, ConnectionManager
from karaoke.services.room_store import RoomStore
from karaoke.services.search_service import YouTubeSearchService
from karaoke.services.sweeper import CleanupSweeper
from karaoke.utils.logging_config import fastapi_logger, setup_logging
from karaoke.utils.rate_limit import RateLimiter


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    settings: Settings = app.state.settings
    setup_logging(settings)
    fastapi_logger.info(f"Starting {settings.APP_NAME}")
    if not settings.YOUTUBE_API_KEY:
        fastapi_logger.warning("YOUTUBE_API_KEY is not set, search will be unavailable")
    app.state.sweeper.start()
    yield
    # Shutdown
    fastapi_logger.info("Shutting down application")
    await app.state.sweeper.stop()
    await app.state.limiter.close()
    fastapi_logger.info("Rate limiter connections closed")


def create_app(settings: Settings | None = None, store: RoomStore | None = None) -> FastAPI:
    settings = settings or get_settings()
    store = store or RoomStore(settings)

    app = FastAPI(
        title=settings.APP_NAME,
        description="Shared YouTube queue rooms with real-time sync",
        version=__version__,
        lifespan=lifespan,
    )

    manager = ConnectionManager()
    gateway = ChannelGateway(store, manager)
    app.state.settings = settings
    app.state.store = store
    app.state.limiter = RateLimiter.from_settings(settings)
    app.state.manager = manager
    app.state.gateway = gateway
    app.state.search_service = YouTubeSearchService.from_settings(settings)
    app.state.sweeper = CleanupSweeper(store, settings.CLEANUP_INTERVAL_SECONDS, on_evict=gateway.close_room)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if settings.RATE_LIMIT_ENABLED:
        app.add_middleware(RateLimitHeaderMiddleware)
    app.add_middleware(RequestLogMiddleware)

    register_exception_handlers(app)

    app.include_router(rooms_router)
    app.include_router(search_router)
    app.include_router(websocket_router)

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "service": settings.APP_NAME,
            "rooms": len(store),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("karaoke.main:app", host="0.0.0.0", port=8005, reload=True)
