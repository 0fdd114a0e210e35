import pytest
from fastapi.testclient import TestClient

from karaoke.config import Settings
from karaoke.main import create_app
from karaoke.schemas.events import VideoPayload
from karaoke.services.room_store import RoomStore


def make_settings(**overrides) -> Settings:
    values = {
        "RATE_LIMIT_ENABLED": False,
        "LOG_TO_FILE": False,
        "YOUTUBE_API_KEY": "",
        "FRONTEND_ORIGIN": "http://karaoke.test",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def video(video_id: str, title: str | None = None) -> VideoPayload:
    return VideoPayload(id=video_id, title=title or f"Song {video_id}")


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def store(settings) -> RoomStore:
    return RoomStore(settings)


@pytest.fixture
def session(store):
    return store.create_room()


@pytest.fixture
def client(settings, store):
    app = create_app(settings, store)
    with TestClient(app) as test_client:
        yield test_client
