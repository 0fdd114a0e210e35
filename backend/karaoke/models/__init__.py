from karaoke.models.room import (
    Controller,
    ControllerRegistry,
    PlaybackSnapshot,
    PlaybackState,
    QueueItem,
    Room,
    RoomSettings,
    RoundRobinState,
)

__all__ = [
    "Controller", "ControllerRegistry", "PlaybackSnapshot", "PlaybackState",
    "QueueItem", "Room", "RoomSettings", "RoundRobinState",
]
