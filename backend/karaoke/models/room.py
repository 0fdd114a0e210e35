import asyncio
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Optional


def now_ms() -> int:
    return int(time.time() * 1000)


class PlaybackState(str, Enum):
    UNSTARTED = "unstarted"
    PLAYING = "playing"
    PAUSED = "paused"
    BUFFERING = "buffering"
    ENDED = "ended"
    CUED = "cued"
    UNKNOWN = "unknown"


@dataclass
class QueueItem:
    video_id: str
    title: str
    added_by: str
    color: int
    queue_id: int
    channel_title: str = ""
    is_playlist: bool = False


@dataclass
class Controller:
    key: str
    name: str
    color: int
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    enabled: bool = True
    created_at: int = field(default_factory=now_ms)


@dataclass
class PlaybackSnapshot:
    state: PlaybackState = PlaybackState.UNSTARTED
    position_sec: float = 0.0
    duration_sec: Optional[float] = None
    video_id: Optional[str] = None
    updated_at: int = field(default_factory=now_ms)

    def reset(self, video_id: Optional[str]) -> None:
        self.state = PlaybackState.UNSTARTED
        self.position_sec = 0.0
        self.duration_sec = None
        self.video_id = video_id
        self.updated_at = now_ms()


@dataclass
class RoomSettings:
    round_robin_enabled: bool = False


class ControllerRegistry:
    """Controllers in registration order, looked up by key or public id"""

    def __init__(self) -> None:
        self._order: list[str] = []
        self._by_key: dict[str, Controller] = {}

    def add(self, controller: Controller) -> None:
        self._order.append(controller.key)
        self._by_key[controller.key] = controller

    def get(self, key: str | None) -> Optional[Controller]:
        if not key:
            return None
        return self._by_key.get(key)

    def by_id(self, controller_id: str) -> Optional[Controller]:
        for controller in self:
            if controller.id == controller_id:
                return controller
        return None

    def remove(self, key: str) -> Controller:
        controller = self._by_key.pop(key)
        self._order.remove(key)
        return controller

    def names(self) -> list[str]:
        return [c.name for c in self]

    def __iter__(self) -> Iterator[Controller]:
        return (self._by_key[key] for key in self._order)

    def __len__(self) -> int:
        return len(self._order)


class RoundRobinState:
    """
    Participants ever seen in the room, in first-seen order.

    The list only grows. ``last_served`` is the position of the participant
    whose item most recently became current, -1 until something plays.
    """

    NONE_SERVED = -1

    def __init__(self) -> None:
        self.participants: list[str] = []
        self._positions: dict[str, int] = {}
        self.last_served: int = self.NONE_SERVED

    def observe(self, name: str) -> None:
        if name not in self._positions:
            self._positions[name] = len(self.participants)
            self.participants.append(name)

    def position(self, name: str) -> Optional[int]:
        return self._positions.get(name)

    def rename(self, old: str, new: str) -> None:
        pos = self._positions.pop(old, None)
        if pos is None:
            self.observe(new)
            return
        self.participants[pos] = new
        self._positions[new] = pos

    def mark_served(self, name: str) -> None:
        pos = self.position(name)
        if pos is not None:
            self.last_served = pos

    def __contains__(self, name: str) -> bool:
        return name in self._positions


@dataclass
class Room:
    id: str
    player_key: str
    control_master_key: str
    created_at: int = field(default_factory=now_ms)
    last_activity: int = field(default_factory=now_ms)
    queue: list[QueueItem] = field(default_factory=list)
    current_video: Optional[QueueItem] = None
    settings: RoomSettings = field(default_factory=RoomSettings)
    playback: PlaybackSnapshot = field(default_factory=PlaybackSnapshot)
    controllers: ControllerRegistry = field(default_factory=ControllerRegistry)
    round_robin: RoundRobinState = field(default_factory=RoundRobinState)
    allow_new_controllers: bool = True
    queue_seq: int = 0
    # Serializes mutation + broadcast for this room
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    def next_queue_id(self) -> int:
        self.queue_seq += 1
        return self.queue_seq

    def credentials(self) -> list[str]:
        return [self.player_key, self.control_master_key] + [c.key for c in self.controllers]
