from typing import Optional
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from karaoke.models.room import Controller, PlaybackSnapshot, QueueItem, Room


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def dump(self) -> dict:
        """JSON-ready dict with the camelCase keys clients expect"""
        return self.model_dump(by_alias=True, mode="json")


class QueueItemResponse(CamelModel):
    id: str
    title: str
    channel_title: str = ""
    is_playlist: bool = False
    added_by: str
    color: int
    queue_id: int

    @classmethod
    def from_item(cls, item: QueueItem) -> "QueueItemResponse":
        return cls(
            id=item.video_id,
            title=item.title,
            channel_title=item.channel_title,
            is_playlist=item.is_playlist,
            added_by=item.added_by,
            color=item.color,
            queue_id=item.queue_id,
        )


class PlaybackResponse(CamelModel):
    state: str
    position_sec: float
    duration_sec: Optional[float] = None
    video_id: Optional[str] = None
    updated_at: int

    @classmethod
    def from_snapshot(cls, snapshot: PlaybackSnapshot) -> "PlaybackResponse":
        return cls(
            state=snapshot.state.value,
            position_sec=snapshot.position_sec,
            duration_sec=snapshot.duration_sec,
            video_id=snapshot.video_id,
            updated_at=snapshot.updated_at,
        )


class RoomSettingsResponse(CamelModel):
    round_robin_enabled: bool


class ControllerResponse(CamelModel):
    """Admin roster entry. The controller key itself is never listed."""
    id: str
    name: str
    enabled: bool
    color: int
    created_at: int

    @classmethod
    def from_controller(cls, controller: Controller) -> "ControllerResponse":
        return cls(
            id=controller.id,
            name=controller.name,
            enabled=controller.enabled,
            color=controller.color,
            created_at=controller.created_at,
        )


class RoomResponse(CamelModel):
    room_id: str
    created_at: int
    queue: list[QueueItemResponse]
    current_video: Optional[QueueItemResponse] = None
    settings: RoomSettingsResponse
    playback: PlaybackResponse
    allow_new_controllers: bool

    @classmethod
    def from_room(cls, room: Room) -> "RoomResponse":
        return cls(
            room_id=room.id,
            created_at=room.created_at,
            queue=[QueueItemResponse.from_item(i) for i in room.queue],
            current_video=QueueItemResponse.from_item(room.current_video) if room.current_video else None,
            settings=RoomSettingsResponse(round_robin_enabled=room.settings.round_robin_enabled),
            playback=PlaybackResponse.from_snapshot(room.playback),
            allow_new_controllers=room.allow_new_controllers,
        )


class AdminRoomResponse(RoomResponse):
    controllers: list[ControllerResponse]

    @classmethod
    def from_room(cls, room: Room) -> "AdminRoomResponse":
        base = RoomResponse.from_room(room)
        return cls(
            **base.model_dump(),
            controllers=[ControllerResponse.from_controller(c) for c in room.controllers],
        )


class RoomCreateResponse(CamelModel):
    room_id: str
    player_key: str
    control_master_key: str
    control_url: str
    qr_code: str


class RoomQRResponse(CamelModel):
    control_url: str
    qr_code: str
