"""
Inbound websocket event payloads.

Each client event has an explicit schema, validated by the gateway before
any room logic runs. Field names are camelCase on the wire. Length limits
that come from settings are enforced by the room session, the schemas here
only pin down shape and types.
"""
from typing import Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from karaoke.models.room import PlaybackState


class EventPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    room_id: str = Field(min_length=1, max_length=64)


class EmptyPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class JoinRoom(EventPayload):
    pass


class PlayerPayload(EventPayload):
    player_key: Optional[str] = None


class ControllerPayload(EventPayload):
    controller_key: Optional[str] = None


class RegisterController(EventPayload):
    master_key: str = Field(
        min_length=1,
        validation_alias=AliasChoices("masterKey", "controlMasterKey", "master_key"),
    )
    username: str


class RenameController(ControllerPayload):
    username: str


class UpdateControllerColor(ControllerPayload):
    color: int


class VideoPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str
    title: str
    channel_title: str = ""
    is_playlist: bool = False


class AddToQueue(ControllerPayload):
    video: VideoPayload


class RemoveFromQueue(ControllerPayload):
    index: int


class SettingsPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    round_robin_enabled: bool


class UpdateSettings(ControllerPayload):
    settings: SettingsPayload


class PlayerPlayNext(PlayerPayload):
    # Video that just ended, a stale id makes the request a no-op
    video_id: Optional[str] = None


class PlaybackReport(PlayerPayload):
    state: PlaybackState = PlaybackState.UNKNOWN
    position_sec: float = Field(default=0.0, ge=0)
    # Zero until the player has loaded metadata
    duration_sec: Optional[float] = Field(default=None, ge=0)
    video_id: Optional[str] = None


class AdminToggleController(PlayerPayload):
    controller_id: str
    enabled: bool


class AdminRemoveController(PlayerPayload):
    controller_id: str


class AdminToggleRegistration(PlayerPayload):
    allow: bool
