"""
Per-room state machine.

A RoomSession owns one Room and every mutation on it. Methods are
synchronous and either fully apply or raise before touching state; the
gateway holds ``room.lock`` around a call and the broadcast that follows.
"""
import random
from dataclasses import dataclass
from typing import Callable, Optional

from karaoke.config import Settings
from karaoke.exceptions import (
    CapacityExceededException,
    ConflictException,
    ControllerNotFoundException,
    ForbiddenException,
    InvalidCredentialException,
    InvalidInputException,
    InvalidNameException,
    RegistrationClosedException,
)
from karaoke.models.room import (
    Controller,
    PlaybackState,
    QueueItem,
    Room,
    now_ms,
)
from karaoke.schemas.events import VideoPayload
from karaoke.schemas.room import AdminRoomResponse, RoomResponse
from karaoke.services import round_robin
from karaoke.utils.logging_config import room_logger
from karaoke.utils.security import keys_match

RESERVED_NAME_CHARS = ("[", "]")
HUE_RANGE = 360


@dataclass
class AddResult:
    item: QueueItem
    became_current: bool


@dataclass
class RenameResult:
    old_name: str
    new_name: str

    @property
    def changed(self) -> bool:
        return self.old_name != self.new_name


class RoomSession:
    def __init__(
        self,
        room: Room,
        settings: Settings,
        mint_credential: Callable[[], str],
        release_credential: Callable[[str], None],
    ):
        self.room = room
        self.settings = settings
        self._mint_credential = mint_credential
        self._release_credential = release_credential

    @property
    def id(self) -> str:
        return self.room.id

    @property
    def lock(self):
        return self.room.lock

    def touch(self) -> None:
        self.room.last_activity = now_ms()

    # ==================== Views ====================

    def public_view(self) -> RoomResponse:
        return RoomResponse.from_room(self.room)

    def admin_view(self) -> AdminRoomResponse:
        return AdminRoomResponse.from_room(self.room)

    # ==================== Credentials ====================

    def verify_player_key(self, player_key: str | None) -> None:
        if not keys_match(player_key, self.room.player_key):
            raise ForbiddenException("Invalid player key")

    def verify_master_key(self, master_key: str | None) -> None:
        if not keys_match(master_key, self.room.control_master_key):
            raise ForbiddenException("Invalid control key")

    def authenticate(self, controller_key: str | None) -> Controller:
        """Resolve a controller key. Disabled controllers still authenticate."""
        controller = self.room.controllers.get(controller_key)
        if controller is None:
            raise InvalidCredentialException()
        return controller

    def require_enabled(self, controller_key: str | None) -> Controller:
        controller = self.authenticate(controller_key)
        if not controller.enabled:
            raise ForbiddenException("Your controller has been disabled by the host")
        return controller

    # ==================== Names ====================

    def validate_name(self, requested: str) -> str:
        name = (requested or "").strip()
        if not name:
            raise InvalidNameException("name is empty")
        if any(ch in name for ch in RESERVED_NAME_CHARS):
            raise InvalidNameException("name may not contain [ or ]")
        if len(name) > self.settings.MAX_USERNAME_LENGTH:
            raise InvalidNameException(
                f"name is longer than {self.settings.MAX_USERNAME_LENGTH} characters"
            )
        return name

    def resolve_name(self, base: str, own_name: str | None = None) -> str:
        """
        Pick ``base`` or ``"base [n]"`` with the smallest free n >= 2.

        Taken names are every name the round-robin has ever seen plus the
        present controllers, minus the caller's own current name.
        """
        taken = set(self.room.round_robin.participants)
        taken.update(self.room.controllers.names())
        taken.discard(own_name)
        if base not in taken:
            return base
        # One of len(taken) + 1 candidates is always free
        for n in range(2, len(taken) + 3):
            candidate = f"{base} [{n}]"
            if candidate not in taken:
                return candidate
        raise ConflictException()

    # ==================== Controller lifecycle ====================

    def register(self, master_key: str | None, requested_name: str) -> Controller:
        self.verify_master_key(master_key)
        if not self.room.allow_new_controllers:
            raise RegistrationClosedException()
        if len(self.room.controllers) >= self.settings.MAX_CONTROLLERS_PER_ROOM:
            raise CapacityExceededException("This room has reached its controller limit", "controllers")
        name = self.resolve_name(self.validate_name(requested_name))

        controller = Controller(
            key=self._mint_credential(),
            name=name,
            color=random.randrange(HUE_RANGE),
        )
        self.room.controllers.add(controller)
        self.room.round_robin.observe(name)
        self.touch()

        room_logger.info(
            "Controller registered",
            extra={"room_id": self.id, "controller_id": controller.id, "name": name},
        )
        return controller

    def rename(self, controller_key: str | None, requested_name: str) -> RenameResult:
        controller = self.require_enabled(controller_key)
        old = controller.name
        new = self.resolve_name(self.validate_name(requested_name), own_name=old)
        result = RenameResult(old, new)
        if not result.changed:
            return result

        controller.name = new
        for item in self._items():
            if item.added_by == old:
                item.added_by = new
        self.room.round_robin.rename(old, new)
        self.touch()

        room_logger.info(
            "Controller renamed",
            extra={"room_id": self.id, "controller_id": controller.id, "old": old, "new": new},
        )
        return result

    def update_color(self, controller_key: str | None, color: int) -> Controller:
        controller = self.require_enabled(controller_key)
        if not 0 <= color < HUE_RANGE:
            raise InvalidInputException("color", f"hue must be between 0 and {HUE_RANGE - 1}")
        controller.color = color
        for item in self._items():
            if item.added_by == controller.name:
                item.color = color
        self.touch()
        return controller

    def set_controller_enabled(self, player_key: str | None, controller_id: str, enabled: bool) -> Controller:
        self.verify_player_key(player_key)
        controller = self.room.controllers.by_id(controller_id)
        if controller is None:
            raise ControllerNotFoundException(controller_id)
        controller.enabled = enabled
        self.touch()

        room_logger.info(
            "Controller toggled",
            extra={"room_id": self.id, "controller_id": controller_id, "enabled": enabled},
        )
        return controller

    def remove_controller(self, player_key: str | None, controller_id: str) -> Controller:
        self.verify_player_key(player_key)
        controller = self.room.controllers.by_id(controller_id)
        if controller is None:
            raise ControllerNotFoundException(controller_id)
        self.room.controllers.remove(controller.key)
        self._release_credential(controller.key)
        self.touch()

        room_logger.info(
            "Controller removed",
            extra={"room_id": self.id, "controller_id": controller_id, "name": controller.name},
        )
        return controller

    def set_registration(self, player_key: str | None, allow: bool) -> None:
        self.verify_player_key(player_key)
        self.room.allow_new_controllers = allow
        self.touch()

    # ==================== Queue ====================

    def add_video(self, controller_key: str | None, video: VideoPayload) -> AddResult:
        controller = self.require_enabled(controller_key)
        video_id = video.id.strip()
        title = video.title.strip()
        if not video_id or len(video_id) > self.settings.MAX_VIDEO_ID_LENGTH:
            raise InvalidInputException(
                "video.id", f"must be 1 to {self.settings.MAX_VIDEO_ID_LENGTH} characters"
            )
        if not title or len(title) > self.settings.MAX_TITLE_LENGTH:
            raise InvalidInputException(
                "video.title", f"must be 1 to {self.settings.MAX_TITLE_LENGTH} characters"
            )

        idle = self.room.current_video is None
        if not idle and len(self.room.queue) >= self.settings.MAX_QUEUE_LENGTH:
            raise CapacityExceededException("The queue is full", "queue")

        item = QueueItem(
            video_id=video_id,
            title=title,
            channel_title=(video.channel_title or "")[: self.settings.MAX_TITLE_LENGTH],
            is_playlist=video.is_playlist,
            added_by=controller.name,
            color=controller.color,
            queue_id=self.room.next_queue_id(),
        )
        self.room.round_robin.observe(controller.name)

        if idle:
            self._promote(item)
        else:
            self.room.queue.append(item)
            self._reschedule()
        self.touch()
        return AddResult(item=item, became_current=idle)

    def remove_video(self, controller_key: str | None, index: int) -> QueueItem:
        self.require_enabled(controller_key)
        if not 0 <= index < len(self.room.queue):
            raise InvalidInputException("index", "no queued video at that position")
        removed = self.room.queue.pop(index)
        self._reschedule()
        self.touch()
        return removed

    def play_next(self) -> Optional[QueueItem]:
        """Replace the current video with the queue head, or clear it."""
        if self.room.queue:
            self._promote(self.room.queue.pop(0))
            self._reschedule()
        else:
            self.room.current_video = None
            self.room.playback.reset(None)
        self.touch()
        return self.room.current_video

    def skip(self, controller_key: str | None) -> Optional[QueueItem]:
        self.require_enabled(controller_key)
        return self.play_next()

    def player_skip(self, player_key: str | None, ended_video_id: str | None = None) -> bool:
        """Skip requested by the display. Returns False when ``ended_video_id`` is stale."""
        self.verify_player_key(player_key)
        current = self.room.current_video
        if ended_video_id is not None and (current is None or current.video_id != ended_video_id):
            return False
        self.play_next()
        return True

    def update_settings(self, controller_key: str | None, round_robin_enabled: bool) -> None:
        self.require_enabled(controller_key)
        self.room.settings.round_robin_enabled = round_robin_enabled
        # Disabling freezes the current order
        self._reschedule()
        self.touch()

    # ==================== Playback ====================

    def report_playback(
        self,
        player_key: str | None,
        state: PlaybackState,
        position_sec: float,
        duration_sec: float | None,
        video_id: str | None,
    ) -> bool:
        """Store a playback report. Reports about another video are dropped."""
        self.verify_player_key(player_key)
        current = self.room.current_video
        if current is None or video_id != current.video_id:
            return False
        snapshot = self.room.playback
        snapshot.state = state
        snapshot.position_sec = position_sec
        snapshot.duration_sec = duration_sec or None
        snapshot.video_id = video_id
        snapshot.updated_at = now_ms()
        return True

    # ==================== Internals ====================

    def _items(self):
        if self.room.current_video is not None:
            yield self.room.current_video
        yield from self.room.queue

    def _promote(self, item: QueueItem) -> None:
        self.room.current_video = item
        self.room.round_robin.mark_served(item.added_by)
        self.room.playback.reset(item.video_id)

    def _reschedule(self) -> None:
        if self.room.settings.round_robin_enabled:
            round_robin.apply(self.room.queue, self.room.round_robin)
