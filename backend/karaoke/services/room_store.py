"""
In-memory registry of live rooms.

The store is created once per application and injected into the routers,
the gateway and the sweeper. It is only touched from the event loop and
none of its methods await, so each call runs to completion before another
caller sees the registry.
"""
import time
from typing import Callable, Iterator, Optional

from karaoke.config import Settings
from karaoke.exceptions import CapacityExceededException, RoomNotFoundException
from karaoke.models.room import Room, now_ms
from karaoke.services.room_session import RoomSession
from karaoke.utils.logging_config import room_logger
from karaoke.utils.security import mint_room_id, mint_unique_token


class RoomStore:
    def __init__(self, settings: Settings, clock: Callable[[], int] = now_ms):
        self.settings = settings
        self._clock = clock
        self._rooms: dict[str, RoomSession] = {}
        # Every live credential -> owning room id
        self._credentials: dict[str, str] = {}

    # ==================== Credentials ====================

    def _mint_credential(self, room_id: str) -> str:
        token = mint_unique_token(
            lambda t: t in self._credentials,
            self.settings.TOKEN_MAX_ATTEMPTS,
        )
        self._credentials[token] = room_id
        return token

    def _release_credential(self, token: str) -> None:
        self._credentials.pop(token, None)

    def credential_owner(self, token: str | None) -> Optional[str]:
        if not token:
            return None
        return self._credentials.get(token)

    def is_search_token_valid(self, token: str | None) -> bool:
        """A control master key or an enabled controller key of any live room"""
        room_id = self.credential_owner(token)
        session = self._rooms.get(room_id) if room_id else None
        if session is None:
            return False
        if token == session.room.control_master_key:
            return True
        controller = session.room.controllers.get(token)
        return controller is not None and controller.enabled

    # ==================== Lifecycle ====================

    def create_room(self) -> RoomSession:
        if len(self._rooms) >= self.settings.MAX_ROOMS:
            room_logger.warning("Room limit reached", extra={"max_rooms": self.settings.MAX_ROOMS})
            raise CapacityExceededException("The server has reached its room limit", "rooms")

        room_id = mint_room_id(lambda r: r in self._rooms, self.settings.TOKEN_MAX_ATTEMPTS)
        player_key = self._mint_credential(room_id)
        try:
            master_key = self._mint_credential(room_id)
        except Exception:
            self._release_credential(player_key)
            raise

        now = self._clock()
        room = Room(
            id=room_id,
            player_key=player_key,
            control_master_key=master_key,
            created_at=now,
            last_activity=now,
        )
        session = RoomSession(
            room,
            self.settings,
            mint_credential=lambda: self._mint_credential(room_id),
            release_credential=self._release_credential,
        )
        self._rooms[room_id] = session

        room_logger.info("Room created", extra={"room_id": room_id, "live_rooms": len(self._rooms)})
        return session

    def get(self, room_id: str | None) -> Optional[RoomSession]:
        if not room_id:
            return None
        return self._rooms.get(room_id)

    def require(self, room_id: str | None) -> RoomSession:
        session = self.get(room_id)
        if session is None:
            raise RoomNotFoundException(room_id)
        return session

    def evict(self, room_id: str) -> bool:
        session = self._rooms.pop(room_id, None)
        if session is None:
            return False
        for token in session.room.credentials():
            self._release_credential(token)
        return True

    def expired_room_ids(self, now: int | None = None) -> list[str]:
        now = self._clock() if now is None else now
        retention_ms = self.settings.ROOM_RETENTION_MINUTES * 60 * 1000
        use_activity = self.settings.ROOM_EXPIRY_BASIS == "last_activity"
        expired = []
        for room_id, session in self._rooms.items():
            since = session.room.last_activity if use_activity else session.room.created_at
            if now - since > retention_ms:
                expired.append(room_id)
        return expired

    def sweep(self, now: int | None = None) -> list[str]:
        """Evict every expired room and return their ids"""
        started = time.perf_counter()
        evicted = [room_id for room_id in self.expired_room_ids(now) if self.evict(room_id)]
        if evicted:
            room_logger.info(
                "Expired rooms evicted",
                extra={
                    "count": len(evicted),
                    "live_rooms": len(self._rooms),
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                },
            )
        return evicted

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, room_id: str) -> bool:
        return room_id in self._rooms

    def __iter__(self) -> Iterator[RoomSession]:
        return iter(list(self._rooms.values()))
