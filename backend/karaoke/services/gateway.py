"""
Realtime channel gateway.

Inbound frames are ``{"event": name, "data": payload}``. The gateway
validates the payload against the event's schema, resolves the room,
checks the credential through the room session and, holding the room
lock, applies the mutation and broadcasts the result. Failures go back to
the calling connection only as ``error-message`` events.
"""
import uuid
from contextlib import asynccontextmanager
from traceback import format_exc
from typing import Any, AsyncIterator, Optional

from fastapi import WebSocket
from pydantic import BaseModel, ValidationError

from karaoke.error_handlers import WebSocketErrorHandler
from karaoke.exceptions import AppException, ErrorCode, RoomNotFoundException
from karaoke.schemas import events as ev
from karaoke.schemas.room import ControllerResponse, PlaybackResponse, QueueItemResponse
from karaoke.services.room_session import RoomSession
from karaoke.services.room_store import RoomStore
from karaoke.utils.logging_config import websocket_logger


class Connection:
    """One websocket plus the credentials it has proven, per room"""

    def __init__(self, websocket: WebSocket):
        self.id = uuid.uuid4().hex
        self.websocket = websocket
        self.rooms: set[str] = set()
        # room_id -> player key accepted by join-room-admin
        self.admin_keys: dict[str, str] = {}
        # room_id -> controller key accepted by register/auth
        self.controller_keys: dict[str, str] = {}

    def controller_key(self, room_id: str, presented: Optional[str]) -> Optional[str]:
        return presented or self.controller_keys.get(room_id)

    def player_key(self, room_id: str, presented: Optional[str]) -> Optional[str]:
        return presented or self.admin_keys.get(room_id)

    async def send(self, event: str, data: Any = None) -> None:
        await self.websocket.send_json({"event": event, "data": data})


class ConnectionManager:
    """Public and admin subscriber groups per room, plus controller key bindings"""

    def __init__(self):
        # room_id -> {connection_id -> Connection}
        self.public: dict[str, dict[str, Connection]] = {}
        self.admin: dict[str, dict[str, Connection]] = {}
        # Connections holding a controller key, subscribed or not
        self.bound: dict[str, dict[str, Connection]] = {}

    def join(self, room_id: str, conn: Connection) -> None:
        self.public.setdefault(room_id, {})[conn.id] = conn
        conn.rooms.add(room_id)

    def join_admin(self, room_id: str, conn: Connection, player_key: str) -> None:
        self.join(room_id, conn)
        self.admin.setdefault(room_id, {})[conn.id] = conn
        conn.admin_keys[room_id] = player_key

    def bind_controller(self, room_id: str, conn: Connection, controller_key: str) -> None:
        self.bound.setdefault(room_id, {})[conn.id] = conn
        conn.controller_keys[room_id] = controller_key

    def leave(self, room_id: str, conn: Connection) -> None:
        for groups in (self.public, self.admin, self.bound):
            members = groups.get(room_id)
            if members is not None:
                members.pop(conn.id, None)
                if not members:
                    del groups[room_id]
        conn.rooms.discard(room_id)
        conn.admin_keys.pop(room_id, None)
        conn.controller_keys.pop(room_id, None)

    def disconnect(self, conn: Connection) -> None:
        for room_id in conn.rooms | set(conn.controller_keys):
            self.leave(room_id, conn)

    def drop_room(self, room_id: str) -> list[Connection]:
        members = list(self.public.pop(room_id, {}).values())
        self.admin.pop(room_id, None)
        for conn in members + list(self.bound.pop(room_id, {}).values()):
            conn.rooms.discard(room_id)
            conn.admin_keys.pop(room_id, None)
            conn.controller_keys.pop(room_id, None)
        return members

    def unbind_controller(self, room_id: str, controller_key: str) -> None:
        members = self.bound.get(room_id, {})
        for conn in list(members.values()):
            if conn.controller_keys.get(room_id) == controller_key:
                del conn.controller_keys[room_id]
                del members[conn.id]
        if not members:
            self.bound.pop(room_id, None)

    def room_size(self, room_id: str) -> int:
        return len(self.public.get(room_id, {}))

    async def send(self, conn: Connection, event: str, data: Any = None) -> bool:
        try:
            await conn.send(event, data)
            return True
        except Exception as e:
            WebSocketErrorHandler.log_websocket_error(e, connection_id=conn.id, event=event)
            return False

    async def broadcast(self, room_id: str, event: str, data: Any = None, admin_only: bool = False) -> None:
        """Send to every subscriber of the room, logging the ones that fail"""
        groups = self.admin if admin_only else self.public
        failed = []
        for conn in list(groups.get(room_id, {}).values()):
            if not await self.send(conn, event, data):
                failed.append(conn.id)
        if failed:
            websocket_logger.warning(
                "Failed to send message to some connections in room",
                extra={"room_id": room_id, "event": event, "failed_count": len(failed)},
            )


# event name -> (handler method name, payload schema, silent)
_EVENTS: dict[str, tuple[str, type[BaseModel], bool]] = {}


def on(event: str, schema: type[BaseModel], silent: bool = False):
    """Register a ChannelGateway method as the handler of ``event``.

    Silent handlers belong to the display's background loops: their
    failures are logged and never reported back.
    """
    def decorator(func):
        _EVENTS[event] = (func.__name__, schema, silent)
        return func
    return decorator


class ChannelGateway:
    def __init__(self, store: RoomStore, manager: ConnectionManager | None = None):
        self.store = store
        self.manager = manager or ConnectionManager()

    # ==================== Dispatch ====================

    async def dispatch(self, conn: Connection, event: Any, data: Any) -> None:
        entry = _EVENTS.get(event) if isinstance(event, str) else None
        if entry is None:
            await WebSocketErrorHandler.send_error_message(
                conn.websocket, ErrorCode.INVALID_INPUT, f"Unknown event: {event}"
            )
            return
        handler_name, schema, silent = entry

        if isinstance(data, str) and event in ("join-room", "leave-room", "get-room-state"):
            # Older clients send the bare room id
            data = {"roomId": data}
        room_id = data.get("roomId") if isinstance(data, dict) else None

        try:
            payload = schema.model_validate(data if data is not None else {})
            await getattr(self, handler_name)(conn, payload)
        except ValidationError as e:
            WebSocketErrorHandler.log_websocket_error(e, room_id, conn.id, event, level="DEBUG")
            if not silent:
                first = e.errors()[0]
                field = ".".join(str(loc) for loc in first["loc"]) or "payload"
                await WebSocketErrorHandler.send_error_message(
                    conn.websocket, ErrorCode.INVALID_INPUT, f"Invalid value for {field}: {first['msg']}"
                )
        except AppException as e:
            WebSocketErrorHandler.log_websocket_error(e, room_id, conn.id, event, level="DEBUG" if silent else "INFO")
            if not silent:
                await WebSocketErrorHandler.send_error_message(conn.websocket, e.code, e.message)
        except Exception as e:
            websocket_logger.error(
                "Unhandled error in event handler",
                extra={
                    "room_id": room_id,
                    "connection_id": conn.id,
                    "event": event,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "traceback": format_exc(),
                },
            )
            if not silent:
                await WebSocketErrorHandler.send_error_message(
                    conn.websocket, ErrorCode.INTERNAL_ERROR, "Something went wrong, please try again"
                )

    def disconnect(self, conn: Connection) -> None:
        self.manager.disconnect(conn)

    async def close_room(self, room_id: str) -> None:
        """Tell subscribers an evicted room is gone and forget its groups"""
        for conn in self.manager.drop_room(room_id):
            await self.manager.send(conn, "room-closed", {"roomId": room_id, "reason": "expired"})

    @asynccontextmanager
    async def _locked(self, room_id: str) -> AsyncIterator[RoomSession]:
        session = self.store.require(room_id)
        async with session.lock:
            # Evicted while we waited for the lock
            if self.store.get(room_id) is not session:
                raise RoomNotFoundException(room_id)
            yield session

    # ==================== Broadcast helpers ====================

    async def _broadcast_queue(self, session: RoomSession) -> None:
        await self.manager.broadcast(
            session.id, "queue-updated",
            [QueueItemResponse.from_item(i).dump() for i in session.room.queue],
        )

    async def _broadcast_video(self, session: RoomSession) -> None:
        current = session.room.current_video
        await self.manager.broadcast(
            session.id, "video-changed",
            QueueItemResponse.from_item(current).dump() if current else None,
        )
        await self._broadcast_playback(session)

    async def _broadcast_playback(self, session: RoomSession) -> None:
        await self.manager.broadcast(
            session.id, "playback-updated", PlaybackResponse.from_snapshot(session.room.playback).dump()
        )

    async def _broadcast_roster(self, session: RoomSession) -> None:
        await self.manager.broadcast(
            session.id, "controllers-updated",
            [ControllerResponse.from_controller(c).dump() for c in session.room.controllers],
            admin_only=True,
        )

    # ==================== Public ====================

    @on("join-room", ev.JoinRoom)
    async def join_room(self, conn: Connection, payload: ev.JoinRoom) -> None:
        async with self._locked(payload.room_id) as session:
            self.manager.join(session.id, conn)
            session.touch()
            await self.manager.send(conn, "room-state", session.public_view().dump())
        websocket_logger.info(
            "Connection joined room",
            extra={"room_id": payload.room_id, "connection_id": conn.id,
                   "subscribers": self.manager.room_size(payload.room_id)},
        )

    @on("leave-room", ev.JoinRoom)
    async def leave_room(self, conn: Connection, payload: ev.JoinRoom) -> None:
        self.manager.leave(payload.room_id, conn)

    @on("get-room-state", ev.JoinRoom)
    async def get_room_state(self, conn: Connection, payload: ev.JoinRoom) -> None:
        async with self._locked(payload.room_id) as session:
            await self.manager.send(conn, "room-state", session.public_view().dump())

    @on("ping", ev.EmptyPayload)
    async def ping(self, conn: Connection, payload: ev.EmptyPayload) -> None:
        await self.manager.send(conn, "pong")

    # ==================== Controller ====================

    @on("register-controller", ev.RegisterController)
    async def register_controller(self, conn: Connection, payload: ev.RegisterController) -> None:
        async with self._locked(payload.room_id) as session:
            controller = session.register(payload.master_key, payload.username)
            self.manager.bind_controller(session.id, conn, controller.key)
            await self.manager.send(conn, "controller-registered", {
                "controllerKey": controller.key,
                "controllerId": controller.id,
                "username": controller.name,
                "color": controller.color,
            })
            await self._broadcast_roster(session)

    @on("auth-controller", ev.ControllerPayload)
    async def auth_controller(self, conn: Connection, payload: ev.ControllerPayload) -> None:
        async with self._locked(payload.room_id) as session:
            controller = session.authenticate(conn.controller_key(session.id, payload.controller_key))
            self.manager.bind_controller(session.id, conn, controller.key)
            await self.manager.send(conn, "controller-authenticated", {
                "controllerId": controller.id,
                "username": controller.name,
                "color": controller.color,
                "enabled": controller.enabled,
            })

    @on("rename-controller", ev.RenameController)
    async def rename_controller(self, conn: Connection, payload: ev.RenameController) -> None:
        async with self._locked(payload.room_id) as session:
            result = session.rename(conn.controller_key(session.id, payload.controller_key), payload.username)
            await self.manager.send(conn, "controller-renamed", {
                "oldName": result.old_name,
                "username": result.new_name,
            })
            if result.changed:
                await self.manager.broadcast(session.id, "room-state", session.public_view().dump())
                await self._broadcast_roster(session)

    @on("update-controller-color", ev.UpdateControllerColor)
    async def update_controller_color(self, conn: Connection, payload: ev.UpdateControllerColor) -> None:
        async with self._locked(payload.room_id) as session:
            controller = session.update_color(
                conn.controller_key(session.id, payload.controller_key), payload.color
            )
            await self.manager.send(conn, "controller-color-updated", {"color": controller.color})
            await self.manager.broadcast(session.id, "room-state", session.public_view().dump())
            await self._broadcast_roster(session)

    @on("add-to-queue", ev.AddToQueue)
    async def add_to_queue(self, conn: Connection, payload: ev.AddToQueue) -> None:
        async with self._locked(payload.room_id) as session:
            result = session.add_video(conn.controller_key(session.id, payload.controller_key), payload.video)
            if result.became_current:
                await self._broadcast_video(session)
            await self._broadcast_queue(session)
        websocket_logger.info(
            "Video added",
            extra={"room_id": payload.room_id, "video_id": result.item.video_id,
                   "added_by": result.item.added_by, "became_current": result.became_current},
        )

    @on("remove-from-queue", ev.RemoveFromQueue)
    async def remove_from_queue(self, conn: Connection, payload: ev.RemoveFromQueue) -> None:
        async with self._locked(payload.room_id) as session:
            session.remove_video(conn.controller_key(session.id, payload.controller_key), payload.index)
            await self._broadcast_queue(session)

    @on("play-next", ev.ControllerPayload)
    async def play_next(self, conn: Connection, payload: ev.ControllerPayload) -> None:
        async with self._locked(payload.room_id) as session:
            session.skip(conn.controller_key(session.id, payload.controller_key))
            await self._broadcast_video(session)
            await self._broadcast_queue(session)

    @on("update-settings", ev.UpdateSettings)
    async def update_settings(self, conn: Connection, payload: ev.UpdateSettings) -> None:
        async with self._locked(payload.room_id) as session:
            session.update_settings(
                conn.controller_key(session.id, payload.controller_key),
                payload.settings.round_robin_enabled,
            )
            await self.manager.broadcast(
                session.id, "settings-updated",
                {"roundRobinEnabled": session.room.settings.round_robin_enabled},
            )
            await self._broadcast_queue(session)

    # ==================== Player / admin ====================

    @on("join-room-admin", ev.PlayerPayload)
    async def join_room_admin(self, conn: Connection, payload: ev.PlayerPayload) -> None:
        async with self._locked(payload.room_id) as session:
            player_key = conn.player_key(session.id, payload.player_key)
            session.verify_player_key(player_key)
            self.manager.join_admin(session.id, conn, player_key)
            await self.manager.send(conn, "room-state-admin", session.admin_view().dump())

    @on("player-play-next", ev.PlayerPlayNext, silent=True)
    async def player_play_next(self, conn: Connection, payload: ev.PlayerPlayNext) -> None:
        async with self._locked(payload.room_id) as session:
            if session.player_skip(conn.player_key(session.id, payload.player_key), payload.video_id):
                await self._broadcast_video(session)
                await self._broadcast_queue(session)

    @on("playback-state", ev.PlaybackReport, silent=True)
    async def playback_state(self, conn: Connection, payload: ev.PlaybackReport) -> None:
        async with self._locked(payload.room_id) as session:
            accepted = session.report_playback(
                conn.player_key(session.id, payload.player_key),
                payload.state,
                payload.position_sec,
                payload.duration_sec,
                payload.video_id,
            )
            if accepted:
                await self._broadcast_playback(session)

    @on("admin-toggle-controller", ev.AdminToggleController)
    async def admin_toggle_controller(self, conn: Connection, payload: ev.AdminToggleController) -> None:
        async with self._locked(payload.room_id) as session:
            session.set_controller_enabled(
                conn.player_key(session.id, payload.player_key), payload.controller_id, payload.enabled
            )
            await self._broadcast_roster(session)

    @on("admin-remove-controller", ev.AdminRemoveController)
    async def admin_remove_controller(self, conn: Connection, payload: ev.AdminRemoveController) -> None:
        async with self._locked(payload.room_id) as session:
            controller = session.remove_controller(
                conn.player_key(session.id, payload.player_key), payload.controller_id
            )
            self.manager.unbind_controller(session.id, controller.key)
            await self._broadcast_roster(session)

    @on("admin-toggle-registration", ev.AdminToggleRegistration)
    async def admin_toggle_registration(self, conn: Connection, payload: ev.AdminToggleRegistration) -> None:
        async with self._locked(payload.room_id) as session:
            session.set_registration(conn.player_key(session.id, payload.player_key), payload.allow)
            await self.manager.broadcast(
                session.id, "registration-status",
                {"allowNewControllers": session.room.allow_new_controllers},
            )
