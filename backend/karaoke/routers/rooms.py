"""
Rooms Router for Karaoke Together

Room creation, public room lookup and the display's QR endpoint.
"""
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from karaoke.config import Settings
from karaoke.routers.deps import get_bearer_token, get_settings_dep, get_store
from karaoke.schemas.room import RoomCreateResponse, RoomQRResponse, RoomResponse
from karaoke.services.qr_service import control_url, qr_data_url
from karaoke.services.room_store import RoomStore
from karaoke.utils.logging_config import room_logger
from karaoke.utils.rate_limit import rate_limit

router = APIRouter(prefix="/api/rooms", tags=["Rooms"])


@router.post("", response_model=RoomCreateResponse, status_code=status.HTTP_201_CREATED)
@rate_limit(limit=10, window=60, identifier="create_room")
async def create_room(
    request: Request,
    store: Annotated[RoomStore, Depends(get_store)],
    settings: Annotated[Settings, Depends(get_settings_dep)],
):
    """
    Create a room and return its credentials.
    The player key is shown only to the display that made this call.
    - 10 requests / minute
    """
    session = store.create_room()
    room = session.room
    url = control_url(settings.FRONTEND_ORIGIN, room.id, room.control_master_key)

    room_logger.info("Room created over HTTP", extra={"room_id": room.id})
    return RoomCreateResponse(
        room_id=room.id,
        player_key=room.player_key,
        control_master_key=room.control_master_key,
        control_url=url,
        qr_code=qr_data_url(url),
    ).dump()


@router.get("/{room_id}", response_model=RoomResponse)
@rate_limit(limit=120, window=60, identifier="get_room")
async def get_room(
    request: Request,
    room_id: str,
    store: Annotated[RoomStore, Depends(get_store)],
):
    """Public room view, no credentials included"""
    return store.require(room_id).public_view().dump()


@router.get("/{room_id}/qr", response_model=RoomQRResponse)
@rate_limit(limit=30, window=60, identifier="room_qr")
async def get_room_qr(
    request: Request,
    room_id: str,
    player_key: Annotated[str, Depends(get_bearer_token)],
    store: Annotated[RoomStore, Depends(get_store)],
    settings: Annotated[Settings, Depends(get_settings_dep)],
):
    """
    QR code with the controller join link.
    Requires the room's player key as bearer token.
    """
    session = store.require(room_id)
    session.verify_player_key(player_key)
    url = control_url(settings.FRONTEND_ORIGIN, session.id, session.room.control_master_key)
    return RoomQRResponse(control_url=url, qr_code=qr_data_url(url)).dump()
