from typing import Annotated, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from karaoke.config import Settings
from karaoke.exceptions import InvalidCredentialException
from karaoke.services.room_store import RoomStore

bearer = HTTPBearer(auto_error=False)


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> RoomStore:
    return request.app.state.store


async def get_bearer_token(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer)],
) -> str:
    """
    Token from ``Authorization: Bearer ...``.

    Raises:
        InvalidCredentialException: header missing or not a bearer token
    """
    if credentials is None or not credentials.credentials:
        raise InvalidCredentialException()
    return credentials.credentials
