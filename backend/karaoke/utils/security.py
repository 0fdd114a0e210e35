import secrets
import uuid
from typing import Callable

from karaoke.exceptions import ExhaustedAttemptsException
from karaoke.utils.logging_config import get_logger

logger = get_logger(__name__)

# 32 bytes -> 256 bits of entropy, ~43 url-safe characters
TOKEN_BYTES = 32


def mint_token() -> str:
    """Unguessable, URL safe credential with no relation to any other value"""
    return secrets.token_urlsafe(TOKEN_BYTES)


def _mint_unique(
    generate: Callable[[], str],
    exclude: Callable[[str], bool],
    max_attempts: int,
    what: str,
) -> str:
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    for _ in range(max_attempts):
        candidate = generate()
        if not exclude(candidate):
            return candidate
    logger.error(
        "Unique value generation exhausted",
        extra={"what": what, "attempts": max_attempts},
    )
    raise ExhaustedAttemptsException(what, max_attempts)


def mint_unique_token(exclude: Callable[[str], bool], max_attempts: int) -> str:
    """
    Mint a token that ``exclude`` does not reject.

    Raises:
        ExhaustedAttemptsException: every one of ``max_attempts`` candidates was rejected
    """
    return _mint_unique(mint_token, exclude, max_attempts, "token")


def mint_room_id(exclude: Callable[[str], bool], max_attempts: int) -> str:
    """Room ids only need to be unique among live rooms"""
    return _mint_unique(lambda: str(uuid.uuid4()), exclude, max_attempts, "room id")


def keys_match(presented: str | None, expected: str | None) -> bool:
    """Constant time credential comparison"""
    if not presented or not expected:
        return False
    return secrets.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))
