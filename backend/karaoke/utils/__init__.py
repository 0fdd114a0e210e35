from karaoke.utils.security import mint_token, mint_unique_token, mint_room_id, keys_match
from karaoke.utils.rate_limit import (
    RateLimiter,
    rate_limit,
    check_websocket_rate_limit,
    cleanup_websocket_rate_limit,
    get_client_identifier,
)

__all__ = [
    "mint_token", "mint_unique_token", "mint_room_id", "keys_match",
    "RateLimiter", "rate_limit",
    "check_websocket_rate_limit", "cleanup_websocket_rate_limit",
    "get_client_identifier",
]
