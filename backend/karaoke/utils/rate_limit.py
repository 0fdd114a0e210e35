"""
Rate limiting utility with Redis backend.
Supports both HTTP endpoints and WebSocket rate limiting.
"""
import time
from functools import wraps
from typing import Callable, Optional

from fastapi import HTTPException, Request, status
from redis.asyncio import Redis
from redis.exceptions import RedisError

from karaoke.config import Settings
from karaoke.utils.logging_config import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """
    Redis-based rate limiter with sliding window algorithm.
    Falls back to in-memory fixed windows when Redis is disabled or unreachable.
    """

    def __init__(self, redis_url: str, use_redis: bool = True):
        self.redis_url = redis_url
        self._redis: Optional[Redis] = None
        self._fallback_store: dict = {}
        self._use_fallback = not use_redis

    @classmethod
    def from_settings(cls, settings: Settings) -> "RateLimiter":
        return cls(settings.REDIS_URL, use_redis=settings.RATE_LIMIT_USE_REDIS)

    async def get_redis(self) -> Optional[Redis]:
        """Get or create Redis connection."""
        if self._redis is None and not self._use_fallback:
            try:
                self._redis = Redis.from_url(
                    self.redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_connect_timeout=5,
                    socket_timeout=5,
                    retry_on_timeout=False,
                )
                await self._redis.ping()
            except (RedisError, OSError) as e:
                logger.warning(f"Redis unavailable for rate limiting, using in-memory fallback: {e}")
                self._use_fallback = True
                self._redis = None
        return self._redis

    async def close(self):
        """Close Redis connection."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    def _cleanup_fallback(self, now: float):
        expired_keys = [
            k for k, v in self._fallback_store.items()
            if v.get("reset_at", 0) < now
        ]
        for k in expired_keys:
            del self._fallback_store[k]

    async def is_allowed(self, key: str, limit: int, window: int) -> tuple[bool, dict]:
        """
        Check if request is allowed under rate limit.

        Args:
            key: Unique identifier (e.g., IP)
            limit: Maximum requests allowed
            window: Time window in seconds

        Returns:
            Tuple of (is_allowed, info_dict)
        """
        now = time.time()
        window_start = now - window
        reset_at = int(now + window)

        if not self._use_fallback:
            try:
                redis = await self.get_redis()
                if redis:
                    pipe = redis.pipeline()
                    pipe.zremrangebyscore(key, 0, window_start)
                    pipe.zcard(key)
                    pipe.zadd(key, {str(now): now})
                    pipe.expire(key, window)
                    results = await pipe.execute()

                    current_count = results[1]
                    return current_count < limit, {
                        "limit": limit,
                        "remaining": max(0, limit - current_count - 1),
                        "reset": reset_at,
                    }
            except (RedisError, OSError) as e:
                logger.warning(f"Redis rate limit check failed, switching to in-memory: {e}")
                self._use_fallback = True
                self._redis = None

        self._cleanup_fallback(now)
        data = self._fallback_store.get(key)
        if data is None:
            data = {"count": 0, "reset_at": reset_at}
        data["count"] += 1
        self._fallback_store[key] = data

        return data["count"] <= limit, {
            "limit": limit,
            "remaining": max(0, limit - data["count"]),
            "reset": data["reset_at"],
        }


def get_client_identifier(request: Request) -> str:
    """Client IP, honouring X-Forwarded-For behind a proxy."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = request.client.host if request.client is not None else "unknown"
    return f"ip:{ip}"


def rate_limit(limit: int, window: int, identifier: str = "default"):
    """
    Rate limiting decorator for FastAPI endpoints.

    The endpoint must take a ``request: Request`` argument. The limiter and
    the on/off switch come from ``request.app.state``.

    Raises:
        HTTPException: When rate limit is exceeded
    """
    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            request = kwargs.get("request")
            if request is None:
                request = next((a for a in args if isinstance(a, Request)), None)

            app_settings: Settings | None = getattr(request.app.state, "settings", None) if request else None
            if request is not None and app_settings is not None and app_settings.RATE_LIMIT_ENABLED:
                limiter: RateLimiter = request.app.state.limiter
                full_key = f"rate_limit:{identifier}:{get_client_identifier(request)}"
                allowed, info = await limiter.is_allowed(full_key, limit, window)
                request.state.rate_limit_info = info

                if not allowed:
                    logger.warning(
                        "Rate limit exceeded",
                        extra={"identifier": identifier, "client": get_client_identifier(request)},
                    )
                    raise HTTPException(
                        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                        detail="Rate limit exceeded. Please try again later.",
                        headers={
                            "X-RateLimit-Limit": str(info["limit"]),
                            "X-RateLimit-Remaining": "0",
                            "X-RateLimit-Reset": str(info["reset"]),
                            "Retry-After": str(window),
                        },
                    )

            return await func(*args, **kwargs)

        return wrapper
    return decorator


class WebSocketRateLimiter:
    """
    Limits messages per websocket connection within a time window,
    with a separate short burst window.
    """

    def __init__(
        self,
        message_limit: int = 60,
        window_seconds: int = 60,
        burst_limit: int = 10,
        burst_window: int = 1,
    ):
        self.message_limit = message_limit
        self.window = window_seconds
        self.burst_limit = burst_limit
        self.burst_window = burst_window
        # connection_id -> {"messages": [timestamps], "burst_start": ts, "burst_count": n}
        self.connections: dict = {}

    def check(self, connection_id: str) -> tuple[bool, Optional[str]]:
        """
        Returns:
            Tuple of (is_allowed, error_message)
        """
        now = time.time()
        conn_data = self.connections.setdefault(
            connection_id,
            {"messages": [], "burst_start": now, "burst_count": 0},
        )

        conn_data["messages"] = [ts for ts in conn_data["messages"] if now - ts < self.window]
        if len(conn_data["messages"]) >= self.message_limit:
            return False, f"Rate limit exceeded: max {self.message_limit} messages per {self.window} seconds"

        if now - conn_data["burst_start"] > self.burst_window:
            conn_data["burst_start"] = now
            conn_data["burst_count"] = 0
        if conn_data["burst_count"] >= self.burst_limit:
            return False, f"Too many messages: max {self.burst_limit} messages per {self.burst_window} seconds"

        conn_data["messages"].append(now)
        conn_data["burst_count"] += 1
        return True, None

    def cleanup(self, connection_id: str):
        self.connections.pop(connection_id, None)


ws_default_limiter = WebSocketRateLimiter(
    message_limit=120,  # 120 messages per minute
    window_seconds=60,
    burst_limit=20,     # Max 20 messages per second
    burst_window=1,
)

ws_playback_limiter = WebSocketRateLimiter(
    message_limit=180,  # display reports about once per second
    window_seconds=60,
    burst_limit=10,
    burst_window=1,
)


def check_websocket_rate_limit(connection_id: str, event: str) -> tuple[bool, Optional[str]]:
    """Playback reports get their own bucket so they never starve user actions"""
    if event == "playback-state":
        return ws_playback_limiter.check(connection_id)
    return ws_default_limiter.check(connection_id)


def cleanup_websocket_rate_limit(connection_id: str):
    ws_default_limiter.cleanup(connection_id)
    ws_playback_limiter.cleanup(connection_id)
