"""
HTTP middleware: request logging and rate limit headers.
"""
import time

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from karaoke.utils.logging_config import fastapi_logger


class RequestLogMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and duration of every HTTP request"""

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        response: Response = await call_next(request)
        duration_ms = round((time.perf_counter() - started) * 1000, 2)

        fastapi_logger.info(
            "HTTP request",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        return response


class RateLimitHeaderMiddleware(BaseHTTPMiddleware):
    """
    Add rate limit headers to HTTP responses.
    Values are set by the rate_limit decorator in request.state.rate_limit_info
    """

    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)

        if hasattr(request.state, "rate_limit_info"):
            info = request.state.rate_limit_info
            response.headers["X-RateLimit-Limit"] = str(info.get("limit", 0))
            response.headers["X-RateLimit-Remaining"] = str(info.get("remaining", 0))
            response.headers["X-RateLimit-Reset"] = str(info.get("reset", 0))

        return response
