"""
Centralized Error Handlers for Karaoke Together

HTTP exception handlers that return one consistent error body, plus the
websocket helpers used by the gateway to report failures to a single
connection.
"""

from traceback import format_exc
from typing import Any, Union

from fastapi import FastAPI, Request, WebSocket, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from karaoke.exceptions import AppException, ErrorCode
from karaoke.utils.logging_config import get_logger

logger = get_logger(__name__)


class ErrorResponse:
    """
    Standard error body:
    {
        "success": false,
        "error": "room_not_found",
        "message": "Room not found",
        "details": {...},  // optional
        "status_code": 404
    }
    """

    @staticmethod
    def create(
        error_code: Union[ErrorCode, str],
        message: str,
        status_code: int,
        details: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        response: dict[str, Any] = {
            "success": False,
            "error": error_code.value if isinstance(error_code, ErrorCode) else error_code,
            "message": message,
            "status_code": status_code,
        }
        if details:
            response["details"] = details
        return response


def log_error(
    error: Exception,
    request: Request | None = None,
    level: str = "ERROR",
    extra: dict[str, Any] | None = None,
) -> None:
    """
    Log an error with request context.

    Args:
        error: Exception object
        request: FastAPI Request (optional)
        level: Log level name (ERROR, WARNING, INFO)
        extra: Additional context
    """
    log_data: dict[str, Any] = {
        "error_type": type(error).__name__,
        "error_message": str(error),
    }
    if request:
        log_data.update({
            "method": request.method,
            "url": str(request.url),
            "client": request.client.host if request.client is not None else None,
        })
    if extra:
        log_data.update(extra)

    logger.log(level.upper(), "Error occurred", extra=log_data)


def register_exception_handlers(app: FastAPI) -> None:
    """Register every exception handler on the app. Called from create_app()."""

    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        log_error(exc, request, level="ERROR" if exc.status_code >= 500 else "WARNING")
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse.create(
                error_code=exc.code,
                message=exc.message,
                status_code=exc.status_code,
                details=exc.details or None,
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        error_code_map = {
            400: ErrorCode.INVALID_INPUT,
            401: ErrorCode.INVALID_CREDENTIAL,
            403: ErrorCode.FORBIDDEN,
            404: ErrorCode.ROOM_NOT_FOUND,
            422: ErrorCode.VALIDATION_ERROR,
            429: ErrorCode.RATE_LIMIT_EXCEEDED,
        }
        error_code = error_code_map.get(exc.status_code, ErrorCode.INTERNAL_ERROR)

        log_error(exc, request, level="WARNING")
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse.create(
                error_code=error_code,
                message=str(exc.detail) if exc.detail else "HTTP error",
                status_code=exc.status_code,
            ),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {
                "field": ".".join(str(loc) for loc in error["loc"][1:]),
                "message": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]
        log_error(exc, request, level="WARNING", extra={"validation_errors": errors})
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=ErrorResponse.create(
                error_code=ErrorCode.VALIDATION_ERROR,
                message="Validation error, please check your input",
                status_code=422,
                details={"validation_errors": errors},
            ),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        log_error(exc, request, level="ERROR", extra={"traceback": format_exc()})

        debug_mode = getattr(request.app.state, "settings", None) is not None and request.app.state.settings.DEBUG
        if debug_mode:
            message = f"{type(exc).__name__}: {str(exc)}"
            details = {"traceback": format_exc()}
        else:
            message = "An unexpected error occurred. Please try again later."
            details = None

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse.create(
                error_code=ErrorCode.INTERNAL_ERROR,
                message=message,
                status_code=500,
                details=details,
            ),
        )


# ==================== WebSocket Error Handling ====================

class WebSocketErrorHandler:
    """
    Error helpers for websocket connections: report a failure to the one
    connection that caused it and log it with room context.
    """

    @staticmethod
    async def send_error_message(
        websocket: WebSocket,
        error_type: Union[ErrorCode, str],
        message: str,
    ) -> bool:
        """
        Send an ``error-message`` event.

        Returns:
            bool: True when the message was sent
        """
        try:
            await websocket.send_json({
                "event": "error-message",
                "data": {
                    "type": error_type.value if isinstance(error_type, ErrorCode) else error_type,
                    "message": message,
                },
            })
            return True
        except Exception as e:
            log_error(e, level="WARNING", extra={"failed_message": message})
            return False

    @staticmethod
    def log_websocket_error(
        error: Exception,
        room_id: str | None = None,
        connection_id: str | None = None,
        event: str | None = None,
        level: str = "WARNING",
    ) -> None:
        log_data: dict[str, Any] = {
            "error_type": type(error).__name__,
            "error_message": str(error),
        }
        if room_id:
            log_data["room_id"] = room_id
        if connection_id:
            log_data["connection_id"] = connection_id
        if event:
            log_data["event"] = event

        logger.log(level, "WebSocket error occurred", extra=log_data)
