"""
Custom Exception Classes for Karaoke Together

Every failure that can reach a client is one of these classes. HTTP routes
turn them into JSON error bodies (see error_handlers.py) and the websocket
gateway turns them into ``error-message`` events sent to the originating
connection only.
"""

from typing import Any, Optional
from enum import Enum


class ErrorCode(str, Enum):
    """Error type strings, shared by HTTP error bodies and error-message events"""

    # Lookup
    ROOM_NOT_FOUND = "room_not_found"
    CONTROLLER_NOT_FOUND = "controller_not_found"

    # Credentials
    FORBIDDEN = "forbidden"
    INVALID_CREDENTIAL = "invalid_credential"
    REGISTRATION_CLOSED = "registration_closed"

    # State
    CONFLICT = "conflict"
    CAPACITY_EXCEEDED = "capacity_exceeded"

    # Input
    INVALID_NAME = "invalid_name"
    INVALID_INPUT = "invalid_input"
    VALIDATION_ERROR = "validation_error"

    # Infrastructure
    EXHAUSTED_ATTEMPTS = "exhausted_attempts"
    EXTERNAL_SERVICE_ERROR = "external_service_error"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    INTERNAL_ERROR = "internal_error"


class AppException(Exception):
    """
    Base exception class for all application errors.

    Attributes:
        message: Human readable message shown to the client
        code: Error type (ErrorCode enum)
        status_code: HTTP status code
        details: Extra error details (optional)
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


# ==================== Not Found ====================

class NotFoundException(AppException):
    def __init__(
        self,
        message: str,
        code: ErrorCode,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, code, 404, details)


class RoomNotFoundException(NotFoundException):
    def __init__(self, room_id: str | None = None):
        super().__init__(
            "Room not found",
            ErrorCode.ROOM_NOT_FOUND,
            {"room_id": room_id} if room_id else None,
        )


class ControllerNotFoundException(NotFoundException):
    def __init__(self, controller_id: str | None = None):
        super().__init__(
            "Controller not found",
            ErrorCode.CONTROLLER_NOT_FOUND,
            {"controller_id": controller_id} if controller_id else None,
        )


# ==================== Credentials ====================

class ForbiddenException(AppException):
    """Wrong key for the tier, or a disabled controller trying to mutate"""

    def __init__(self, message: str = "You are not allowed to do that"):
        super().__init__(message, ErrorCode.FORBIDDEN, 403)


class InvalidCredentialException(AppException):
    def __init__(self, message: str = "Invalid or revoked controller key"):
        super().__init__(message, ErrorCode.INVALID_CREDENTIAL, 401)


class RegistrationClosedException(AppException):
    def __init__(self, message: str = "Registration is closed for this room"):
        super().__init__(message, ErrorCode.REGISTRATION_CLOSED, 403)


# ==================== State ====================

class ConflictException(AppException):
    def __init__(self, message: str = "Could not resolve a unique name"):
        super().__init__(message, ErrorCode.CONFLICT, 409)


class CapacityExceededException(AppException):
    """Room, controller or queue ceiling reached"""

    def __init__(self, message: str, resource: str):
        super().__init__(message, ErrorCode.CAPACITY_EXCEEDED, 409, {"resource": resource})


# ==================== Input ====================

class InvalidNameException(AppException):
    def __init__(self, reason: str):
        super().__init__(f"Invalid name: {reason}", ErrorCode.INVALID_NAME, 400, {"reason": reason})


class InvalidInputException(AppException):
    def __init__(self, field: str, reason: str = "Invalid value"):
        super().__init__(
            f"Invalid value for {field}: {reason}",
            ErrorCode.INVALID_INPUT,
            400,
            {"field": field, "reason": reason},
        )


# ==================== Infrastructure ====================

class ExhaustedAttemptsException(AppException):
    """Token or room id generation found no unused value within the retry ceiling"""

    def __init__(self, what: str, attempts: int):
        super().__init__(
            f"Could not generate a unique {what} after {attempts} attempts",
            ErrorCode.EXHAUSTED_ATTEMPTS,
            503,
            {"what": what, "attempts": attempts},
        )


class ExternalServiceException(AppException):
    def __init__(
        self,
        service: str,
        message: str = "External service error",
        status_code: int = 502,
    ):
        super().__init__(
            f"{service}: {message}",
            ErrorCode.EXTERNAL_SERVICE_ERROR,
            status_code,
            {"service": service},
        )
