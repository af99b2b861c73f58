"""Application exception classes and handlers."""

import structlog
from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = structlog.get_logger()


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, code: str, status_code: int = 400) -> None:
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(message)


# --- Validation (400) ---


class ValidationError(AppException):
    """Bad or missing input the caller can correct."""

    def __init__(
        self, message: str = "Invalid request", code: str = "VALIDATION_ERROR"
    ) -> None:
        super().__init__(message=message, code=code, status_code=400)


class EmptyTextError(ValidationError):
    """Message text is empty or whitespace only."""

    def __init__(self) -> None:
        super().__init__(message="Message text is required", code="EMPTY_TEXT")


class InvalidCursorError(ValidationError):
    """The ``after`` cursor could not be parsed."""

    def __init__(self, detail: str = "") -> None:
        message = f"Invalid cursor: {detail}" if detail else "Invalid cursor"
        super().__init__(message=message, code="INVALID_CURSOR")


class MigrationRequiredError(AppException):
    """Operation needs columns the database does not have yet."""

    def __init__(self, feature: str) -> None:
        super().__init__(
            message=f"Database migration required for {feature}",
            code="MIGRATION_REQUIRED",
            status_code=400,
        )


# --- Authentication (401) ---


class AuthenticationError(AppException):
    """Base authentication error."""

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message=message, code="AUTHENTICATION_ERROR", status_code=401)


# --- Authorization (403) ---


class AuthorizationError(AppException):
    """Insufficient permissions."""

    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__(message=message, code="AUTHORIZATION_ERROR", status_code=403)


class PolicyError(AppException):
    """Authenticated but forbidden by a business rule."""

    def __init__(self, message: str, code: str = "POLICY_VIOLATION") -> None:
        super().__init__(message=message, code=code, status_code=403)


class NotAssignedError(PolicyError):
    """Companion is not the one assigned to this session."""

    def __init__(self) -> None:
        super().__init__(
            message="Not assigned to this session",
            code="NOT_ASSIGNED",
        )


class NotGroupRoomError(PolicyError):
    """Only group rooms may be closed."""

    def __init__(self) -> None:
        super().__init__(
            message=(
                "Hanya ruang grup yang dapat ditutup. "
                "Chat pribadi tidak dapat dihapus."
            ),
            code="NOT_GROUP_ROOM",
        )


# --- Not Found (404) ---


class NotFoundError(AppException):
    """Base missing-entity error."""

    def __init__(self, message: str = "Not found", code: str = "NOT_FOUND") -> None:
        super().__init__(message=message, code=code, status_code=404)


class UserNotFoundError(NotFoundError):
    """User not found."""

    def __init__(self) -> None:
        super().__init__(message="User not found", code="USER_NOT_FOUND")


class SessionNotFoundError(NotFoundError):
    """Chat session not found."""

    def __init__(self) -> None:
        super().__init__(message="Session not found", code="SESSION_NOT_FOUND")


# --- Conflict (409) ---


class SessionClosedError(AppException):
    """Session no longer accepts messages."""

    def __init__(self) -> None:
        super().__init__(
            message="Ruang chat ini telah ditutup.",
            code="SESSION_CLOSED",
            status_code=409,
        )


# --- Store (500) ---


class StoreError(AppException):
    """Backing-store failure; detail stays in the server log."""

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(message=message, code="STORE_ERROR", status_code=500)


class SchemaUnsupportedError(Exception):
    """An optional column is missing from the backing store.

    Raised by repositories and always handled there or in services by
    retrying with reduced capabilities. Never rendered to a client.
    """

    def __init__(self, feature: str) -> None:
        self.feature = feature
        super().__init__(f"Optional schema feature unavailable: {feature}")


# --- Exception Handlers ---


def _error_body(status: int, message: str, code: str) -> dict:
    return {"status": status, "message": message, "code": code}


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Central exception handler for AppException."""
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.status_code, exc.message, exc.code),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render request schema violations in the unified error shape."""
    body = _error_body(422, "Request validation failed", "REQUEST_VALIDATION_ERROR")
    body["errors"] = jsonable_encoder(exc.errors())
    return JSONResponse(status_code=422, content=body)


async def store_exception_handler(
    request: Request, exc: SQLAlchemyError
) -> JSONResponse:
    """Hide database failures behind a generic 500."""
    logger.error("Store failure", path=request.url.path, exc_info=exc)
    error = StoreError()
    return JSONResponse(
        status_code=error.status_code,
        content=_error_body(error.status_code, error.message, error.code),
    )
