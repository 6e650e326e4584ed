"""Error taxonomy for the image host and its FastAPI handlers.

Every error a handler can raise derives from ``ImageHostError`` and carries the
HTTP status it maps to plus the message the client is allowed to see. Kinds
flagged ``expose = False`` keep their detail in the server log only.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ImageHostError(Exception):
    """Base class for all errors surfaced through the HTTP API."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message = "Internal server error"
    expose = False

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.public_message
        super().__init__(self.detail)

    @property
    def client_message(self) -> str:
        return self.detail if self.expose else self.public_message


class ValidationError(ImageHostError):
    """Raised when a request is malformed in a way the caller can fix."""
    status_code = status.HTTP_400_BAD_REQUEST
    public_message = "Validation error"
    expose = True


class InvalidFileFormat(ImageHostError):
    """Raised when an upload is not an allowed, decodable image."""
    status_code = status.HTTP_400_BAD_REQUEST
    public_message = "Invalid file format"
    expose = True


class FileTooLarge(ImageHostError):
    """Raised when an upload exceeds the configured maximum size."""
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    expose = True

    def __init__(self, max_size: int):
        self.max_size = max_size
        super().__init__(f"File too large. Maximum size: {max_size} bytes")


class RateLimitExceeded(ImageHostError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    public_message = "Rate limit exceeded"


class TooManyRequests(ImageHostError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    public_message = "Too many concurrent requests"


class InvalidImageId(ImageHostError):
    """
    Raised for any token that cannot be decoded into a file reference.

    The reason is never reported, whether the base64, the length, the
    authentication tag or the payload was at fault.
    """
    status_code = status.HTTP_400_BAD_REQUEST
    public_message = "Invalid image ID"


class InvalidId(ImageHostError):
    """Raised when a non-token identifier (e.g. a job id) is malformed."""
    status_code = status.HTTP_400_BAD_REQUEST
    public_message = "Invalid ID format"


class NotFound(ImageHostError):
    status_code = status.HTTP_404_NOT_FOUND
    public_message = "Image not found"


class Unauthorized(ImageHostError):
    status_code = status.HTTP_401_UNAUTHORIZED
    public_message = "Unauthorized"


class EncryptionError(ImageHostError):
    """Raised when a packet is too short or fails authentication."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message = "Encryption error"


class BackendError(ImageHostError):
    """Raised when the Telegram Bot API call fails or answers unexpectedly."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    public_message = "External service error"


class InternalError(ImageHostError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message = "Internal server error"


class ConfigError(ImageHostError):
    """Raised when configuration is missing or invalid. Fatal at startup."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message = "Configuration error"


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": message, "status": status_code},
    )


async def image_host_error_handler(request: Request, exc: ImageHostError) -> JSONResponse:
    request_id = getattr(request.state, "request_id", "unknown")
    if exc.expose:
        logger.info(
            f"{type(exc).__name__}: {exc.detail} [request_id={request_id}] path={request.url.path}"
        )
    elif exc.status_code >= 500:
        logger.error(
            f"{type(exc).__name__}: {exc.detail} [request_id={request_id}] path={request.url.path}"
        )
    else:
        logger.warning(
            f"{type(exc).__name__}: {exc.detail} [request_id={request_id}] path={request.url.path}"
        )
    return error_response(exc.status_code, exc.client_message)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return error_response(status.HTTP_400_BAD_REQUEST, message)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    request_id = getattr(request.state, "request_id", "unknown")
    logger.error(
        f"Unhandled error: {exc} [request_id={request_id}] path={request.url.path}",
        exc_info=exc,
    )
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, InternalError.public_message)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ImageHostError, image_host_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
