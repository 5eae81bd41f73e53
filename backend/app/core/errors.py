"""Error taxonomy shared by the room services and the HTTP layer."""

from __future__ import annotations

from typing import Any


class RoomServiceError(Exception):
    """Base class for every error raised by the room services.

    ``extra`` carries machine readable hints (for example
    ``requires_permission``) that are forwarded verbatim to API clients.
    """

    status_code: int = 500
    error: str = "InternalServerError"

    def __init__(self, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.error, "detail": self.message, **self.extra}


class NotFoundError(RoomServiceError):
    """Room, membership, invitation or request is absent or not visible."""

    status_code = 404
    error = "NotFound"


class ForbiddenError(RoomServiceError):
    """A role or hierarchy check failed."""

    status_code = 403
    error = "Forbidden"


class BadRequestError(RoomServiceError):
    """Malformed input or a non-idempotent duplicate."""

    status_code = 400
    error = "BadRequest"


class ConflictError(RoomServiceError):
    """The resource already exists in a conflicting state."""

    status_code = 409
    error = "Conflict"


class ExhaustedRetriesError(RoomServiceError):
    """A unique code could not be generated within the retry bound."""

    status_code = 503
    error = "ExhaustedRetries"


class InternalError(RoomServiceError):
    """The store rejected the transaction; nothing was committed."""

    status_code = 500
    error = "InternalServerError"
