"""Core utilities for the Study Rooms backend."""

from .errors import (
    BadRequestError,
    ConflictError,
    ExhaustedRetriesError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    RoomServiceError,
)

__all__ = [
    "RoomServiceError",
    "NotFoundError",
    "ForbiddenError",
    "BadRequestError",
    "ConflictError",
    "ExhaustedRetriesError",
    "InternalError",
]
