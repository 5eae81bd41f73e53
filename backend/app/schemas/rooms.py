"""Schemas for room lifecycle and membership endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models import ModerationAction, RoomRole, RoomVisibility
from app.schemas.users import UserSummary

VISIBILITY_ALIASES: dict[str, RoomVisibility] = {
    "public": RoomVisibility.PUBLIC,
    "publica": RoomVisibility.PUBLIC,
    "pública": RoomVisibility.PUBLIC,
    "private": RoomVisibility.PRIVATE,
    "privada": RoomVisibility.PRIVATE,
}


def parse_visibility(value: Any) -> Any:
    if isinstance(value, str):
        return VISIBILITY_ALIASES.get(value.strip().lower(), value)
    return value


class RoomCreate(BaseModel):
    """Payload for creating a new room.

    Length limits are enforced by the service so that violations are reported
    with the offending ``field``.
    """

    name: str = Field(..., description="Room name, 3 to 50 characters")
    description: str | None = Field(default=None, description="Optional description, up to 200 characters")
    visibility: RoomVisibility = Field(default=RoomVisibility.PUBLIC)

    @field_validator("visibility", mode="before")
    @classmethod
    def normalize_visibility(cls, value: Any) -> Any:
        return parse_visibility(value)


class RoomRead(BaseModel):
    """Room representation returned to clients, personalised for the caller."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None = None
    visibility: RoomVisibility
    code: str
    owner_id: int
    owner_name: str | None = None
    current_members: int
    is_active: bool
    created_at: datetime
    last_activity: datetime
    my_role: RoomRole | None = None
    is_favorite: bool = False

    @classmethod
    def from_view(cls, view) -> "RoomRead":
        room = view.room
        owner = room.owner
        return cls(
            id=room.id,
            name=room.name,
            description=room.description,
            visibility=room.visibility,
            code=room.code,
            owner_id=room.owner_id,
            owner_name=owner.name if owner is not None else None,
            current_members=room.current_members,
            is_active=room.is_active,
            created_at=room.created_at,
            last_activity=room.last_activity,
            my_role=view.role,
            is_favorite=view.is_favorite,
        )


class RoomMemberRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    role: RoomRole
    is_favorite: bool
    joined_at: datetime
    user: UserSummary


class FavoriteUpdate(BaseModel):
    """Omit ``is_favorite`` to flip the current value."""

    is_favorite: bool | None = None


class JoinResultRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    room_id: int
    role: RoomRole
    already_member: bool


class LeaveResultRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    room_id: int
    new_owner_id: int | None = None
    room_deactivated: bool


class ModerationLogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    room_id: int
    moderator_id: int
    target_user_id: int
    action: ModerationAction
    created_at: datetime
