"""Schemas for direct invitations and invite links."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.models import InvitationStatus
from app.schemas.users import UserSummary


class InvitationCreate(BaseModel):
    invitee_id: int = Field(..., ge=1, description="User that should receive the invitation")


class InvitationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    room_id: int
    invitee_id: int
    inviter_id: int
    status: InvitationStatus
    created_at: datetime
    expires_at: datetime | None = None
    responded_at: datetime | None = None


class InvitationDetail(InvitationRead):
    invitee: UserSummary
    inviter: UserSummary


class AcceptResultRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    room_id: int
    already_member: bool


class InviteLinkCreate(BaseModel):
    ttl_hours: int | None = Field(
        default=None, description="Lifetime of the link in hours; the server default applies when omitted"
    )


class InviteLinkRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    room_id: int
    code: str
    url: str
    created_by: int
    created_at: datetime
    expires_at: datetime
    is_active: bool
