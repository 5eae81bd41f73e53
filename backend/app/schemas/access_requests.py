"""Schemas for room access requests."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.models import AccessRequestStatus
from app.schemas.users import UserSummary


class AccessRequestCreate(BaseModel):
    message: str | None = Field(default=None, max_length=500)


class AccessRequestRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    room_id: int
    user_id: int
    message: str | None = None
    status: AccessRequestStatus
    created_at: datetime
    reviewed_by: int | None = None
    reviewed_at: datetime | None = None
    user: UserSummary | None = None
