"""Schemas describing users as seen by room clients."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    login: str
    display_name: str | None = None
