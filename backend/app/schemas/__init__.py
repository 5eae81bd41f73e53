"""Pydantic schemas for API payloads."""

from .access_requests import AccessRequestCreate, AccessRequestRead
from .invites import (
    AcceptResultRead,
    InvitationCreate,
    InvitationDetail,
    InvitationRead,
    InviteLinkCreate,
    InviteLinkRead,
)
from .rooms import (
    FavoriteUpdate,
    JoinResultRead,
    LeaveResultRead,
    ModerationLogRead,
    RoomCreate,
    RoomMemberRead,
    RoomRead,
)
from .users import UserSummary

__all__ = [
    "AccessRequestCreate",
    "AccessRequestRead",
    "AcceptResultRead",
    "InvitationCreate",
    "InvitationDetail",
    "InvitationRead",
    "InviteLinkCreate",
    "InviteLinkRead",
    "FavoriteUpdate",
    "JoinResultRead",
    "LeaveResultRead",
    "ModerationLogRead",
    "RoomCreate",
    "RoomMemberRead",
    "RoomRead",
    "UserSummary",
]
