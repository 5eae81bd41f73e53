from __future__ import annotations

from enum import Enum


class RoomRole(str, Enum):
    """Roles that a user can have inside a room, strongest first."""

    OWNER = "owner"
    MODERATOR = "moderator"
    MEMBER = "member"


class RoomVisibility(str, Enum):
    """Who may discover and join a room."""

    PUBLIC = "public"
    PRIVATE = "private"


class InvitationStatus(str, Enum):
    """Lifecycle states for direct room invitations."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"


class AccessRequestStatus(str, Enum):
    """Lifecycle states for room access requests."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ModerationAction(str, Enum):
    """Actions recorded in the moderation log."""

    PROMOTE = "promote"
    DEMOTE = "demote"
    KICK = "kick"


class FriendRequestStatus(str, Enum):
    """Lifecycle states for friend relationships."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class NotificationType(str, Enum):
    """Persisted inbox notifications created by room workflows."""

    ROOM_INVITE = "room_invite"
    ROOM_ACCESS_REQUEST = "room_access_request"
