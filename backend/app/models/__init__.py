"""Database models package."""

from .base import Base
from .chat import (
    Conversation,
    ConversationParticipant,
    Message,
    Notification,
    RoomConversation,
)
from .enums import (
    AccessRequestStatus,
    FriendRequestStatus,
    InvitationStatus,
    ModerationAction,
    NotificationType,
    RoomRole,
    RoomVisibility,
)
from .rooms import (
    Room,
    RoomAccessRequest,
    RoomInvitation,
    RoomInviteLink,
    RoomMember,
    RoomModerationLog,
)
from .users import FriendLink, User

__all__ = [
    "Base",
    "User",
    "FriendLink",
    "Room",
    "RoomMember",
    "RoomInvitation",
    "RoomAccessRequest",
    "RoomInviteLink",
    "RoomModerationLog",
    "Conversation",
    "RoomConversation",
    "ConversationParticipant",
    "Message",
    "Notification",
    "RoomRole",
    "RoomVisibility",
    "InvitationStatus",
    "AccessRequestStatus",
    "ModerationAction",
    "FriendRequestStatus",
    "NotificationType",
]
