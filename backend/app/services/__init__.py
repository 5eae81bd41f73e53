"""Application services for the room membership lifecycle."""

from .access_requests import AccessRequestService
from .invitations import AcceptResult, InvitationService
from .membership import JoinResult, LeaveResult, MembershipService, RoomView
from .notifier import EventNotifier, event_notifier, get_event_notifier, session_registry

__all__ = [
    "AccessRequestService",
    "InvitationService",
    "AcceptResult",
    "MembershipService",
    "JoinResult",
    "LeaveResult",
    "RoomView",
    "EventNotifier",
    "event_notifier",
    "get_event_notifier",
    "session_registry",
]
