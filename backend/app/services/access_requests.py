"""Review of self-initiated requests to join a room."""

from __future__ import annotations

import logging

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, selectinload

from app.core.errors import NotFoundError
from app.database import atomic
from app.models import AccessRequestStatus, Notification, NotificationType, RoomAccessRequest
from app.models.base import utcnow
from app.services.conversations import ConversationBinder
from app.services.notifier import EventNotifier
from app.services.room_state import (
    AUTHORITY_ROLES,
    add_member,
    get_active_room,
    get_membership,
    reload_for_update,
    require_membership,
    track_operation,
)

logger = logging.getLogger(__name__)


class AccessRequestService:
    def __init__(self, db: Session, notifier: EventNotifier) -> None:
        self.db = db
        self.notifier = notifier
        self.conversations = ConversationBinder(db)

    def list_access_requests(self, actor_id: int, room_id: int) -> list[RoomAccessRequest]:
        room = get_active_room(self.db, room_id)
        require_membership(
            self.db,
            room.id,
            actor_id,
            roles=AUTHORITY_ROLES,
            message="Only owners and moderators can review access requests",
        )
        stmt = (
            select(RoomAccessRequest)
            .options(selectinload(RoomAccessRequest.user))
            .where(
                RoomAccessRequest.room_id == room.id,
                RoomAccessRequest.status == AccessRequestStatus.PENDING,
            )
            .order_by(RoomAccessRequest.created_at.desc(), RoomAccessRequest.id.desc())
        )
        return list(self.db.execute(stmt).scalars())

    @track_operation("approve_access_request")
    def approve_access_request(self, actor_id: int, room_id: int, request_id: int) -> RoomAccessRequest:
        with atomic(self.db):
            request, room = self._lock_pending(actor_id, room_id, request_id)
            requester_id = request.user_id
            if get_membership(self.db, room.id, requester_id) is None:
                add_member(self.db, room, requester_id, conversations=self.conversations)
            self._close(request, actor_id, AccessRequestStatus.APPROVED)
            room_name = room.name

        logger.info("User %s approved access request %s for room %s", actor_id, request_id, room_id)
        self.notifier.notify_user(
            requester_id,
            "room:access_approved",
            {"room_id": room_id, "room_name": room_name, "approved_by": actor_id},
        )
        return request

    @track_operation("reject_access_request")
    def reject_access_request(self, actor_id: int, room_id: int, request_id: int) -> RoomAccessRequest:
        with atomic(self.db):
            request, room = self._lock_pending(actor_id, room_id, request_id)
            requester_id = request.user_id
            self._close(request, actor_id, AccessRequestStatus.REJECTED)
            room_name = room.name

        logger.info("User %s rejected access request %s for room %s", actor_id, request_id, room_id)
        self.notifier.notify_user(
            requester_id,
            "room:access_rejected",
            {"room_id": room_id, "room_name": room_name, "rejected_by": actor_id},
        )
        return request

    def _lock_pending(self, actor_id: int, room_id: int, request_id: int):
        room = get_active_room(self.db, room_id, lock=True)
        require_membership(
            self.db,
            room.id,
            actor_id,
            roles=AUTHORITY_ROLES,
            message="Only owners and moderators can review access requests",
        )
        request = reload_for_update(
            self.db,
            RoomAccessRequest,
            RoomAccessRequest.id == request_id,
            RoomAccessRequest.room_id == room.id,
            RoomAccessRequest.status == AccessRequestStatus.PENDING,
        )
        if request is None:
            raise NotFoundError("Request not found")
        return request, room

    def _close(self, request: RoomAccessRequest, actor_id: int, status: AccessRequestStatus) -> None:
        request.status = status
        request.reviewed_by = actor_id
        request.reviewed_at = utcnow()
        # The inbox entries shown to reviewers are obsolete once a decision is made.
        self.db.execute(
            delete(Notification).where(
                Notification.type == NotificationType.ROOM_ACCESS_REQUEST,
                Notification.related_id == request.id,
            )
        )
