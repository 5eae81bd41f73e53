"""Direct invitations and shareable invite links."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session, selectinload

from app.config import Settings, get_settings
from app.core.codes import generate_unique_token
from app.core.errors import BadRequestError, NotFoundError
from app.database import atomic
from app.models import (
    InvitationStatus,
    Notification,
    NotificationType,
    RoomInvitation,
    RoomInviteLink,
    RoomRole,
    User,
)
from app.models.base import utcnow
from app.services.conversations import ConversationBinder
from app.services.membership import JoinResult
from app.services.notifier import EventNotifier
from app.services.room_state import (
    AUTHORITY_ROLES,
    add_member,
    get_active_room,
    get_membership,
    is_expired,
    reload_for_update,
    require_membership,
    track_operation,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AcceptResult:
    room_id: int
    already_member: bool


class InvitationService:
    """Invitation workflow: send, revoke, accept and reject, plus invite links."""

    def __init__(self, db: Session, notifier: EventNotifier, settings: Settings | None = None) -> None:
        self.db = db
        self.notifier = notifier
        self.settings = settings or get_settings()
        self.conversations = ConversationBinder(db)

    @track_operation("send_invite")
    def send_invite(self, sender_id: int, room_id: int, invitee_id: int) -> RoomInvitation:
        with atomic(self.db):
            room = get_active_room(self.db, room_id, lock=True)
            require_membership(self.db, room.id, sender_id)
            invitee = self.db.get(User, invitee_id)
            if invitee is None:
                raise NotFoundError("User not found")
            if get_membership(self.db, room.id, invitee_id) is not None:
                raise BadRequestError("User is already a member of this room")

            now = utcnow()
            pending = self.db.execute(
                select(RoomInvitation).where(
                    RoomInvitation.room_id == room.id,
                    RoomInvitation.invitee_id == invitee_id,
                    RoomInvitation.status == InvitationStatus.PENDING,
                )
            ).scalars().all()
            for previous in pending:
                if not is_expired(previous.expires_at, now):
                    raise BadRequestError("An invitation was already sent to this user")
            for previous in pending:
                previous.status = InvitationStatus.EXPIRED

            invitation = RoomInvitation(
                room_id=room.id,
                invitee_id=invitee_id,
                inviter_id=sender_id,
                status=InvitationStatus.PENDING,
                created_at=now,
                expires_at=now + timedelta(hours=self.settings.invitation_ttl_hours),
            )
            self.db.add(invitation)
            self.db.flush()

            sender = self.db.get(User, sender_id)
            sender_name = sender.name if sender is not None else "Someone"
            self.db.add(
                Notification(
                    user_id=invitee_id,
                    room_id=room.id,
                    type=NotificationType.ROOM_INVITE,
                    sender_id=sender_id,
                    related_id=invitation.id,
                    title="Study room invitation",
                    message=f'{sender_name} invited you to join "{room.name}"',
                    created_at=now,
                )
            )
            payload = {
                "invite_id": invitation.id,
                "room_id": room.id,
                "room_name": room.name,
                "inviter_id": sender_id,
                "inviter_name": sender_name,
            }

        logger.info("User %s invited user %s to room %s", sender_id, invitee_id, room_id)
        self.notifier.notify_user(invitee_id, "notification:room_invite", payload)
        return invitation

    def list_invites(self, actor_id: int, room_id: int) -> list[RoomInvitation]:
        room = get_active_room(self.db, room_id)
        require_membership(self.db, room.id, actor_id)
        stmt = (
            select(RoomInvitation)
            .options(selectinload(RoomInvitation.invitee), selectinload(RoomInvitation.inviter))
            .where(
                RoomInvitation.room_id == room.id,
                RoomInvitation.status == InvitationStatus.PENDING,
            )
            .order_by(RoomInvitation.created_at.desc(), RoomInvitation.id.desc())
        )
        now = utcnow()
        return [
            invitation
            for invitation in self.db.execute(stmt).scalars()
            if not is_expired(invitation.expires_at, now)
        ]

    @track_operation("revoke_invite")
    def revoke_invite(self, actor_id: int, room_id: int, invite_id: int) -> None:
        with atomic(self.db):
            room = get_active_room(self.db, room_id, lock=True)
            require_membership(self.db, room.id, actor_id)
            invitation = reload_for_update(
                self.db,
                RoomInvitation,
                RoomInvitation.id == invite_id,
                RoomInvitation.room_id == room.id,
                RoomInvitation.status == InvitationStatus.PENDING,
            )
            if invitation is None or is_expired(invitation.expires_at):
                raise NotFoundError("Invitation not found")
            invitee_id = invitation.invitee_id
            self.db.execute(
                delete(Notification).where(
                    Notification.type == NotificationType.ROOM_INVITE,
                    Notification.related_id == invite_id,
                )
            )
            self.db.delete(invitation)

        logger.info("User %s revoked invitation %s in room %s", actor_id, invite_id, room_id)
        self.notifier.notify_user(
            invitee_id,
            "notification:room_invite_revoked",
            {"invite_id": invite_id, "room_id": room_id},
        )

    @track_operation("accept_invite")
    def accept_invite(self, user_id: int, invite_id: int) -> AcceptResult:
        with atomic(self.db):
            invitation, room = self._lock_invitation(user_id, invite_id)
            now = utcnow()
            invitation.status = InvitationStatus.ACCEPTED
            invitation.responded_at = now

            if get_membership(self.db, room.id, user_id) is not None:
                return AcceptResult(room.id, True)

            self.db.execute(
                update(RoomInvitation)
                .where(
                    RoomInvitation.room_id == room.id,
                    RoomInvitation.invitee_id == user_id,
                    RoomInvitation.id != invitation.id,
                    RoomInvitation.status != InvitationStatus.PENDING,
                )
                .values(status=InvitationStatus.EXPIRED)
            )
            add_member(self.db, room, user_id, conversations=self.conversations)
            room_id = room.id

        logger.info("User %s accepted invitation %s to room %s", user_id, invite_id, room_id)
        return AcceptResult(room_id, False)

    @track_operation("reject_invite")
    def reject_invite(self, user_id: int, invite_id: int) -> RoomInvitation:
        with atomic(self.db):
            invitation, _room = self._lock_invitation(user_id, invite_id)
            invitation.status = InvitationStatus.DECLINED
            invitation.responded_at = utcnow()
        return invitation

    @track_operation("create_invite_link")
    def create_invite_link(self, actor_id: int, room_id: int, ttl_hours: int | None = None) -> RoomInviteLink:
        if ttl_hours is None:
            ttl_hours = self.settings.invite_link_default_ttl_hours
        with atomic(self.db):
            room = get_active_room(self.db, room_id, lock=True)
            require_membership(
                self.db,
                room.id,
                actor_id,
                roles=AUTHORITY_ROLES,
                message="Only owners and moderators can create invite links",
            )
            if not 1 <= ttl_hours <= self.settings.invite_link_max_ttl_hours:
                raise BadRequestError(
                    f"Invite link lifetime must be between 1 and {self.settings.invite_link_max_ttl_hours} hours",
                    field="ttl_hours",
                )

            self.db.execute(
                update(RoomInviteLink)
                .where(RoomInviteLink.room_id == room.id, RoomInviteLink.is_active.is_(True))
                .values(is_active=False)
            )
            code = generate_unique_token(
                self._link_code_exists, attempts=self.settings.code_generation_attempts
            )
            now = utcnow()
            link = RoomInviteLink(
                room_id=room.id,
                code=code,
                created_by=actor_id,
                created_at=now,
                expires_at=now + timedelta(hours=ttl_hours),
                is_active=True,
            )
            self.db.add(link)
        logger.info("User %s created an invite link for room %s", actor_id, room_id)
        return link

    def get_active_invite_link(self, actor_id: int, room_id: int) -> RoomInviteLink:
        room = get_active_room(self.db, room_id)
        require_membership(self.db, room.id, actor_id)
        link = self.db.execute(
            select(RoomInviteLink)
            .where(RoomInviteLink.room_id == room.id, RoomInviteLink.is_active.is_(True))
            .order_by(RoomInviteLink.created_at.desc(), RoomInviteLink.id.desc())
            .limit(1)
        ).scalar_one_or_none()
        if link is None or is_expired(link.expires_at):
            raise NotFoundError("No active invite link found")
        return link

    @track_operation("redeem_invite_link")
    def redeem_invite_link(self, user_id: int, code: str) -> JoinResult:
        """Join the room behind an invite link; the friendship gate does not apply."""

        with atomic(self.db):
            room_id = self.db.execute(
                select(RoomInviteLink.room_id).where(RoomInviteLink.code == code)
            ).scalar_one_or_none()
            if room_id is None:
                raise NotFoundError("Invite link not found")
            room = get_active_room(self.db, room_id, lock=True)
            link = reload_for_update(self.db, RoomInviteLink, RoomInviteLink.code == code)
            if link is None or not link.is_active or is_expired(link.expires_at):
                raise NotFoundError("Invite link is no longer valid")

            membership = get_membership(self.db, room.id, user_id)
            if membership is not None:
                return JoinResult(room.id, membership.role, True)
            add_member(self.db, room, user_id, conversations=self.conversations)

        logger.info("User %s joined room %s through an invite link", user_id, room_id)
        return JoinResult(room_id, RoomRole.MEMBER, False)

    def invite_url(self, link: RoomInviteLink) -> str:
        return f"{self.settings.invite_link_base_url.rstrip('/')}/{link.code}"

    def _link_code_exists(self, code: str) -> bool:
        return self.db.execute(select(RoomInviteLink.id).where(RoomInviteLink.code == code)).first() is not None

    def _lock_invitation(self, user_id: int, invite_id: int):
        room_id = self.db.execute(
            select(RoomInvitation.room_id).where(
                RoomInvitation.id == invite_id,
                RoomInvitation.invitee_id == user_id,
            )
        ).scalar_one_or_none()
        if room_id is None:
            raise NotFoundError("Invitation not found")
        room = get_active_room(self.db, room_id, lock=True)
        invitation = reload_for_update(
            self.db,
            RoomInvitation,
            RoomInvitation.id == invite_id,
            RoomInvitation.invitee_id == user_id,
        )
        if invitation is None or invitation.status != InvitationStatus.PENDING:
            raise NotFoundError("Invitation not found")
        if is_expired(invitation.expires_at):
            raise NotFoundError("Invitation has expired")
        return invitation, room
