"""Room lifecycle, membership and authority transitions."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import and_, case, delete, func, or_, select
from sqlalchemy.orm import Session, contains_eager, selectinload

from app.config import Settings, get_settings
from app.core.codes import generate_room_code, generate_unique_code
from app.core.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from app.database import atomic
from app.models import (
    AccessRequestStatus,
    ModerationAction,
    Notification,
    NotificationType,
    Room,
    RoomAccessRequest,
    RoomInvitation,
    RoomInviteLink,
    RoomMember,
    RoomModerationLog,
    RoomRole,
    RoomVisibility,
    User,
)
from app.models.base import utcnow
from app.services.conversations import ConversationBinder
from app.services.friendships import are_connected, friend_ids
from app.services.moderation_log import list_actions, record_action
from app.services.notifier import EventNotifier
from app.services.room_state import (
    AUTHORITY_ROLES,
    add_member,
    get_active_room,
    get_membership,
    recount_members,
    require_membership,
    track_operation,
)

logger = logging.getLogger(__name__)

NAME_MIN_LENGTH = 3
NAME_MAX_LENGTH = 50
DESCRIPTION_MAX_LENGTH = 200


@dataclass(slots=True)
class JoinResult:
    room_id: int
    role: RoomRole
    already_member: bool


@dataclass(slots=True)
class LeaveResult:
    room_id: int
    new_owner_id: int | None
    room_deactivated: bool


@dataclass(slots=True)
class RoomView:
    """A room as seen by one user, with that user's membership details."""

    room: Room
    role: RoomRole | None
    is_favorite: bool


class MembershipService:
    """Creates rooms and moves users in and out of them.

    Every mutating operation locks the room row first and performs all of its
    checks before writing, so a failed call leaves no partial state behind.
    Events are emitted only after the transaction committed.
    """

    def __init__(self, db: Session, notifier: EventNotifier, settings: Settings | None = None) -> None:
        self.db = db
        self.notifier = notifier
        self.settings = settings or get_settings()
        self.conversations = ConversationBinder(db)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @track_operation("create_room")
    def create_room(
        self,
        creator_id: int,
        name: str,
        description: str | None = None,
        visibility: RoomVisibility = RoomVisibility.PUBLIC,
    ) -> Room:
        name = (name or "").strip()
        if len(name) < NAME_MIN_LENGTH:
            raise BadRequestError("Room name must have at least 3 characters", field="name")
        if len(name) > NAME_MAX_LENGTH:
            raise BadRequestError("Room name must have at most 50 characters", field="name")
        description = description.strip() if description else None
        if description and len(description) > DESCRIPTION_MAX_LENGTH:
            raise BadRequestError(
                "Room description must have at most 200 characters", field="description"
            )

        with atomic(self.db):
            code = generate_unique_code(
                self._room_code_exists,
                generator=lambda: generate_room_code(self.settings.room_code_length),
                attempts=self.settings.code_generation_attempts,
                kind="room",
            )
            now = utcnow()
            room = Room(
                name=name,
                description=description or None,
                visibility=RoomVisibility(visibility),
                code=code,
                owner_id=creator_id,
                current_members=0,
                is_active=True,
                created_at=now,
                last_activity=now,
            )
            self.db.add(room)
            self.db.flush()
            self.db.add(
                RoomMember(room_id=room.id, user_id=creator_id, role=RoomRole.OWNER, joined_at=now)
            )
            conversation_id = self.conversations.create_conversation(room.id)
            self.conversations.add_participant(conversation_id, creator_id)
            recount_members(self.db, room)
        logger.info("Room %s created by user %s", room.id, creator_id)
        return room

    @track_operation("delete_room")
    def delete_room(self, actor_id: int, room_id: int) -> None:
        """Hard-delete a room and everything that hangs off it."""

        with atomic(self.db):
            room = get_active_room(self.db, room_id, lock=True)
            actor = get_membership(self.db, room.id, actor_id)
            if actor is None:
                raise NotFoundError("Room not found")
            if actor.role != RoomRole.OWNER:
                raise ForbiddenError("Only the owner can delete the room")

            room_name = room.name
            member_ids = list(
                self.db.execute(
                    select(RoomMember.user_id).where(RoomMember.room_id == room.id)
                ).scalars()
            )
            invitation_ids = list(
                self.db.execute(
                    select(RoomInvitation.id).where(RoomInvitation.room_id == room.id)
                ).scalars()
            )

            self.conversations.delete_conversation(room.id)
            for model in (RoomInvitation, RoomAccessRequest, RoomInviteLink, RoomModerationLog):
                self.db.execute(delete(model).where(model.room_id == room.id))
            notification_filter = Notification.room_id == room.id
            if invitation_ids:
                notification_filter = or_(
                    notification_filter,
                    and_(
                        Notification.type == NotificationType.ROOM_INVITE,
                        Notification.related_id.in_(invitation_ids),
                    ),
                )
            self.db.execute(delete(Notification).where(notification_filter))
            self.db.execute(delete(RoomMember).where(RoomMember.room_id == room.id))
            self.db.execute(delete(Room).where(Room.id == room.id))

        logger.info("Room %s deleted by user %s", room_id, actor_id)
        for member_id in member_ids:
            self.notifier.notify_user(
                member_id, "room:deleted", {"room_id": room_id, "room_name": room_name}
            )
            if member_id == actor_id:
                continue
            self.notifier.notify_user(
                member_id,
                "room:removed_from_room",
                {"room_id": room_id, "room_name": room_name, "reason": "room_deleted"},
            )
        self.notifier.close_room(room_id)

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------
    @track_operation("join_room")
    def join_room(self, user_id: int, room_id: int) -> JoinResult:
        with atomic(self.db):
            room = get_active_room(self.db, room_id, lock=True)
            self._ensure_join_allowed(room, user_id)
            membership = get_membership(self.db, room.id, user_id)
            if membership is not None:
                return JoinResult(room.id, membership.role, True)
            add_member(self.db, room, user_id, conversations=self.conversations)
        logger.info("User %s joined room %s", user_id, room_id)
        return JoinResult(room_id, RoomRole.MEMBER, False)

    @track_operation("request_access")
    def request_access(self, user_id: int, room_id: int, message: str | None = None) -> RoomAccessRequest:
        with atomic(self.db):
            room = get_active_room(self.db, room_id, lock=True)
            if get_membership(self.db, room.id, user_id) is not None:
                raise ConflictError("You are already a member of this room")
            pending = self.db.execute(
                select(RoomAccessRequest.id).where(
                    RoomAccessRequest.room_id == room.id,
                    RoomAccessRequest.user_id == user_id,
                    RoomAccessRequest.status == AccessRequestStatus.PENDING,
                )
            ).first()
            if pending is not None:
                raise ConflictError("You already have a pending request for this room")

            request = RoomAccessRequest(
                room_id=room.id,
                user_id=user_id,
                message=(message or "").strip() or None,
                created_at=utcnow(),
            )
            self.db.add(request)
            self.db.flush()

            requester = self.db.get(User, user_id)
            requester_name = requester.name if requester is not None else "Someone"
            authority_ids = list(
                self.db.execute(
                    select(RoomMember.user_id).where(
                        RoomMember.room_id == room.id,
                        RoomMember.role.in_(AUTHORITY_ROLES),
                    )
                ).scalars()
            )
            for authority_id in authority_ids:
                self.db.add(
                    Notification(
                        user_id=authority_id,
                        room_id=room.id,
                        type=NotificationType.ROOM_ACCESS_REQUEST,
                        sender_id=user_id,
                        related_id=request.id,
                        title="Room access request",
                        message=f'{requester_name} asked to join "{room.name}"',
                        created_at=utcnow(),
                    )
                )
            payload = {
                "room_id": room.id,
                "room_name": room.name,
                "request_id": request.id,
                "requester_id": user_id,
                "requester_name": requester_name,
            }

        for authority_id in authority_ids:
            self.notifier.notify_user(authority_id, "room:access_requested", payload)
        return request

    @track_operation("leave_room")
    def leave_room(self, user_id: int, room_id: int) -> LeaveResult:
        """Leave a room, handing ownership to the oldest remaining moderator or member."""

        with atomic(self.db):
            room = get_active_room(self.db, room_id, lock=True)
            membership = get_membership(self.db, room.id, user_id)
            if membership is None:
                raise NotFoundError("You are not a member of this room")

            new_owner_id: int | None = None
            deactivated = False
            successor = None
            was_owner = membership.role == RoomRole.OWNER
            if was_owner:
                successor = self._find_successor(room.id, user_id)

            self.db.delete(membership)
            self.db.flush()
            self.conversations.leave_room(room.id, user_id)

            if was_owner:
                if successor is None:
                    room.is_active = False
                    deactivated = True
                else:
                    successor.role = RoomRole.OWNER
                    room.owner_id = successor.user_id
                    new_owner_id = successor.user_id
            recount_members(self.db, room)
            room_name = room.name

        self.notifier.disconnect_from_room(room_id, user_id)
        if deactivated:
            logger.info("Room %s deactivated after its last member left", room_id)
        if new_owner_id is not None:
            logger.info("Ownership of room %s passed from %s to %s", room_id, user_id, new_owner_id)
            self.notifier.notify_user(
                new_owner_id,
                "room:ownership_transferred",
                {"room_id": room_id, "room_name": room_name, "previous_owner_id": user_id},
            )
            self.notifier.notify_room(
                room_id,
                "room:owner_changed",
                {"room_id": room_id, "new_owner_id": new_owner_id, "previous_owner_id": user_id},
            )
        return LeaveResult(room_id, new_owner_id, deactivated)

    @track_operation("kick")
    def kick(self, actor_id: int, room_id: int, target_id: int) -> None:
        with atomic(self.db):
            room = get_active_room(self.db, room_id, lock=True)
            actor = require_membership(
                self.db,
                room.id,
                actor_id,
                roles=AUTHORITY_ROLES,
                message="Only owners and moderators can remove members",
            )
            target = get_membership(self.db, room.id, target_id)
            if target is None:
                raise NotFoundError("Member not found")
            if target.role == RoomRole.OWNER:
                raise ForbiddenError("The room owner cannot be removed")
            if actor.role == RoomRole.MODERATOR and target.role != RoomRole.MEMBER:
                raise ForbiddenError("Moderators can only remove regular members")

            invitation_ids = list(
                self.db.execute(
                    select(RoomInvitation.id).where(
                        RoomInvitation.room_id == room.id,
                        RoomInvitation.invitee_id == target_id,
                    )
                ).scalars()
            )
            if invitation_ids:
                self.db.execute(
                    delete(Notification).where(
                        Notification.type == NotificationType.ROOM_INVITE,
                        Notification.related_id.in_(invitation_ids),
                    )
                )
                self.db.execute(delete(RoomInvitation).where(RoomInvitation.id.in_(invitation_ids)))

            self.db.delete(target)
            self.conversations.leave_room(room.id, target_id)
            record_action(
                self.db,
                room_id=room.id,
                moderator_id=actor_id,
                target_user_id=target_id,
                action=ModerationAction.KICK,
            )
            recount_members(self.db, room)
            room_name = room.name

        logger.info("User %s removed user %s from room %s", actor_id, target_id, room_id)
        self.notifier.notify_user(
            target_id,
            "room:removed_from_room",
            {"room_id": room_id, "room_name": room_name, "reason": "kicked"},
        )
        self.notifier.disconnect_from_room(room_id, target_id)
        self.notifier.notify_room(
            room_id, "room:member_removed", {"room_id": room_id, "member_id": target_id}
        )

    @track_operation("promote")
    def promote(self, actor_id: int, room_id: int, target_id: int) -> RoomMember:
        return self._change_role(
            actor_id,
            room_id,
            target_id,
            from_role=RoomRole.MEMBER,
            to_role=RoomRole.MODERATOR,
            action=ModerationAction.PROMOTE,
            missing="Member not found or already a moderator",
        )

    @track_operation("demote")
    def demote(self, actor_id: int, room_id: int, target_id: int) -> RoomMember:
        return self._change_role(
            actor_id,
            room_id,
            target_id,
            from_role=RoomRole.MODERATOR,
            to_role=RoomRole.MEMBER,
            action=ModerationAction.DEMOTE,
            missing="Moderator not found",
        )

    # ------------------------------------------------------------------
    # Reads and per-member preferences
    # ------------------------------------------------------------------
    def get_room(self, user_id: int, room_id: int) -> RoomView:
        room = get_active_room(self.db, room_id)
        membership = require_membership(self.db, room.id, user_id, message="Access denied")
        return RoomView(room=room, role=membership.role, is_favorite=membership.is_favorite)

    def list_rooms(
        self,
        user_id: int,
        *,
        only_mine: bool = False,
        search: str | None = None,
        visibility: RoomVisibility | None = None,
        favorites: bool = False,
        limit: int = 50,
    ) -> list[RoomView]:
        """Rooms the user belongs to plus active rooms owned by their friends."""

        membership_join = and_(RoomMember.room_id == Room.id, RoomMember.user_id == user_id)
        stmt = (
            select(Room, RoomMember)
            .outerjoin(RoomMember, membership_join)
            .options(selectinload(Room.owner))
            .where(Room.is_active.is_(True))
        )
        if only_mine:
            stmt = stmt.where(RoomMember.user_id.is_not(None))
        else:
            stmt = stmt.where(
                or_(
                    RoomMember.user_id.is_not(None),
                    Room.owner_id.in_(friend_ids(self.db, user_id)),
                )
            )
        if search:
            pattern = f"%{search.strip()}%"
            stmt = stmt.where(or_(Room.name.ilike(pattern), Room.description.ilike(pattern)))
        if visibility is not None:
            stmt = stmt.where(Room.visibility == RoomVisibility(visibility))
        if favorites:
            stmt = stmt.where(RoomMember.is_favorite.is_(True))
        stmt = stmt.order_by(
            case((RoomMember.is_favorite.is_(True), 0), else_=1),
            case((Room.visibility == RoomVisibility.PUBLIC, 0), else_=1),
            Room.name,
            Room.id,
        ).limit(limit)

        return [
            RoomView(
                room=room,
                role=membership.role if membership else None,
                is_favorite=bool(membership and membership.is_favorite),
            )
            for room, membership in self.db.execute(stmt).all()
        ]

    def list_members(
        self, actor_id: int, room_id: int, *, search: str | None = None, limit: int = 100
    ) -> list[RoomMember]:
        room = get_active_room(self.db, room_id)
        require_membership(self.db, room.id, actor_id)
        role_rank = case(
            (RoomMember.role == RoomRole.OWNER, 0),
            (RoomMember.role == RoomRole.MODERATOR, 1),
            else_=2,
        )
        stmt = (
            select(RoomMember)
            .join(User, User.id == RoomMember.user_id)
            .options(contains_eager(RoomMember.user))
            .where(RoomMember.room_id == room.id)
        )
        if search:
            pattern = f"%{search.strip()}%"
            stmt = stmt.where(or_(User.display_name.ilike(pattern), User.login.ilike(pattern)))
        stmt = stmt.order_by(
            role_rank, func.coalesce(User.display_name, User.login), User.id
        ).limit(limit)
        return list(self.db.execute(stmt).scalars())

    @track_operation("toggle_favorite")
    def toggle_favorite(self, user_id: int, room_id: int, favorite: bool | None = None) -> RoomMember:
        """Set the favourite flag, flipping it when ``favorite`` is not given."""

        with atomic(self.db):
            membership = get_membership(self.db, room_id, user_id)
            if membership is None:
                raise NotFoundError("You are not a member of this room")
            membership.is_favorite = (not membership.is_favorite) if favorite is None else favorite
        return membership

    def list_moderation_log(self, actor_id: int, room_id: int, *, limit: int = 50) -> list[RoomModerationLog]:
        room = get_active_room(self.db, room_id)
        require_membership(
            self.db,
            room.id,
            actor_id,
            roles=AUTHORITY_ROLES,
            message="Only owners and moderators can read the moderation log",
        )
        return list_actions(self.db, room.id, limit=limit)

    def reconcile_member_counts(self) -> list[tuple[int, int, int]]:
        """Recount every active room, returning ``(room_id, stored, actual)`` for drifted rows."""

        drifted: list[tuple[int, int, int]] = []
        with atomic(self.db):
            rooms = self.db.execute(
                select(Room).where(Room.is_active.is_(True)).order_by(Room.id).with_for_update()
            ).scalars().all()
            for room in rooms:
                stored = room.current_members
                actual = recount_members(self.db, room)
                if stored != actual:
                    drifted.append((room.id, stored, actual))
        for room_id, stored, actual in drifted:
            logger.warning("Member count of room %s drifted: stored=%s actual=%s", room_id, stored, actual)
        return drifted

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _room_code_exists(self, code: str) -> bool:
        return self.db.execute(select(Room.id).where(Room.code == code)).first() is not None

    def _ensure_join_allowed(self, room: Room, user_id: int) -> None:
        if room.owner_id == user_id:
            return
        if room.visibility == RoomVisibility.PRIVATE:
            if not are_connected(self.db, user_id, room.owner_id):
                raise ForbiddenError(
                    "This room is private, ask the owner for access",
                    requires_permission=True,
                    room={"id": room.id, "name": room.name, "visibility": room.visibility.value},
                )
            return
        if self.settings.public_rooms_require_friendship and not are_connected(
            self.db, user_id, room.owner_id
        ):
            raise ForbiddenError(
                "Only friends of the owner can join this room",
                requires_friendship=True,
            )

    def _find_successor(self, room_id: int, leaving_user_id: int) -> RoomMember | None:
        for role in (RoomRole.MODERATOR, RoomRole.MEMBER):
            stmt = (
                select(RoomMember)
                .where(
                    RoomMember.room_id == room_id,
                    RoomMember.role == role,
                    RoomMember.user_id != leaving_user_id,
                )
                .order_by(RoomMember.joined_at, RoomMember.user_id)
                .limit(1)
                .with_for_update()
            )
            candidate = self.db.execute(stmt).scalar_one_or_none()
            if candidate is not None:
                return candidate
        return None

    def _change_role(
        self,
        actor_id: int,
        room_id: int,
        target_id: int,
        *,
        from_role: RoomRole,
        to_role: RoomRole,
        action: ModerationAction,
        missing: str,
    ) -> RoomMember:
        with atomic(self.db):
            room = get_active_room(self.db, room_id, lock=True)
            require_membership(
                self.db,
                room.id,
                actor_id,
                roles=(RoomRole.OWNER,),
                message="Only the owner can change member roles",
            )
            target = get_membership(self.db, room.id, target_id)
            if target is None or target.role != from_role:
                raise NotFoundError(missing)
            target.role = to_role
            record_action(
                self.db,
                room_id=room.id,
                moderator_id=actor_id,
                target_user_id=target_id,
                action=action,
            )

        logger.info("User %s changed role of %s in room %s to %s", actor_id, target_id, room_id, to_role.value)
        payload = {
            "room_id": room_id,
            "member_id": target_id,
            "new_role": to_role.value,
            "action": action.value,
        }
        self.notifier.notify_room(room_id, "room:member_role_changed", payload)
        self.notifier.notify_user(target_id, "room:role_updated", payload)
        return target
