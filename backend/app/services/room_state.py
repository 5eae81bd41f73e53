"""Shared lookups, guards and state transitions for the room services."""

from __future__ import annotations

import functools
from datetime import datetime
from typing import Callable, Iterable, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.errors import ForbiddenError, NotFoundError, RoomServiceError
from app.models import Room, RoomMember, RoomRole
from app.models.base import as_utc, utcnow
from app.monitoring.metrics import room_operations_total
from app.services.conversations import ConversationBinder

AUTHORITY_ROLES: frozenset[RoomRole] = frozenset({RoomRole.OWNER, RoomRole.MODERATOR})

T = TypeVar("T")
F = TypeVar("F", bound=Callable)


def track_operation(name: str) -> Callable[[F], F]:
    """Count the outcome of a service operation in ``room_operations_total``."""

    def decorator(func_: F) -> F:
        @functools.wraps(func_)
        def wrapper(*args, **kwargs):
            try:
                result = func_(*args, **kwargs)
            except RoomServiceError as exc:
                room_operations_total.inc(operation=name, outcome=exc.error)
                raise
            room_operations_total.inc(operation=name, outcome="ok")
            return result

        return wrapper  # type: ignore[return-value]

    return decorator


def get_active_room(db: Session, room_id: int, *, lock: bool = False) -> Room:
    """Return an active room or raise ``NotFoundError``.

    With ``lock`` the room row is selected ``FOR UPDATE`` so that every
    membership changing operation on the same room is serialized.
    """

    stmt = select(Room).where(Room.id == room_id, Room.is_active.is_(True))
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    room = db.execute(stmt).scalar_one_or_none()
    if room is None:
        raise NotFoundError("Room not found")
    return room


def reload_for_update(db: Session, model: Type[T], *criteria) -> T | None:
    """Re-read a row under lock, refreshing any stale copy held by the session."""

    stmt = (
        select(model)
        .where(*criteria)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return db.execute(stmt).scalar_one_or_none()


def get_membership(db: Session, room_id: int, user_id: int) -> RoomMember | None:
    stmt = select(RoomMember).where(RoomMember.room_id == room_id, RoomMember.user_id == user_id)
    return db.execute(stmt).scalar_one_or_none()


def require_membership(
    db: Session,
    room_id: int,
    user_id: int,
    *,
    roles: Iterable[RoomRole] | None = None,
    message: str = "You are not a member of this room",
) -> RoomMember:
    """Return the caller's membership, raising ``ForbiddenError`` when absent or under-ranked."""

    membership = get_membership(db, room_id, user_id)
    if membership is None:
        raise ForbiddenError(message)
    if roles is not None and membership.role not in set(roles):
        raise ForbiddenError(message)
    return membership


def recount_members(db: Session, room: Room) -> int:
    """Recompute ``current_members`` from the membership rows."""

    db.flush()
    count = db.execute(
        select(func.count()).select_from(RoomMember).where(RoomMember.room_id == room.id)
    ).scalar_one()
    room.current_members = count
    return count


def add_member(
    db: Session,
    room: Room,
    user_id: int,
    *,
    role: RoomRole = RoomRole.MEMBER,
    conversations: ConversationBinder | None = None,
) -> RoomMember:
    """Create a membership, join the room conversation and refresh the count."""

    now = utcnow()
    membership = RoomMember(room_id=room.id, user_id=user_id, role=role, joined_at=now)
    db.add(membership)
    (conversations or ConversationBinder(db)).join_room(room.id, user_id)
    room.last_activity = now
    recount_members(db, room)
    return membership


def is_expired(expires_at: datetime | None, now: datetime | None = None) -> bool:
    if expires_at is None:
        return False
    return as_utc(expires_at) <= (now or utcnow())
