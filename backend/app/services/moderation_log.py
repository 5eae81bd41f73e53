"""Append-only audit trail of moderation actions."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import ModerationAction, RoomModerationLog
from app.models.base import utcnow


def record_action(
    db: Session,
    *,
    room_id: int,
    moderator_id: int,
    target_user_id: int,
    action: ModerationAction,
) -> RoomModerationLog:
    entry = RoomModerationLog(
        room_id=room_id,
        moderator_id=moderator_id,
        target_user_id=target_user_id,
        action=action,
        created_at=utcnow(),
    )
    db.add(entry)
    return entry


def list_actions(db: Session, room_id: int, *, limit: int = 50) -> list[RoomModerationLog]:
    """Return the newest moderation entries for a room first."""

    stmt = (
        select(RoomModerationLog)
        .where(RoomModerationLog.room_id == room_id)
        .order_by(RoomModerationLog.created_at.desc(), RoomModerationLog.id.desc())
        .limit(limit)
    )
    return list(db.execute(stmt).scalars())
