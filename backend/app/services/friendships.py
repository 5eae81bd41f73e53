"""Read-only friendship oracle used by the room join gates."""

from __future__ import annotations

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from app.models import FriendLink, FriendRequestStatus


def are_connected(db: Session, user_a: int, user_b: int) -> bool:
    """Return True when an accepted friendship links the two users."""

    stmt = (
        select(FriendLink.id)
        .where(
            FriendLink.status == FriendRequestStatus.ACCEPTED,
            or_(
                and_(FriendLink.requester_id == user_a, FriendLink.addressee_id == user_b),
                and_(FriendLink.requester_id == user_b, FriendLink.addressee_id == user_a),
            ),
        )
        .limit(1)
    )
    return db.execute(stmt).first() is not None


def friend_ids(db: Session, user_id: int) -> list[int]:
    stmt = select(FriendLink.requester_id, FriendLink.addressee_id).where(
        FriendLink.status == FriendRequestStatus.ACCEPTED,
        or_(FriendLink.requester_id == user_id, FriendLink.addressee_id == user_id),
    )
    result: set[int] = set()
    for requester_id, addressee_id in db.execute(stmt):
        result.add(addressee_id if requester_id == user_id else requester_id)
    return sorted(result)
