"""Tests for reviewing room access requests."""

from __future__ import annotations

import pytest
from sqlalchemy import select

from app.core.errors import ForbiddenError, NotFoundError
from app.models import (
    AccessRequestStatus,
    Notification,
    Room,
    RoomAccessRequest,
    RoomMember,
    RoomRole,
    RoomVisibility,
)
from app.models.base import utcnow
from app.services.access_requests import AccessRequestService
from app.services.membership import MembershipService


@pytest.fixture()
def membership(db_session, notifier) -> MembershipService:
    return MembershipService(db_session, notifier)


@pytest.fixture()
def reviews(db_session, notifier) -> AccessRequestService:
    return AccessRequestService(db_session, notifier)


@pytest.fixture()
def setup(db_session, make_user, membership):
    owner_id = make_user("owner", "Owner")
    moderator_id = make_user("moderator")
    member_id = make_user("member")
    requester_id = make_user("requester", "Requester")
    room = membership.create_room(owner_id, "Quantum mechanics", visibility=RoomVisibility.PRIVATE)
    db_session.add_all(
        [
            RoomMember(room_id=room.id, user_id=moderator_id, role=RoomRole.MODERATOR, joined_at=utcnow()),
            RoomMember(room_id=room.id, user_id=member_id, role=RoomRole.MEMBER, joined_at=utcnow()),
        ]
    )
    db_session.commit()
    request = membership.request_access(requester_id, room.id, "I am in the same course")
    return {
        "room_id": room.id,
        "owner": owner_id,
        "moderator": moderator_id,
        "member": member_id,
        "requester": requester_id,
        "request_id": request.id,
    }


def test_list_access_requests_is_for_authorities(reviews, setup):
    listed = reviews.list_access_requests(setup["moderator"], setup["room_id"])

    assert [request.id for request in listed] == [setup["request_id"]]
    assert listed[0].user.name == "Requester"
    with pytest.raises(ForbiddenError):
        reviews.list_access_requests(setup["member"], setup["room_id"])


def test_approve_creates_membership_and_notifies(db_session, notifier, reviews, setup):
    approved = reviews.approve_access_request(setup["moderator"], setup["room_id"], setup["request_id"])

    assert approved.status == AccessRequestStatus.APPROVED
    assert approved.reviewed_by == setup["moderator"]
    assert approved.reviewed_at is not None
    assert db_session.get(RoomMember, (setup["room_id"], setup["requester"])).role == RoomRole.MEMBER
    assert db_session.get(Room, setup["room_id"]).current_members == 4
    assert db_session.execute(
        select(Notification).where(Notification.related_id == setup["request_id"])
    ).first() is None

    [(scope, target, _kind, payload)] = notifier.of_type("room:access_approved")
    assert (scope, target) == ("user", setup["requester"])
    assert payload["approved_by"] == setup["moderator"]

    with pytest.raises(NotFoundError):
        reviews.approve_access_request(setup["owner"], setup["room_id"], setup["request_id"])


def test_approve_tolerates_requester_who_already_joined(db_session, reviews, setup):
    db_session.add(RoomMember(room_id=setup["room_id"], user_id=setup["requester"], joined_at=utcnow()))
    db_session.commit()

    reviews.approve_access_request(setup["owner"], setup["room_id"], setup["request_id"])

    members = db_session.execute(
        select(RoomMember).where(
            RoomMember.room_id == setup["room_id"], RoomMember.user_id == setup["requester"]
        )
    ).scalars().all()
    assert len(members) == 1


def test_reject_marks_request_and_notifies(db_session, notifier, reviews, setup):
    with pytest.raises(ForbiddenError):
        reviews.reject_access_request(setup["member"], setup["room_id"], setup["request_id"])

    rejected = reviews.reject_access_request(setup["owner"], setup["room_id"], setup["request_id"])

    assert rejected.status == AccessRequestStatus.REJECTED
    assert db_session.get(RoomMember, (setup["room_id"], setup["requester"])) is None
    assert notifier.recipients("room:access_rejected") == {setup["requester"]}
    assert db_session.get(RoomAccessRequest, setup["request_id"]).reviewed_by == setup["owner"]


def test_review_of_unknown_request_is_not_found(reviews, setup):
    with pytest.raises(NotFoundError):
        reviews.approve_access_request(setup["owner"], setup["room_id"], 4040)
