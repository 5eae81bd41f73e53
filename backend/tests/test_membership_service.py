"""Unit tests for room lifecycle, membership and moderation rules."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from app.config import get_settings
from app.core.errors import (
    BadRequestError,
    ConflictError,
    ExhaustedRetriesError,
    ForbiddenError,
    InternalError,
    NotFoundError,
)
from app.models import (
    ConversationParticipant,
    FriendLink,
    InvitationStatus,
    Message,
    ModerationAction,
    Notification,
    NotificationType,
    Room,
    RoomAccessRequest,
    RoomConversation,
    RoomInvitation,
    RoomInviteLink,
    RoomMember,
    RoomModerationLog,
    RoomRole,
    RoomVisibility,
)
from app.models.base import utcnow
from app.monitoring.metrics import room_operations_total
from app.services.membership import MembershipService


@pytest.fixture()
def service(db_session, notifier) -> MembershipService:
    return MembershipService(db_session, notifier)


@pytest.fixture()
def owner_id(make_user) -> int:
    return make_user("owner", "Owner")


def _count(db_session, model, *criteria) -> int:
    return db_session.execute(select(func.count()).select_from(model).where(*criteria)).scalar_one()


def _seed_members(db_session, room_id: int, members: list[tuple[int, RoomRole, int]]) -> None:
    """Insert memberships whose join time is offset by the given seconds."""

    base = utcnow() - timedelta(days=1)
    for user_id, role, offset in members:
        db_session.add(
            RoomMember(
                room_id=room_id,
                user_id=user_id,
                role=role,
                joined_at=base + timedelta(seconds=offset),
            )
        )
    db_session.commit()


def _owners(db_session, room_id: int) -> list[int]:
    stmt = select(RoomMember.user_id).where(
        RoomMember.room_id == room_id, RoomMember.role == RoomRole.OWNER
    )
    return list(db_session.execute(stmt).scalars())


def test_create_room_registers_owner_and_conversation(db_session, service, owner_id):
    room = service.create_room(owner_id, "  Linear algebra  ", "Weekly problem sets", RoomVisibility.PRIVATE)

    assert room.name == "Linear algebra"
    assert room.visibility == RoomVisibility.PRIVATE
    assert room.current_members == 1
    assert room.is_active is True
    assert len(room.code) == get_settings().room_code_length
    assert db_session.get(RoomMember, (room.id, owner_id)).role == RoomRole.OWNER

    conversation_id = db_session.execute(
        select(RoomConversation.conversation_id).where(RoomConversation.room_id == room.id)
    ).scalar_one()
    assert db_session.get(ConversationParticipant, (conversation_id, owner_id)) is not None


@pytest.mark.parametrize(
    ("name", "description", "field"),
    [
        ("ab", None, "name"),
        ("   ab   ", None, "name"),
        ("x" * 51, None, "name"),
        ("Chemistry", "d" * 201, "description"),
    ],
)
def test_create_room_validates_input(db_session, service, owner_id, name, description, field):
    with pytest.raises(BadRequestError) as excinfo:
        service.create_room(owner_id, name, description)

    assert excinfo.value.extra["field"] == field
    assert _count(db_session, Room) == 0


def test_create_room_writes_nothing_when_codes_are_exhausted(db_session, service, owner_id, monkeypatch):
    monkeypatch.setattr(service, "_room_code_exists", lambda code: True)

    with pytest.raises(ExhaustedRetriesError):
        service.create_room(owner_id, "Physics")

    assert _count(db_session, Room) == 0
    assert _count(db_session, RoomMember) == 0
    assert _count(db_session, RoomConversation) == 0


def test_join_private_room_requires_connection_to_owner(service, owner_id, make_user, befriend):
    room = service.create_room(owner_id, "Private study", visibility=RoomVisibility.PRIVATE)
    stranger_id = make_user("stranger")

    with pytest.raises(ForbiddenError) as excinfo:
        service.join_room(stranger_id, room.id)

    assert excinfo.value.extra["requires_permission"] is True
    assert excinfo.value.extra["room"]["id"] == room.id

    friend_id = make_user("friend")
    befriend(owner_id, friend_id)
    result = service.join_room(friend_id, room.id)
    assert result.role == RoomRole.MEMBER
    assert result.already_member is False


def test_pending_friendship_does_not_open_private_room(session_factory, service, owner_id, make_user):
    room = service.create_room(owner_id, "Private study", visibility=RoomVisibility.PRIVATE)
    requester_id = make_user("requester")
    with session_factory() as session:
        session.add(FriendLink(requester_id=requester_id, addressee_id=owner_id))
        session.commit()

    with pytest.raises(ForbiddenError):
        service.join_room(requester_id, room.id)


def test_join_is_idempotent(db_session, service, owner_id, make_user, befriend):
    room = service.create_room(owner_id, "History")
    friend_id = make_user("friend")
    befriend(friend_id, owner_id)

    first = service.join_room(friend_id, room.id)
    second = service.join_room(friend_id, room.id)

    assert first.already_member is False
    assert second.already_member is True
    assert second.role == RoomRole.MEMBER
    assert _count(db_session, RoomMember, RoomMember.room_id == room.id) == 2
    assert db_session.get(Room, room.id).current_members == 2


def test_public_room_gate_follows_setting(db_session, notifier, service, owner_id, make_user):
    room = service.create_room(owner_id, "Open biology")
    stranger_id = make_user("stranger")

    with pytest.raises(ForbiddenError) as excinfo:
        service.join_room(stranger_id, room.id)
    assert excinfo.value.extra["requires_friendship"] is True

    open_settings = get_settings().model_copy(update={"public_rooms_require_friendship": False})
    open_service = MembershipService(db_session, notifier, settings=open_settings)
    assert open_service.join_room(stranger_id, room.id).already_member is False


def test_join_unknown_room_is_not_found(service, owner_id):
    with pytest.raises(NotFoundError):
        service.join_room(owner_id, 999)


def test_leave_requires_membership(service, owner_id, make_user):
    room = service.create_room(owner_id, "Geometry")
    outsider_id = make_user("outsider")

    with pytest.raises(NotFoundError):
        service.leave_room(outsider_id, room.id)


def test_member_leave_updates_count_and_conversation(
    db_session, notifier, service, owner_id, make_user, befriend
):
    room = service.create_room(owner_id, "Geometry")
    member_id = make_user("member")
    befriend(owner_id, member_id)
    service.join_room(member_id, room.id)

    result = service.leave_room(member_id, room.id)

    assert result.new_owner_id is None
    assert result.room_deactivated is False
    assert db_session.get(RoomMember, (room.id, member_id)) is None
    assert db_session.get(Room, room.id).current_members == 1
    assert _count(
        db_session, ConversationParticipant, ConversationParticipant.user_id == member_id
    ) == 0
    assert notifier.disconnected == [(room.id, member_id)]


def test_store_failure_rolls_back_and_reports_retryable_error(
    db_session, notifier, service, owner_id, make_user, befriend, monkeypatch
):
    room = service.create_room(owner_id, "Topology")
    member_id = make_user("member")
    befriend(owner_id, member_id)
    service.join_room(member_id, room.id)

    def failing_recount(db, room):
        raise OperationalError("UPDATE rooms", {}, Exception("Lock wait timeout exceeded"))

    monkeypatch.setattr("app.services.membership.recount_members", failing_recount)

    with pytest.raises(InternalError) as excinfo:
        service.leave_room(member_id, room.id)

    assert excinfo.value.status_code == 500
    assert excinfo.value.extra == {"retryable": True}
    assert excinfo.value.to_payload()["retryable"] is True
    assert db_session.get(RoomMember, (room.id, member_id)) is not None
    assert db_session.get(Room, room.id).current_members == 2
    assert _count(
        db_session, ConversationParticipant, ConversationParticipant.user_id == member_id
    ) == 1
    assert notifier.disconnected == []

    monkeypatch.undo()
    result = service.leave_room(member_id, room.id)

    assert result.room_deactivated is False
    assert db_session.get(RoomMember, (room.id, member_id)) is None
    assert db_session.get(Room, room.id).current_members == 1


def test_owner_leave_prefers_oldest_moderator(db_session, notifier, service, owner_id, make_user):
    room = service.create_room(owner_id, "Statistics")
    veteran_id = make_user("veteran")
    late_mod_id = make_user("late-mod")
    early_mod_id = make_user("early-mod")
    _seed_members(
        db_session,
        room.id,
        [
            (veteran_id, RoomRole.MEMBER, 0),
            (early_mod_id, RoomRole.MODERATOR, 10),
            (late_mod_id, RoomRole.MODERATOR, 20),
        ],
    )

    result = service.leave_room(owner_id, room.id)

    assert result.new_owner_id == early_mod_id
    refreshed = db_session.get(Room, room.id)
    assert refreshed.owner_id == early_mod_id
    assert refreshed.current_members == 3
    assert _owners(db_session, room.id) == [early_mod_id]
    assert notifier.recipients("room:ownership_transferred") == {early_mod_id}
    assert notifier.of_type("room:owner_changed")[0][:2] == ("room", room.id)


def test_owner_leave_falls_back_to_oldest_member(db_session, service, owner_id, make_user):
    room = service.create_room(owner_id, "Statistics")
    newer_id = make_user("newer")
    older_id = make_user("older")
    _seed_members(
        db_session,
        room.id,
        [(newer_id, RoomRole.MEMBER, 30), (older_id, RoomRole.MEMBER, 5)],
    )

    result = service.leave_room(owner_id, room.id)

    assert result.new_owner_id == older_id
    assert _owners(db_session, room.id) == [older_id]


def test_owner_leaving_two_person_room_hands_over(db_session, service, owner_id, make_user, befriend):
    room = service.create_room(owner_id, "Pair programming")
    partner_id = make_user("partner")
    befriend(owner_id, partner_id)
    service.join_room(partner_id, room.id)

    result = service.leave_room(owner_id, room.id)

    refreshed = db_session.get(Room, room.id)
    assert result.new_owner_id == partner_id
    assert refreshed.owner_id == partner_id
    assert refreshed.current_members == 1
    assert refreshed.is_active is True


def test_last_member_leaving_deactivates_room(db_session, notifier, service, owner_id):
    room = service.create_room(owner_id, "Solo")

    result = service.leave_room(owner_id, room.id)

    refreshed = db_session.get(Room, room.id)
    assert result.room_deactivated is True
    assert refreshed.is_active is False
    assert refreshed.current_members == 0
    assert notifier.of_type("room:ownership_transferred") == []
    with pytest.raises(NotFoundError):
        service.join_room(owner_id, room.id)


def test_promote_and_demote_are_owner_only(db_session, notifier, service, owner_id, make_user):
    room = service.create_room(owner_id, "Literature")
    member_id = make_user("member")
    other_id = make_user("other")
    _seed_members(db_session, room.id, [(member_id, RoomRole.MEMBER, 0), (other_id, RoomRole.MEMBER, 1)])

    promoted = service.promote(owner_id, room.id, member_id)
    assert promoted.role == RoomRole.MODERATOR
    assert notifier.of_type("room:member_role_changed")[0][1] == room.id
    assert notifier.recipients("room:role_updated") == {member_id}

    with pytest.raises(ForbiddenError):
        service.promote(member_id, room.id, other_id)
    with pytest.raises(NotFoundError):
        service.promote(owner_id, room.id, member_id)

    demoted = service.demote(owner_id, room.id, member_id)
    assert demoted.role == RoomRole.MEMBER
    with pytest.raises(NotFoundError):
        service.demote(owner_id, room.id, member_id)

    actions = [entry.action for entry in service.list_moderation_log(owner_id, room.id)]
    assert actions == [ModerationAction.DEMOTE, ModerationAction.PROMOTE]
    assert _owners(db_session, room.id) == [owner_id]


def test_kick_enforces_hierarchy(db_session, service, owner_id, make_user):
    room = service.create_room(owner_id, "Music theory")
    mod_id = make_user("mod")
    other_mod_id = make_user("other-mod")
    member_id = make_user("member")
    _seed_members(
        db_session,
        room.id,
        [
            (mod_id, RoomRole.MODERATOR, 0),
            (other_mod_id, RoomRole.MODERATOR, 1),
            (member_id, RoomRole.MEMBER, 2),
        ],
    )

    with pytest.raises(ForbiddenError):
        service.kick(mod_id, room.id, other_mod_id)
    with pytest.raises(ForbiddenError):
        service.kick(mod_id, room.id, owner_id)
    with pytest.raises(ForbiddenError):
        service.kick(member_id, room.id, mod_id)
    with pytest.raises(NotFoundError):
        service.kick(owner_id, room.id, 12345)

    service.kick(mod_id, room.id, member_id)
    service.kick(owner_id, room.id, other_mod_id)

    assert db_session.get(RoomMember, (room.id, member_id)) is None
    assert db_session.get(RoomMember, (room.id, other_mod_id)) is None
    assert db_session.get(Room, room.id).current_members == 2


def test_kick_purges_invitations_and_logs(db_session, notifier, service, owner_id, make_user):
    room = service.create_room(owner_id, "Music theory")
    member_id = make_user("member")
    _seed_members(db_session, room.id, [(member_id, RoomRole.MEMBER, 0)])
    invitation = RoomInvitation(
        room_id=room.id,
        invitee_id=member_id,
        inviter_id=owner_id,
        status=InvitationStatus.ACCEPTED,
    )
    db_session.add(invitation)
    db_session.flush()
    db_session.add(
        Notification(
            user_id=member_id,
            room_id=room.id,
            type=NotificationType.ROOM_INVITE,
            related_id=invitation.id,
            title="Study room invitation",
            message="You were invited",
        )
    )
    db_session.commit()

    service.kick(owner_id, room.id, member_id)

    assert _count(db_session, RoomInvitation, RoomInvitation.invitee_id == member_id) == 0
    assert _count(db_session, Notification, Notification.user_id == member_id) == 0
    log = service.list_moderation_log(owner_id, room.id)
    assert [(entry.action, entry.target_user_id) for entry in log] == [(ModerationAction.KICK, member_id)]
    removed = notifier.of_type("room:removed_from_room")
    assert removed[0][1] == member_id
    assert removed[0][3]["reason"] == "kicked"
    assert notifier.of_type("room:member_removed")[0][3]["member_id"] == member_id
    assert notifier.disconnected == [(room.id, member_id)]


def test_delete_room_cascades_everything(db_session, notifier, service, owner_id, make_user):
    room = service.create_room(owner_id, "Calculus", visibility=RoomVisibility.PRIVATE)
    room_id = room.id
    member_id = make_user("member")
    invitee_id = make_user("invitee")
    requester_id = make_user("requester")
    _seed_members(db_session, room_id, [(member_id, RoomRole.MODERATOR, 0)])
    conversation_id = db_session.execute(
        select(RoomConversation.conversation_id).where(RoomConversation.room_id == room_id)
    ).scalar_one()
    invitation = RoomInvitation(room_id=room_id, invitee_id=invitee_id, inviter_id=owner_id)
    db_session.add_all(
        [
            invitation,
            RoomAccessRequest(room_id=room_id, user_id=requester_id),
            RoomInviteLink(
                room_id=room_id,
                code="link-code",
                created_by=owner_id,
                expires_at=utcnow() + timedelta(hours=1),
            ),
            RoomModerationLog(
                room_id=room_id,
                moderator_id=owner_id,
                target_user_id=member_id,
                action=ModerationAction.PROMOTE,
            ),
            Message(conversation_id=conversation_id, sender_id=owner_id, content="hello"),
        ]
    )
    db_session.flush()
    db_session.add(
        Notification(
            user_id=invitee_id,
            type=NotificationType.ROOM_INVITE,
            related_id=invitation.id,
            title="Study room invitation",
            message="You were invited",
        )
    )
    db_session.commit()

    with pytest.raises(ForbiddenError):
        service.delete_room(member_id, room_id)
    with pytest.raises(NotFoundError):
        service.delete_room(invitee_id, room_id)

    service.delete_room(owner_id, room_id)

    for model in (
        RoomMember,
        RoomInvitation,
        RoomAccessRequest,
        RoomInviteLink,
        RoomModerationLog,
        RoomConversation,
    ):
        assert _count(db_session, model, model.room_id == room_id) == 0
    assert _count(db_session, Message) == 0
    assert _count(db_session, ConversationParticipant) == 0
    assert _count(db_session, Notification) == 0
    assert db_session.get(Room, room_id) is None

    assert notifier.recipients("room:deleted") == {owner_id, member_id}
    assert notifier.recipients("room:removed_from_room") == {member_id}
    assert notifier.closed_rooms == [room_id]


def test_request_access_notifies_authorities(db_session, notifier, service, owner_id, make_user):
    room = service.create_room(owner_id, "Astronomy", visibility=RoomVisibility.PRIVATE)
    mod_id = make_user("mod")
    member_id = make_user("member")
    requester_id = make_user("requester", "Requester")
    _seed_members(db_session, room.id, [(mod_id, RoomRole.MODERATOR, 0), (member_id, RoomRole.MEMBER, 1)])

    request = service.request_access(requester_id, room.id, "  Please let me in  ")

    assert request.message == "Please let me in"
    assert notifier.recipients("room:access_requested") == {owner_id, mod_id}
    notified = db_session.execute(
        select(Notification.user_id).where(
            Notification.type == NotificationType.ROOM_ACCESS_REQUEST,
            Notification.related_id == request.id,
        )
    ).scalars()
    assert set(notified) == {owner_id, mod_id}

    with pytest.raises(ConflictError):
        service.request_access(requester_id, room.id)
    with pytest.raises(ConflictError):
        service.request_access(member_id, room.id)


def test_list_rooms_shows_own_and_friend_rooms(service, owner_id, make_user, befriend):
    viewer_id = make_user("viewer")
    stranger_id = make_user("stranger")
    befriend(viewer_id, owner_id)

    zeta = service.create_room(owner_id, "Zeta public")
    service.create_room(owner_id, "Beta private", visibility=RoomVisibility.PRIVATE)
    service.create_room(viewer_id, "Alpha private", visibility=RoomVisibility.PRIVATE)
    service.create_room(stranger_id, "Hidden public")
    service.join_room(viewer_id, zeta.id)
    service.toggle_favorite(viewer_id, zeta.id, True)

    views = service.list_rooms(viewer_id)
    assert [view.room.name for view in views] == ["Zeta public", "Alpha private", "Beta private"]
    assert [view.role for view in views] == [RoomRole.MEMBER, RoomRole.OWNER, None]
    assert views[0].is_favorite is True

    mine = service.list_rooms(viewer_id, only_mine=True)
    assert [view.room.name for view in mine] == ["Zeta public", "Alpha private"]

    searched = service.list_rooms(viewer_id, search="beta")
    assert [view.room.name for view in searched] == ["Beta private"]

    favourites = service.list_rooms(viewer_id, favorites=True)
    assert [view.room.name for view in favourites] == ["Zeta public"]


def test_get_room_is_limited_to_members(service, owner_id, make_user):
    room = service.create_room(owner_id, "Economics")
    outsider_id = make_user("outsider")

    view = service.get_room(owner_id, room.id)
    assert view.role == RoomRole.OWNER

    with pytest.raises(ForbiddenError):
        service.get_room(outsider_id, room.id)


def test_list_members_orders_by_role_then_name(db_session, service, owner_id, make_user):
    room = service.create_room(owner_id, "Philosophy")
    zoe_id = make_user("zoe", "Zoe")
    adam_id = make_user("adam", "Adam")
    mod_id = make_user("mod", "Moderator")
    _seed_members(
        db_session,
        room.id,
        [(zoe_id, RoomRole.MEMBER, 0), (adam_id, RoomRole.MEMBER, 1), (mod_id, RoomRole.MODERATOR, 2)],
    )

    members = service.list_members(zoe_id, room.id)

    assert [member.user_id for member in members] == [owner_id, mod_id, adam_id, zoe_id]
    assert [member.user.name for member in service.list_members(zoe_id, room.id, search="ad")] == ["Adam"]
    with pytest.raises(ForbiddenError):
        service.list_members(make_user("outsider"), room.id)


def test_toggle_favorite_flips_flag(service, owner_id, make_user):
    room = service.create_room(owner_id, "Drawing")

    assert service.toggle_favorite(owner_id, room.id).is_favorite is True
    assert service.toggle_favorite(owner_id, room.id).is_favorite is False
    assert service.toggle_favorite(owner_id, room.id, False).is_favorite is False
    with pytest.raises(NotFoundError):
        service.toggle_favorite(make_user("outsider"), room.id)


def test_moderation_log_requires_authority(db_session, service, owner_id, make_user):
    room = service.create_room(owner_id, "Drawing")
    member_id = make_user("member")
    _seed_members(db_session, room.id, [(member_id, RoomRole.MEMBER, 0)])

    with pytest.raises(ForbiddenError):
        service.list_moderation_log(member_id, room.id)
    assert service.list_moderation_log(owner_id, room.id) == []


def test_reconcile_member_counts_repairs_drift(db_session, service, owner_id):
    room = service.create_room(owner_id, "Archive")
    db_session.get(Room, room.id).current_members = 7
    db_session.commit()

    assert service.reconcile_member_counts() == [(room.id, 7, 1)]
    assert service.reconcile_member_counts() == []
    assert db_session.get(Room, room.id).current_members == 1


def test_operation_outcomes_are_counted(service, owner_id):
    room_operations_total.clear()

    service.create_room(owner_id, "Metrics room")
    with pytest.raises(NotFoundError):
        service.join_room(owner_id, 4242)

    assert room_operations_total.value(operation="create_room", outcome="ok") == 1
    assert room_operations_total.value(operation="join_room", outcome="NotFound") == 1
