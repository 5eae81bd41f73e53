"""Room lifecycle, membership and moderation endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status

from app.api.deps import get_current_user, get_membership_service
from app.core.errors import BadRequestError
from app.models import RoomRole, RoomVisibility, User
from app.schemas import (
    FavoriteUpdate,
    JoinResultRead,
    LeaveResultRead,
    ModerationLogRead,
    RoomCreate,
    RoomMemberRead,
    RoomRead,
)
from app.schemas.rooms import parse_visibility
from app.services.membership import MembershipService, RoomView

router = APIRouter(prefix="/rooms", tags=["rooms"])


@router.get("", response_model=list[RoomRead])
def list_rooms(
    scope: str = Query(default="all", alias="filter", pattern="^(all|mine)$"),
    search: str | None = Query(default=None, max_length=100),
    visibility: str | None = Query(default=None),
    favorite: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    service: MembershipService = Depends(get_membership_service),
) -> list[RoomRead]:
    """Return rooms the user belongs to and rooms owned by their friends."""

    parsed_visibility: RoomVisibility | None = None
    if visibility:
        try:
            parsed_visibility = RoomVisibility(parse_visibility(visibility))
        except ValueError:
            raise BadRequestError("Unknown room visibility", field="visibility") from None

    views = service.list_rooms(
        current_user.id,
        only_mine=scope == "mine",
        search=search,
        visibility=parsed_visibility,
        favorites=favorite,
        limit=limit,
    )
    return [RoomRead.from_view(view) for view in views]


@router.post("", response_model=RoomRead, status_code=status.HTTP_201_CREATED)
def create_room(
    payload: RoomCreate,
    current_user: User = Depends(get_current_user),
    service: MembershipService = Depends(get_membership_service),
) -> RoomRead:
    """Create a new room with the current user as the owner."""

    room = service.create_room(
        current_user.id,
        payload.name,
        description=payload.description,
        visibility=payload.visibility,
    )
    return RoomRead.from_view(RoomView(room=room, role=RoomRole.OWNER, is_favorite=False))


@router.get("/{room_id}", response_model=RoomRead)
def get_room(
    room_id: int,
    current_user: User = Depends(get_current_user),
    service: MembershipService = Depends(get_membership_service),
) -> RoomRead:
    return RoomRead.from_view(service.get_room(current_user.id, room_id))


@router.delete("/{room_id}", status_code=status.HTTP_204_NO_CONTENT, response_class=Response)
def delete_room(
    room_id: int,
    current_user: User = Depends(get_current_user),
    service: MembershipService = Depends(get_membership_service),
) -> Response:
    """Permanently delete a room and everything attached to it."""

    service.delete_room(current_user.id, room_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{room_id}/join", response_model=JoinResultRead)
def join_room(
    room_id: int,
    current_user: User = Depends(get_current_user),
    service: MembershipService = Depends(get_membership_service),
) -> JoinResultRead:
    result = service.join_room(current_user.id, room_id)
    return JoinResultRead.model_validate(result)


@router.post("/{room_id}/leave", response_model=LeaveResultRead)
def leave_room(
    room_id: int,
    current_user: User = Depends(get_current_user),
    service: MembershipService = Depends(get_membership_service),
) -> LeaveResultRead:
    """Leave a room; an owner leaving hands the room to a successor."""

    result = service.leave_room(current_user.id, room_id)
    return LeaveResultRead.model_validate(result)


@router.put("/{room_id}/favorite")
def update_favorite(
    room_id: int,
    payload: FavoriteUpdate,
    current_user: User = Depends(get_current_user),
    service: MembershipService = Depends(get_membership_service),
) -> dict[str, object]:
    membership = service.toggle_favorite(current_user.id, room_id, payload.is_favorite)
    return {"room_id": room_id, "is_favorite": membership.is_favorite}


@router.get("/{room_id}/members", response_model=list[RoomMemberRead])
def list_members(
    room_id: int,
    search: str | None = Query(default=None, max_length=100),
    limit: int = Query(default=100, ge=1, le=500),
    current_user: User = Depends(get_current_user),
    service: MembershipService = Depends(get_membership_service),
) -> list[RoomMemberRead]:
    members = service.list_members(current_user.id, room_id, search=search, limit=limit)
    return [RoomMemberRead.model_validate(member) for member in members]


@router.post("/{room_id}/members/{user_id}/promote", response_model=RoomMemberRead)
def promote_member(
    room_id: int,
    user_id: int,
    current_user: User = Depends(get_current_user),
    service: MembershipService = Depends(get_membership_service),
) -> RoomMemberRead:
    membership = service.promote(current_user.id, room_id, user_id)
    return RoomMemberRead.model_validate(membership)


@router.post("/{room_id}/members/{user_id}/demote", response_model=RoomMemberRead)
def demote_member(
    room_id: int,
    user_id: int,
    current_user: User = Depends(get_current_user),
    service: MembershipService = Depends(get_membership_service),
) -> RoomMemberRead:
    membership = service.demote(current_user.id, room_id, user_id)
    return RoomMemberRead.model_validate(membership)


@router.delete(
    "/{room_id}/members/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
def kick_member(
    room_id: int,
    user_id: int,
    current_user: User = Depends(get_current_user),
    service: MembershipService = Depends(get_membership_service),
) -> Response:
    """Remove a member from the room."""

    service.kick(current_user.id, room_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{room_id}/moderation-log", response_model=list[ModerationLogRead])
def list_moderation_log(
    room_id: int,
    limit: int = Query(default=50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    service: MembershipService = Depends(get_membership_service),
) -> list[ModerationLogRead]:
    entries = service.list_moderation_log(current_user.id, room_id, limit=limit)
    return [ModerationLogRead.model_validate(entry) for entry in entries]
