"""Room invitation and invite link endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from app.api.deps import get_current_user, get_invitation_service
from app.models import RoomInviteLink, User
from app.schemas import (
    AcceptResultRead,
    InvitationCreate,
    InvitationDetail,
    InvitationRead,
    InviteLinkCreate,
    InviteLinkRead,
    JoinResultRead,
)
from app.services.invitations import InvitationService

router = APIRouter(tags=["invites"])


def _serialize_link(link: RoomInviteLink, service: InvitationService) -> InviteLinkRead:
    return InviteLinkRead(
        room_id=link.room_id,
        code=link.code,
        url=service.invite_url(link),
        created_by=link.created_by,
        created_at=link.created_at,
        expires_at=link.expires_at,
        is_active=link.is_active,
    )


@router.post(
    "/rooms/{room_id}/invites",
    response_model=InvitationRead,
    status_code=status.HTTP_201_CREATED,
)
def send_invite(
    room_id: int,
    payload: InvitationCreate,
    current_user: User = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service),
) -> InvitationRead:
    """Invite another user to the room."""

    invitation = service.send_invite(current_user.id, room_id, payload.invitee_id)
    return InvitationRead.model_validate(invitation)


@router.get("/rooms/{room_id}/invites", response_model=list[InvitationDetail])
def list_invites(
    room_id: int,
    current_user: User = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service),
) -> list[InvitationDetail]:
    """Return pending invitations of the room, newest first."""

    invitations = service.list_invites(current_user.id, room_id)
    return [InvitationDetail.model_validate(invitation) for invitation in invitations]


@router.delete(
    "/rooms/{room_id}/invites/{invite_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
def revoke_invite(
    room_id: int,
    invite_id: int,
    current_user: User = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service),
) -> Response:
    service.revoke_invite(current_user.id, room_id, invite_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/invites/{invite_id}/accept", response_model=AcceptResultRead)
def accept_invite(
    invite_id: int,
    current_user: User = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service),
) -> AcceptResultRead:
    result = service.accept_invite(current_user.id, invite_id)
    return AcceptResultRead.model_validate(result)


@router.post("/invites/{invite_id}/reject", response_model=InvitationRead)
def reject_invite(
    invite_id: int,
    current_user: User = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service),
) -> InvitationRead:
    invitation = service.reject_invite(current_user.id, invite_id)
    return InvitationRead.model_validate(invitation)


@router.post(
    "/rooms/{room_id}/invite-link",
    response_model=InviteLinkRead,
    status_code=status.HTTP_201_CREATED,
)
def create_invite_link(
    room_id: int,
    payload: InviteLinkCreate | None = None,
    current_user: User = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service),
) -> InviteLinkRead:
    """Create a fresh invite link, deactivating the previous one."""

    ttl_hours = payload.ttl_hours if payload is not None else None
    link = service.create_invite_link(current_user.id, room_id, ttl_hours)
    return _serialize_link(link, service)


@router.get("/rooms/{room_id}/invite-link", response_model=InviteLinkRead)
def get_invite_link(
    room_id: int,
    current_user: User = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service),
) -> InviteLinkRead:
    link = service.get_active_invite_link(current_user.id, room_id)
    return _serialize_link(link, service)


@router.post("/invite-links/{code}/redeem", response_model=JoinResultRead)
def redeem_invite_link(
    code: str,
    current_user: User = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service),
) -> JoinResultRead:
    result = service.redeem_invite_link(current_user.id, code)
    return JoinResultRead.model_validate(result)
