"""Endpoints for requesting and reviewing room access."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from app.api.deps import get_access_request_service, get_current_user, get_membership_service
from app.models import User
from app.schemas import AccessRequestCreate, AccessRequestRead
from app.services.access_requests import AccessRequestService
from app.services.membership import MembershipService

router = APIRouter(prefix="/rooms/{room_id}/access-requests", tags=["access-requests"])


@router.post("", response_model=AccessRequestRead, status_code=status.HTTP_201_CREATED)
def request_access(
    room_id: int,
    payload: AccessRequestCreate | None = None,
    current_user: User = Depends(get_current_user),
    service: MembershipService = Depends(get_membership_service),
) -> AccessRequestRead:
    """Ask the owner and moderators of a room to let the caller in."""

    message = payload.message if payload is not None else None
    request = service.request_access(current_user.id, room_id, message)
    return AccessRequestRead.model_validate(request)


@router.get("", response_model=list[AccessRequestRead])
def list_access_requests(
    room_id: int,
    current_user: User = Depends(get_current_user),
    service: AccessRequestService = Depends(get_access_request_service),
) -> list[AccessRequestRead]:
    requests = service.list_access_requests(current_user.id, room_id)
    return [AccessRequestRead.model_validate(request) for request in requests]


@router.post("/{request_id}/approve", response_model=AccessRequestRead)
def approve_access_request(
    room_id: int,
    request_id: int,
    current_user: User = Depends(get_current_user),
    service: AccessRequestService = Depends(get_access_request_service),
) -> AccessRequestRead:
    request = service.approve_access_request(current_user.id, room_id, request_id)
    return AccessRequestRead.model_validate(request)


@router.post("/{request_id}/reject", response_model=AccessRequestRead)
def reject_access_request(
    room_id: int,
    request_id: int,
    current_user: User = Depends(get_current_user),
    service: AccessRequestService = Depends(get_access_request_service),
) -> AccessRequestRead:
    request = service.reject_access_request(current_user.id, room_id, request_id)
    return AccessRequestRead.model_validate(request)
