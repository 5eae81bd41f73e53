"""FastAPI dependencies for the API layer."""

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from app.core.security import decode_access_token
from app.database import get_db
from app.models import User
from app.services.access_requests import AccessRequestService
from app.services.invitations import InvitationService
from app.services.membership import MembershipService
from app.services.notifier import EventNotifier, get_event_notifier

# Tokens are minted by the identity service; this API only verifies them.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Retrieve the current user from the JWT token."""

    return get_user_from_token(token, db)


def get_user_from_token(token: str, db: Session) -> User:
    """Resolve a user from a JWT token or raise an HTTP 401 error."""

    payload = decode_access_token(token)
    sub = payload.get("sub")
    if sub is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )

    try:
        user_id = int(sub)
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from None

    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    return user


def get_membership_service(
    db: Session = Depends(get_db),
    notifier: EventNotifier = Depends(get_event_notifier),
) -> MembershipService:
    return MembershipService(db, notifier)


def get_invitation_service(
    db: Session = Depends(get_db),
    notifier: EventNotifier = Depends(get_event_notifier),
) -> InvitationService:
    return InvitationService(db, notifier)


def get_access_request_service(
    db: Session = Depends(get_db),
    notifier: EventNotifier = Depends(get_event_notifier),
) -> AccessRequestService:
    return AccessRequestService(db, notifier)
