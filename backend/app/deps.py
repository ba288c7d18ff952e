import logging
from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.orm import Session

from .auth_utils import InvalidToken, decode_access_token
from .db import SessionLocal, get_session
from .models import Club, ClubMember, Event, Profile
from .notifications import Notifier, default_notifier

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def get_db():
    with get_session() as session:
        yield session


def get_session_factory():
    return SessionLocal


def get_notifier() -> Notifier:
    return default_notifier


def _profile_from_token(db: Session, token: str) -> Profile:
    claims = decode_access_token(token)
    profile = db.get(Profile, claims["sub"])
    if profile:
        return profile
    # The auth provider creates profiles on signup; mirror that on first sight.
    email = claims.get("email")
    if not email:
        raise InvalidToken("Token has no email claim")
    email = email.lower()
    if db.execute(select(Profile.id).where(Profile.email == email)).first():
        raise InvalidToken("Email is already linked to another account")
    metadata = claims.get("user_metadata") or {}
    profile = Profile(id=claims["sub"], email=email, full_name=metadata.get("full_name"))
    db.add(profile)
    db.flush()
    logger.info("Provisioned profile %s for %s", profile.id, profile.email)
    return profile


def get_current_user(
    creds: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> Profile:
    if creds is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    try:
        return _profile_from_token(db, creds.credentials)
    except InvalidToken:
        raise HTTPException(status_code=401, detail="Invalid or expired token")


def get_current_user_optional(
    creds: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> Optional[Profile]:
    if creds is None:
        return None
    try:
        return _profile_from_token(db, creds.credentials)
    except InvalidToken:
        return None


def ensure_admin(user: Profile) -> None:
    if not user.is_platform_admin:
        raise HTTPException(status_code=403, detail="Admin access required")


def get_admin_user(user: Profile = Depends(get_current_user)) -> Profile:
    ensure_admin(user)
    return user


def ensure_club_creator_role(user: Profile) -> None:
    if user.is_platform_admin or user.role == "student_leader":
        return
    raise HTTPException(status_code=403, detail="Only student leaders and admins can create clubs")


def get_club_or_404(db: Session, club_id: UUID | str) -> Club:
    club = db.get(Club, str(club_id))
    if not club:
        raise HTTPException(status_code=404, detail="Club not found")
    return club


def get_event_or_404(db: Session, event_id: UUID | str) -> Event:
    event = db.get(Event, str(event_id))
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


def club_visible(club: Club, user: Optional[Profile]) -> bool:
    if club.approval_status == "approved":
        return True
    return user is not None and (user.id == club.created_by or user.is_platform_admin)


def get_visible_club_or_404(db: Session, club_id: UUID | str, user: Optional[Profile]) -> Club:
    club = get_club_or_404(db, club_id)
    if not club_visible(club, user):
        raise HTTPException(status_code=404, detail="Club not found")
    return club


def ensure_club_approved(club: Club, action: str) -> None:
    """Events can only be created or joined under an approved club."""
    if club.approval_status == "approved":
        return
    if club.approval_status == "rejected":
        raise HTTPException(status_code=403, detail=f"Cannot {action} a club that has been rejected")
    raise HTTPException(status_code=403, detail=f"Cannot {action} a club that is pending approval")


# Authorization policy. A capability lists the grants that unlock it; platform
# admins hold every capability.

OWNER = "owner"
CLUB_ADMIN = "club_admin"

CLUB_CAPABILITIES = {
    "edit": ({OWNER}, "Forbidden: Only club creator can update this club"),
    "delete": ({OWNER}, "Forbidden: Only club creator can delete this club"),
    "view_flags": ({OWNER}, "Forbidden: Only club creator can view flags"),
    "review_flags": ({OWNER}, "Forbidden: Only club creator can update flag status"),
    "manage_members": ({OWNER}, "Forbidden: Only club creator can manage membership requests"),
    "create_events": ({OWNER, CLUB_ADMIN}, "Forbidden: Only club admins can create events"),
    "post_announcements": ({OWNER, CLUB_ADMIN}, "Forbidden: Only club admins can manage announcements"),
}

EVENT_CAPABILITIES = {
    "edit": ({OWNER}, "Forbidden: Only event creator can update this event"),
    "delete": ({OWNER}, "Forbidden: Only event creator can delete this event"),
    "view_flags": ({OWNER}, "Forbidden: Only event creator can view flags"),
    "review_flags": ({OWNER}, "Forbidden: Only event creator can update flag status"),
    "view_registrations": ({OWNER}, "Forbidden: Only event creator can view registrations"),
}


def club_grants(db: Session, club: Club, user: Profile) -> set[str]:
    grants = set()
    if user.id == club.created_by:
        grants.add(OWNER)
    membership = db.execute(
        select(ClubMember).where(
            ClubMember.club_id == club.id,
            ClubMember.user_id == user.id,
            ClubMember.role == "admin",
            ClubMember.status == "approved",
        )
    ).scalar_one_or_none()
    if membership:
        grants.add(CLUB_ADMIN)
    return grants


def can_club(db: Session, club: Club, user: Optional[Profile], capability: str) -> bool:
    if user is None:
        return False
    if user.is_platform_admin:
        return True
    required, _ = CLUB_CAPABILITIES[capability]
    return bool(required & club_grants(db, club, user))


def ensure_club_capability(db: Session, club: Club, user: Profile, capability: str) -> None:
    if not can_club(db, club, user, capability):
        raise HTTPException(status_code=403, detail=CLUB_CAPABILITIES[capability][1])


def can_event(event: Event, user: Optional[Profile], capability: str) -> bool:
    if user is None:
        return False
    if user.is_platform_admin:
        return True
    required, _ = EVENT_CAPABILITIES[capability]
    grants = {OWNER} if user.id == event.created_by else set()
    return bool(required & grants)


def ensure_event_capability(event: Event, user: Profile, capability: str) -> None:
    if not can_event(event, user, capability):
        raise HTTPException(status_code=403, detail=EVENT_CAPABILITIES[capability][1])
