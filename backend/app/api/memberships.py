from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..deps import (
    ensure_club_approved,
    ensure_club_capability,
    get_club_or_404,
    get_current_user,
    get_current_user_optional,
    get_db,
    get_notifier,
)
from ..models import ClubMember, Profile
from ..notifications import Notification, Notifier
from ..schemas import MembershipAction, MembershipOut
from ..services import club_members

router = APIRouter()


def _membership(db: Session, club_id: str, user_id: str) -> Optional[ClubMember]:
    return db.execute(
        select(ClubMember).where(ClubMember.club_id == club_id, ClubMember.user_id == user_id)
    ).scalar_one_or_none()


def _out(membership: ClubMember) -> MembershipOut:
    return MembershipOut.model_validate(membership, from_attributes=True)


@router.get("/api/clubs/{club_id}/membership")
def get_membership(
    club_id: UUID,
    db: Session = Depends(get_db),
    user: Optional[Profile] = Depends(get_current_user_optional),
):
    if user is None:
        return {"membership": None}
    membership = _membership(db, str(club_id), user.id)
    return {"membership": _out(membership) if membership else None}


@router.post("/api/clubs/{club_id}/membership", status_code=201)
def join_club(
    club_id: UUID,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    club = get_club_or_404(db, club_id)
    ensure_club_approved(club, "join")
    if _membership(db, club.id, user.id):
        raise HTTPException(status_code=409, detail="You are already a member or have a pending request")

    status = "approved" if user.is_platform_admin else "pending"
    membership = ClubMember(club_id=club.id, user_id=user.id, role="member", status=status)
    db.add(membership)
    db.flush()
    db.refresh(membership)
    message = "Joined club" if status == "approved" else "Membership request submitted"
    return {"membership": _out(membership), "message": message}


@router.patch("/api/clubs/{club_id}/membership")
def review_membership(
    club_id: UUID,
    payload: MembershipAction,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    club = get_club_or_404(db, club_id)
    ensure_club_capability(db, club, user, "manage_members")
    membership = _membership(db, club.id, str(payload.user_id))
    if not membership or membership.status != "pending":
        raise HTTPException(status_code=404, detail="No pending membership request found")

    membership.status = "approved" if payload.action == "approve" else "rejected"
    db.flush()
    db.refresh(membership)

    applicant = db.get(Profile, membership.user_id)
    notifier.notify(
        Notification(
            kind=f"membership.{membership.status}",
            recipients=(applicant.email,) if applicant else (),
            subject=f"Your request to join '{club.name}' was {membership.status}",
            payload={"club_id": club.id},
        )
    )
    return {"membership": _out(membership), "message": f"Membership request {membership.status}"}


@router.delete("/api/clubs/{club_id}/membership")
def leave_club(
    club_id: UUID,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    club = get_club_or_404(db, club_id)
    membership = _membership(db, club.id, user.id)
    if not membership:
        raise HTTPException(status_code=404, detail="Membership not found")
    db.delete(membership)
    return {"message": "Left club successfully"}


@router.get("/api/clubs/{club_id}/membership/pending")
def pending_requests(
    club_id: UUID,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    club = get_club_or_404(db, club_id)
    ensure_club_capability(db, club, user, "manage_members")
    return {"pending_requests": club_members(db, club.id, status="pending")}
