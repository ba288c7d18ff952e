import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from ..deps import (
    ensure_club_capability,
    ensure_club_creator_role,
    get_club_or_404,
    get_current_user,
    get_current_user_optional,
    get_db,
    get_notifier,
    get_visible_club_or_404,
)
from ..models import Club, ClubMember, Profile
from ..moderation import approve_club, log_moderation_action
from ..notifications import Notifier
from ..pagination import PageParams
from ..schemas import AdminClubList, ClubCreate, ClubDetail, ClubEnvelope, ClubList, ClubUpdate
from ..services import CLUB_SORTS, club_detail, club_members, club_summary, delete_club_cascade, sort_clubs

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/api/clubs", response_model=ClubList)
def list_clubs(
    sort_by: str = Query(default="name", alias="sortBy"),
    search: str | None = None,
    page: PageParams = Depends(),
    db: Session = Depends(get_db),
    user: Optional[Profile] = Depends(get_current_user_optional),
):
    if sort_by not in CLUB_SORTS:
        raise HTTPException(
            status_code=400,
            detail={"error": "Invalid sortBy parameter", "details": f"Must be one of: {', '.join(CLUB_SORTS)}"},
        )

    stmt = select(Club)
    if user is None:
        stmt = stmt.where(Club.approval_status == "approved")
    elif not user.is_platform_admin:
        stmt = stmt.where(or_(Club.approval_status == "approved", Club.created_by == user.id))

    search = search.strip() if isinstance(search, str) else None
    if search:
        like_pattern = f"%{search.lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(Club.name).like(like_pattern),
                func.lower(Club.description).like(like_pattern),
            )
        )

    clubs = sort_clubs(list(db.execute(stmt).scalars().all()), sort_by)
    summaries = [club_summary(db, club, user) for club in page.slice(clubs)]
    return ClubList(
        clubs=summaries,
        count=len(summaries),
        sortBy=sort_by,
        pagination=page.meta(total=len(clubs), returned=len(summaries)),
    )


@router.post("/api/clubs", response_model=ClubEnvelope, status_code=201)
def create_club(
    payload: ClubCreate,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    ensure_club_creator_role(user)
    club = Club(
        name=payload.name,
        description=payload.description,
        category=payload.category,
        created_by=user.id,
        approval_status="pending",
    )
    db.add(club)
    db.flush()
    db.add(ClubMember(club_id=club.id, user_id=user.id, role="admin", status="approved"))
    db.flush()

    if user.is_platform_admin:
        approve_club(db, club, user, notifier, auto=True)
        message = "Club created and approved"
    else:
        message = "Club submitted for approval"
    logger.info("Club %s created by %s (%s)", club.id, user.id, club.approval_status)
    db.refresh(club)
    return ClubEnvelope(club=club_summary(db, club, user), message=message)


@router.get("/api/clubs/my-admin-clubs", response_model=AdminClubList)
def my_admin_clubs(db: Session = Depends(get_db), user: Profile = Depends(get_current_user)):
    stmt = select(Club)
    if not user.is_platform_admin:
        admin_club_ids = select(ClubMember.club_id).where(
            ClubMember.user_id == user.id,
            ClubMember.role == "admin",
            ClubMember.status == "approved",
        )
        stmt = stmt.where(Club.id.in_(admin_club_ids))
    clubs = db.execute(stmt).scalars().all()
    summaries = [club_summary(db, club, user) for club in sort_clubs(list(clubs), "name")]
    return AdminClubList(clubs=summaries, count=len(summaries), is_platform_admin=user.is_platform_admin)


@router.get("/api/clubs/{club_id}", response_model=ClubDetail)
def get_club(
    club_id: UUID,
    db: Session = Depends(get_db),
    user: Optional[Profile] = Depends(get_current_user_optional),
):
    club = get_visible_club_or_404(db, club_id, user)
    return club_detail(db, club, user)


@router.put("/api/clubs/{club_id}", response_model=ClubEnvelope)
def update_club(
    club_id: UUID,
    payload: ClubUpdate,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    club = get_club_or_404(db, club_id)
    ensure_club_capability(db, club, user, "edit")
    updates = payload.model_dump(exclude_none=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")
    for field, value in updates.items():
        setattr(club, field, value)
    db.flush()
    db.refresh(club)
    return ClubEnvelope(club=club_summary(db, club, user), message="Club updated successfully")


@router.delete("/api/clubs/{club_id}")
def delete_club(
    club_id: UUID,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    club = get_club_or_404(db, club_id)
    ensure_club_capability(db, club, user, "delete")
    club_id, club_name, creator_id = club.id, club.name, club.created_by
    delete_club_cascade(db, club)
    if user.id != creator_id:
        log_moderation_action(
            db, user.id, "delete_club", "club", club_id, {"club_name": club_name, "creator_id": creator_id}
        )
    return {"message": "Club deleted successfully"}


@router.get("/api/clubs/{club_id}/members")
def list_members(
    club_id: UUID,
    db: Session = Depends(get_db),
    user: Optional[Profile] = Depends(get_current_user_optional),
):
    club = get_visible_club_or_404(db, club_id, user)
    members = club_members(db, club.id)
    return {"members": members, "count": len(members)}
