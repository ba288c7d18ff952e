from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..deps import (
    can_club,
    ensure_club_capability,
    get_current_user,
    get_current_user_optional,
    get_db,
    get_notifier,
    get_visible_club_or_404,
)
from ..models import Club, ClubAnnouncement, Profile
from ..notifications import Notification, Notifier
from ..schemas import AnnouncementCreate, AnnouncementOut, AnnouncementUpdate
from ..services import approved_member_ids, profiles_by_id, serialize_announcement

router = APIRouter()


def _announcement_or_404(db: Session, club: Club, announcement_id: UUID) -> ClubAnnouncement:
    announcement = db.get(ClubAnnouncement, str(announcement_id))
    if not announcement or announcement.club_id != club.id:
        raise HTTPException(status_code=404, detail="Announcement not found")
    return announcement


def _ensure_can_modify(db: Session, club: Club, announcement: ClubAnnouncement, user: Profile) -> None:
    if announcement.created_by == user.id:
        return
    ensure_club_capability(db, club, user, "post_announcements")


def _serialize(db: Session, announcement: ClubAnnouncement) -> AnnouncementOut:
    return serialize_announcement(announcement, profiles_by_id(db, [announcement.created_by]))


@router.get("/api/clubs/{club_id}/announcements")
def list_announcements(
    club_id: UUID,
    db: Session = Depends(get_db),
    user: Optional[Profile] = Depends(get_current_user_optional),
):
    club = get_visible_club_or_404(db, club_id, user)
    announcements = (
        db.execute(
            select(ClubAnnouncement)
            .where(ClubAnnouncement.club_id == club.id)
            .order_by(ClubAnnouncement.created_at.desc())
        )
        .scalars()
        .all()
    )
    profiles = profiles_by_id(db, (a.created_by for a in announcements))
    return {
        "announcements": [serialize_announcement(a, profiles) for a in announcements],
        "can_post": can_club(db, club, user, "post_announcements"),
    }


@router.post("/api/clubs/{club_id}/announcements", status_code=201)
def create_announcement(
    club_id: UUID,
    payload: AnnouncementCreate,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    club = get_visible_club_or_404(db, club_id, user)
    ensure_club_capability(db, club, user, "post_announcements")
    announcement = ClubAnnouncement(
        club_id=club.id,
        created_by=user.id,
        title=payload.title,
        content=payload.content,
    )
    db.add(announcement)
    db.flush()
    db.refresh(announcement)

    members = profiles_by_id(db, approved_member_ids(db, club.id))
    notifier.notify(
        Notification(
            kind="announcement.created",
            recipients=tuple(p.email for p in members.values() if p.id != user.id),
            subject=f"{club.name}: {announcement.title}",
            payload={"club_id": club.id, "announcement_id": announcement.id},
        )
    )
    return {"announcement": _serialize(db, announcement), "message": "Announcement created successfully"}


@router.get("/api/clubs/{club_id}/announcements/{announcement_id}", response_model=AnnouncementOut)
def get_announcement(
    club_id: UUID,
    announcement_id: UUID,
    db: Session = Depends(get_db),
    user: Optional[Profile] = Depends(get_current_user_optional),
):
    club = get_visible_club_or_404(db, club_id, user)
    return _serialize(db, _announcement_or_404(db, club, announcement_id))


@router.put("/api/clubs/{club_id}/announcements/{announcement_id}")
def update_announcement(
    club_id: UUID,
    announcement_id: UUID,
    payload: AnnouncementUpdate,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    club = get_visible_club_or_404(db, club_id, user)
    announcement = _announcement_or_404(db, club, announcement_id)
    _ensure_can_modify(db, club, announcement, user)
    updates = payload.model_dump(exclude_none=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")
    for field, value in updates.items():
        setattr(announcement, field, value)
    db.flush()
    db.refresh(announcement)
    return {"announcement": _serialize(db, announcement), "message": "Announcement updated successfully"}


@router.delete("/api/clubs/{club_id}/announcements/{announcement_id}")
def delete_announcement(
    club_id: UUID,
    announcement_id: UUID,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    club = get_visible_club_or_404(db, club_id, user)
    announcement = _announcement_or_404(db, club, announcement_id)
    _ensure_can_modify(db, club, announcement, user)
    db.delete(announcement)
    return {"message": "Announcement deleted successfully"}
