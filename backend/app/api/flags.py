from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..deps import (
    ensure_club_capability,
    ensure_event_capability,
    get_current_user,
    get_current_user_optional,
    get_db,
    get_event_or_404,
    get_notifier,
    get_visible_club_or_404,
)
from ..models import ClubFlag, EventFlag, Profile
from ..moderation import has_user_flagged, review_flag, submit_flag
from ..notifications import Notifier
from ..schemas import FlagCreate, FlagEnvelope, FlagReview
from ..services import profiles_by_id, serialize_flag, serialize_flags

router = APIRouter()


def _flag_envelope(db: Session, flag, title: str, message: str) -> FlagEnvelope:
    profiles = profiles_by_id(db, [flag.user_id, flag.reviewed_by])
    return FlagEnvelope(flag=serialize_flag(flag, profiles, title), message=message)


def _flag_for(db: Session, model, flag_id: UUID, entity_id: str):
    flag = db.get(model, str(flag_id))
    if not flag or flag.entity_id != entity_id:
        raise HTTPException(status_code=404, detail="Flag not found")
    return flag


def _flags_of(db: Session, model, entity_id: str) -> list:
    return list(
        db.execute(select(model).where(model.entity_id == entity_id).order_by(model.created_at.desc()))
        .scalars()
        .all()
    )


# Events

@router.get("/api/events/{event_id}/flag")
def event_flag_status(
    event_id: str,
    db: Session = Depends(get_db),
    user: Optional[Profile] = Depends(get_current_user_optional),
):
    return {"hasFlagged": has_user_flagged(db, "event", event_id, user)}


@router.post("/api/events/{event_id}/flag", response_model=FlagEnvelope, status_code=201)
def flag_event(
    event_id: UUID,
    payload: FlagCreate,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    event = get_event_or_404(db, event_id)
    flag = submit_flag(db, "event", event.id, user, payload.reason, payload.details)
    return _flag_envelope(db, flag, event.title, "Event flagged successfully")


@router.patch("/api/events/{event_id}/flag", response_model=FlagEnvelope)
def review_event_flag(
    event_id: UUID,
    payload: FlagReview,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    event = get_event_or_404(db, event_id)
    ensure_event_capability(event, user, "review_flags")
    flag = _flag_for(db, EventFlag, payload.flag_id, event.id)
    review_flag(db, flag, payload.status, user, notifier)
    return _flag_envelope(db, flag, event.title, f"Flag status updated to {flag.status}")


@router.get("/api/events/{event_id}/flags")
def list_event_flags(
    event_id: UUID,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    event = get_event_or_404(db, event_id)
    ensure_event_capability(event, user, "view_flags")
    flags = _flags_of(db, EventFlag, event.id)
    return {
        "flags": serialize_flags(db, flags, {event.id: event.title}),
        "event": {"id": event.id, "title": event.title},
    }


# Clubs

@router.get("/api/clubs/{club_id}/flag")
def club_flag_status(
    club_id: str,
    db: Session = Depends(get_db),
    user: Optional[Profile] = Depends(get_current_user_optional),
):
    return {"hasFlagged": has_user_flagged(db, "club", club_id, user)}


@router.post("/api/clubs/{club_id}/flag", response_model=FlagEnvelope, status_code=201)
def flag_club(
    club_id: UUID,
    payload: FlagCreate,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    club = get_visible_club_or_404(db, club_id, user)
    flag = submit_flag(db, "club", club.id, user, payload.reason, payload.details)
    return _flag_envelope(db, flag, club.name, "Club flagged successfully")


@router.patch("/api/clubs/{club_id}/flag", response_model=FlagEnvelope)
def review_club_flag(
    club_id: UUID,
    payload: FlagReview,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    club = get_visible_club_or_404(db, club_id, user)
    ensure_club_capability(db, club, user, "review_flags")
    flag = _flag_for(db, ClubFlag, payload.flag_id, club.id)
    review_flag(db, flag, payload.status, user, notifier)
    return _flag_envelope(db, flag, club.name, f"Flag status updated to {flag.status}")


@router.get("/api/clubs/{club_id}/flags")
def list_club_flags(
    club_id: UUID,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    club = get_visible_club_or_404(db, club_id, user)
    ensure_club_capability(db, club, user, "view_flags")
    flags = _flags_of(db, ClubFlag, club.id)
    return {
        "flags": serialize_flags(db, flags, {club.id: club.name}),
        "club": {"id": club.id, "name": club.name},
    }
