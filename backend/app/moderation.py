"""Flag review lifecycle, club approval workflow and the moderation audit trail.

Flags move ``pending -> reviewed | resolved | dismissed`` exactly once. Clubs
move ``pending -> approved | rejected`` exactly once. Every privileged
transition appends a row to ``moderation_logs``; a failed log write is
reported but never undoes the action it describes.
"""

import logging
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .models import (
    FLAG_MODELS,
    FLAG_REASONS,
    REVIEW_STATUSES,
    Club,
    ClubFlag,
    Event,
    EventFlag,
    ModerationLog,
    Profile,
)
from .notifications import Notification, Notifier
from .services import delete_club_cascade, delete_event_cascade

logger = logging.getLogger(__name__)

REVIEW_ACTIONS = {
    "reviewed": "review_flag",
    "resolved": "resolve_flag",
    "dismissed": "dismiss_flag",
}

UNKNOWN_TITLES = {"event": "Unknown Event", "club": "Unknown Club"}


def log_moderation_action(
    db: Session,
    admin_id: Optional[str],
    action: str,
    entity_type: str,
    entity_id: str,
    details: Optional[dict[str, Any]] = None,
) -> Optional[ModerationLog]:
    entry = ModerationLog(
        admin_id=admin_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details or {},
    )
    try:
        with db.begin_nested():
            db.add(entry)
    except SQLAlchemyError:
        logger.exception("Could not record moderation action %s on %s %s", action, entity_type, entity_id)
        return None
    logger.info("Moderation: %s %s %s by %s", action, entity_type, entity_id, admin_id)
    return entry


# Flags

def validate_reason(reason: Optional[str]) -> str:
    if reason is None or not reason.strip():
        raise HTTPException(status_code=400, detail="Flag reason is required")
    if reason not in FLAG_REASONS:
        raise HTTPException(
            status_code=400,
            detail={"error": "Invalid flag reason", "details": f"Reason must be one of: {', '.join(FLAG_REASONS)}"},
        )
    return reason


def validate_review_status(status: Optional[str]) -> str:
    if status not in REVIEW_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status. Must be: reviewed, resolved, or dismissed")
    return status


def has_user_flagged(db: Session, flag_type: str, entity_id: str, user: Optional[Profile]) -> bool:
    if user is None:
        return False
    try:
        entity_id = str(UUID(str(entity_id)))
    except ValueError:
        return False
    model = FLAG_MODELS[flag_type]
    try:
        row = db.execute(
            select(model.id).where(model.entity_id == entity_id, model.user_id == user.id)
        ).first()
    except SQLAlchemyError:
        logger.warning("Flag lookup failed for %s %s", flag_type, entity_id, exc_info=True)
        return False
    return row is not None


def submit_flag(
    db: Session,
    flag_type: str,
    entity_id: str,
    user: Profile,
    reason: Optional[str],
    details: Optional[str] = None,
) -> EventFlag | ClubFlag:
    reason = validate_reason(reason)
    if has_user_flagged(db, flag_type, entity_id, user):
        raise HTTPException(status_code=409, detail=f"You have already flagged this {flag_type}")
    model = FLAG_MODELS[flag_type]
    flag = model(user_id=user.id, reason=reason, details=details or None, status="pending")
    flag.entity_id = entity_id
    db.add(flag)
    db.flush()
    db.refresh(flag)
    logger.info("%s %s flagged by %s (%s)", flag_type, entity_id, user.id, reason)
    return flag


def find_flag(db: Session, flag_id: str) -> Optional[EventFlag | ClubFlag]:
    return db.get(EventFlag, flag_id) or db.get(ClubFlag, flag_id)


def flagged_entity(db: Session, flag: EventFlag | ClubFlag) -> Optional[Event | Club]:
    if flag.flag_type == "event":
        return db.get(Event, flag.entity_id)
    return db.get(Club, flag.entity_id)


def entity_title(entity: Optional[Event | Club], flag_type: str) -> str:
    if entity is None:
        return UNKNOWN_TITLES[flag_type]
    return entity.title if isinstance(entity, Event) else entity.name


def review_flag(
    db: Session,
    flag: EventFlag | ClubFlag,
    status: Optional[str],
    reviewer: Profile,
    notifier: Notifier,
    notes: Optional[str] = None,
) -> EventFlag | ClubFlag:
    """Move a pending flag to a terminal status. Callers check the reviewer's rights."""
    status = validate_review_status(status)
    if flag.status != "pending":
        raise HTTPException(status_code=409, detail="Flag has already been reviewed")

    flag.status = status
    flag.reviewed_by = reviewer.id
    flag.reviewed_at = datetime.utcnow()
    db.flush()
    db.refresh(flag)

    title = entity_title(flagged_entity(db, flag), flag.flag_type)
    log_moderation_action(
        db,
        reviewer.id,
        REVIEW_ACTIONS[status],
        "flag",
        flag.id,
        {
            "flag_type": flag.flag_type,
            "entity_id": flag.entity_id,
            "entity_title": title,
            "status": status,
            "notes": notes,
        },
    )
    reporter = db.get(Profile, flag.user_id)
    notifier.notify(
        Notification(
            kind="flag.reviewed",
            recipients=(reporter.email,) if reporter else (),
            subject=f"Your report on '{title}' was {status}",
            payload={"flag_id": flag.id, "status": status},
        )
    )
    return flag


def delete_flagged_entity(db: Session, flag: EventFlag | ClubFlag, admin: Profile) -> str:
    """Remove the entity a flag points at, along with its flags. Returns the entity title."""
    entity = flagged_entity(db, flag)
    if entity is None:
        raise HTTPException(status_code=404, detail=f"{flag.flag_type.capitalize()} not found")
    title = entity_title(entity, flag.flag_type)
    entity_id = entity.id
    details = {"title": title, "flag_id": flag.id, "flag_reason": flag.reason}
    if isinstance(entity, Event):
        delete_event_cascade(db, entity)
        log_moderation_action(db, admin.id, "delete_event", "event", entity_id, details)
    else:
        delete_club_cascade(db, entity)
        log_moderation_action(db, admin.id, "delete_club", "club", entity_id, details)
    return title


# Club approval

def _club_decision_details(db: Session, club: Club, previous_status: str) -> tuple[Optional[Profile], dict]:
    creator = db.get(Profile, club.created_by)
    return creator, {
        "club_name": club.name,
        "previous_status": previous_status,
        "creator_id": club.created_by,
        "creator_email": creator.email if creator else None,
    }


def _ensure_pending(club: Club) -> str:
    if club.approval_status != "pending":
        raise HTTPException(status_code=409, detail=f"Club is already {club.approval_status}")
    return club.approval_status


def approve_club(db: Session, club: Club, admin: Profile, notifier: Notifier, auto: bool = False) -> Club:
    previous_status = _ensure_pending(club)
    club.approval_status = "approved"
    club.approved_by = admin.id
    club.approved_at = datetime.utcnow()
    club.rejection_reason = None
    db.flush()

    creator, details = _club_decision_details(db, club, previous_status)
    if auto:
        details["auto_approved"] = True
    log_moderation_action(db, admin.id, "approve_club", "club", club.id, details)
    if not auto:
        notifier.notify(
            Notification(
                kind="club.approved",
                recipients=(creator.email,) if creator else (),
                subject=f"Your club '{club.name}' was approved",
                payload={"club_id": club.id},
            )
        )
    return club


def reject_club(db: Session, club: Club, admin: Profile, reason: str, notifier: Notifier) -> Club:
    previous_status = _ensure_pending(club)
    club.approval_status = "rejected"
    club.approved_by = admin.id
    club.approved_at = datetime.utcnow()
    club.rejection_reason = reason
    db.flush()

    creator, details = _club_decision_details(db, club, previous_status)
    details["rejection_reason"] = reason
    log_moderation_action(db, admin.id, "reject_club", "club", club.id, details)
    notifier.notify(
        Notification(
            kind="club.rejected",
            recipients=(creator.email,) if creator else (),
            subject=f"Your club '{club.name}' was not approved",
            payload={"club_id": club.id, "reason": reason},
        )
    )
    return club
