from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from .models import (
    Club,
    ClubAnnouncement,
    ClubFlag,
    ClubMember,
    Event,
    EventFlag,
    EventRegistration,
    ModerationLog,
    Profile,
)
from .schemas import (
    AnnouncementOut,
    ClubMemberOut,
    ClubSummary,
    EventOut,
    FlagOut,
    ModerationLogOut,
)

UNKNOWN = "Unknown"


# Profile directory

def profiles_by_id(db: Session, ids: Iterable[Optional[str]]) -> dict[str, Profile]:
    wanted = {i for i in ids if i}
    if not wanted:
        return {}
    rows = db.execute(select(Profile).where(Profile.id.in_(wanted))).scalars().all()
    return {profile.id: profile for profile in rows}


def email_of(profiles: dict[str, Profile], user_id: Optional[str], default: Optional[str] = UNKNOWN):
    profile = profiles.get(user_id) if user_id else None
    return profile.email if profile else default


# Sort tables: option -> (key, reverse)

EVENT_SORTS = {
    "date": (lambda event, regs: event.event_date, False),
    "name": (lambda event, regs: event.title.lower(), False),
    "popularity": (lambda event, regs: (-regs, event.event_date), False),
}

CLUB_SORTS = {
    "name": (lambda club: club.name.lower(), False),
    "newest": (lambda club: club.created_at, True),
    "oldest": (lambda club: club.created_at, False),
}


def sort_event_rows(rows: list, sort_by: str) -> list:
    key, reverse = EVENT_SORTS[sort_by]
    return sorted(rows, key=lambda row: key(row[0], row[1] or 0), reverse=reverse)


def sort_clubs(clubs: list[Club], sort_by: str) -> list[Club]:
    key, reverse = CLUB_SORTS[sort_by]
    return sorted(clubs, key=key, reverse=reverse)


# Events

def serialize_event(event: Event, registrations: int) -> EventOut:
    return EventOut(
        id=event.id,
        club_id=event.club_id,
        created_by=event.created_by,
        title=event.title,
        description=event.description,
        event_date=event.event_date,
        location=event.location,
        category=event.category,
        is_free=event.is_free,
        price=event.price,
        registration_count=registrations or 0,
        created_at=event.created_at,
    )


def base_event_query():
    reg_count = func.count(EventRegistration.id).label("registration_count")
    stmt = select(Event, reg_count).outerjoin(EventRegistration).group_by(Event.id)
    return stmt, reg_count


def registration_count(db: Session, event_id: str) -> int:
    return (
        db.execute(
            select(func.count(EventRegistration.id)).where(EventRegistration.event_id == event_id)
        ).scalar()
        or 0
    )


def delete_event_cascade(db: Session, event: Event) -> None:
    db.execute(delete(EventFlag).where(EventFlag.event_id == event.id))
    db.execute(delete(EventRegistration).where(EventRegistration.event_id == event.id))
    db.delete(event)
    db.flush()


# Clubs

def approved_member_ids(db: Session, club_id: str) -> list[str]:
    return list(
        db.execute(
            select(ClubMember.user_id).where(
                ClubMember.club_id == club_id,
                ClubMember.status == "approved",
            )
        ).scalars()
    )


def club_summary(db: Session, club: Club, user: Optional[Profile] = None) -> ClubSummary:
    membership_status = None
    membership_role = None
    if user is not None:
        membership = db.execute(
            select(ClubMember).where(
                ClubMember.club_id == club.id,
                ClubMember.user_id == user.id,
            )
        ).scalar_one_or_none()
        if membership:
            membership_status = membership.status
            membership_role = membership.role

    member_count = (
        db.execute(
            select(func.count(ClubMember.id)).where(
                ClubMember.club_id == club.id,
                ClubMember.status == "approved",
            )
        ).scalar()
        or 0
    )
    return ClubSummary(
        id=club.id,
        name=club.name,
        description=club.description,
        category=club.category,
        approval_status=club.approval_status,
        created_by=club.created_by,
        approved_by=club.approved_by,
        approved_at=club.approved_at,
        rejection_reason=club.rejection_reason,
        created_at=club.created_at,
        member_count=member_count,
        membership_status=membership_status,
        membership_role=membership_role,
    )


def club_members(db: Session, club_id: str, status: str = "approved") -> list[ClubMemberOut]:
    members = (
        db.execute(
            select(ClubMember)
            .where(ClubMember.club_id == club_id, ClubMember.status == status)
            .order_by(ClubMember.joined_at.asc())
        )
        .scalars()
        .all()
    )
    profiles = profiles_by_id(db, (m.user_id for m in members))
    return [
        ClubMemberOut(
            user_id=m.user_id,
            email=email_of(profiles, m.user_id),
            full_name=profiles[m.user_id].full_name if m.user_id in profiles else None,
            role=m.role,
            status=m.status,
            joined_at=m.joined_at,
        )
        for m in members
    ]


def serialize_announcement(announcement: ClubAnnouncement, profiles: dict[str, Profile]) -> AnnouncementOut:
    return AnnouncementOut(
        id=announcement.id,
        club_id=announcement.club_id,
        title=announcement.title,
        content=announcement.content,
        created_by=announcement.created_by,
        author_email=email_of(profiles, announcement.created_by),
        created_at=announcement.created_at,
        updated_at=announcement.updated_at,
    )


def club_detail(db: Session, club: Club, user: Optional[Profile]) -> dict:
    summary = club_summary(db, club, user)
    announcements = (
        db.execute(
            select(ClubAnnouncement)
            .where(ClubAnnouncement.club_id == club.id)
            .order_by(ClubAnnouncement.created_at.desc())
            .limit(5)
        )
        .scalars()
        .all()
    )
    profiles = profiles_by_id(db, (a.created_by for a in announcements))
    stmt, _ = base_event_query()
    stmt = (
        stmt.where(Event.club_id == club.id, Event.event_date >= datetime.utcnow())
        .order_by(Event.event_date.asc())
        .limit(5)
    )
    events = [serialize_event(event, regs) for event, regs in db.execute(stmt).all()]
    return {
        "club": summary,
        "members": club_members(db, club.id),
        "announcements": [serialize_announcement(a, profiles) for a in announcements],
        "events": events,
    }


def delete_club_cascade(db: Session, club: Club) -> None:
    events = db.execute(select(Event).where(Event.club_id == club.id)).scalars().all()
    for event in events:
        delete_event_cascade(db, event)
    db.execute(delete(ClubFlag).where(ClubFlag.club_id == club.id))
    db.execute(delete(ClubAnnouncement).where(ClubAnnouncement.club_id == club.id))
    db.execute(delete(ClubMember).where(ClubMember.club_id == club.id))
    db.delete(club)
    db.flush()


# Flags and logs

def serialize_flag(
    flag: EventFlag | ClubFlag,
    profiles: Optional[dict[str, Profile]] = None,
    entity_title: Optional[str] = None,
) -> FlagOut:
    profiles = profiles or {}
    return FlagOut(
        id=flag.id,
        flag_type=flag.flag_type,
        entity_id=flag.entity_id,
        entity_title=entity_title,
        user_id=flag.user_id,
        user_email=email_of(profiles, flag.user_id),
        reason=flag.reason,
        details=flag.details,
        status=flag.status,
        reviewed_by=flag.reviewed_by,
        reviewer_email=email_of(profiles, flag.reviewed_by, default=None),
        reviewed_at=flag.reviewed_at,
        created_at=flag.created_at,
        updated_at=flag.updated_at,
    )


def serialize_flags(db: Session, flags: list, titles: Optional[dict[str, str]] = None) -> list[FlagOut]:
    profiles = profiles_by_id(db, [f.user_id for f in flags] + [f.reviewed_by for f in flags])
    titles = titles or {}
    return [serialize_flag(f, profiles, titles.get(f.entity_id)) for f in flags]


def serialize_log(log: ModerationLog, profiles: dict[str, Profile]) -> ModerationLogOut:
    admin = profiles.get(log.admin_id) if log.admin_id else None
    return ModerationLogOut(
        id=log.id,
        admin_id=log.admin_id,
        admin_email=admin.email if admin else UNKNOWN,
        admin_name=admin.full_name if admin else None,
        action=log.action,
        entity_type=log.entity_type,
        entity_id=log.entity_id,
        details=log.details,
        created_at=log.created_at,
    )
