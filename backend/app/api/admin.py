from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from ..deps import get_admin_user, get_club_or_404, get_db, get_notifier, get_session_factory
from ..models import (
    FLAG_MODELS,
    FLAG_STATUSES,
    MODERATION_ENTITY_TYPES,
    Club,
    ClubFlag,
    Event,
    EventFlag,
    ModerationLog,
    Profile,
)
from ..moderation import (
    UNKNOWN_TITLES,
    approve_club,
    delete_flagged_entity,
    entity_title,
    find_flag,
    flagged_entity,
    reject_club,
    review_flag,
)
from ..notifications import Notifier
from ..pagination import PageParams
from ..schemas import (
    AdminFlagList,
    AdminFlagReview,
    AdminStats,
    ClubEnvelope,
    ClubReject,
    FlagEnvelope,
    FlagStatistics,
    ModerationLogList,
)
from ..services import club_summary, email_of, profiles_by_id, serialize_flag, serialize_flags, serialize_log
from ..stats import collect_admin_stats, flag_status_counts

router = APIRouter()


def _flag_or_404(db: Session, flag_id: UUID):
    flag = find_flag(db, str(flag_id))
    if not flag:
        raise HTTPException(status_code=404, detail="Flag not found")
    return flag


def _entity_titles(db: Session, flags: list) -> dict[str, str]:
    event_ids = {f.entity_id for f in flags if f.flag_type == "event"}
    club_ids = {f.entity_id for f in flags if f.flag_type == "club"}
    titles = {}
    if event_ids:
        titles.update(db.execute(select(Event.id, Event.title).where(Event.id.in_(event_ids))).all())
    if club_ids:
        titles.update(db.execute(select(Club.id, Club.name).where(Club.id.in_(club_ids))).all())
    for flag in flags:
        titles.setdefault(flag.entity_id, UNKNOWN_TITLES[flag.flag_type])
    return titles


@router.get("/api/admin/flags", response_model=AdminFlagList)
def list_flags(
    status: str | None = None,
    flag_type: str | None = Query(default=None, alias="type"),
    page: PageParams = Depends(),
    db: Session = Depends(get_db),
    admin: Profile = Depends(get_admin_user),
):
    if status and status not in FLAG_STATUSES:
        raise HTTPException(
            status_code=400,
            detail="Invalid status. Must be: pending, reviewed, resolved, or dismissed",
        )
    if flag_type and flag_type not in FLAG_MODELS:
        raise HTTPException(status_code=400, detail="Invalid type. Must be: event or club")

    models = [FLAG_MODELS[flag_type]] if flag_type else list(FLAG_MODELS.values())
    # Each table contributes at most offset+limit rows to the merged, newest-first window.
    window = page.offset + page.limit
    total = 0
    merged = []
    for model in models:
        stmt = select(model)
        count_stmt = select(func.count(model.id))
        if status:
            stmt = stmt.where(model.status == status)
            count_stmt = count_stmt.where(model.status == status)
        total += db.execute(count_stmt).scalar() or 0
        merged.extend(db.execute(stmt.order_by(model.created_at.desc()).limit(window)).scalars().all())
    merged.sort(key=lambda flag: flag.created_at, reverse=True)
    flags = page.slice(merged)

    event_counts = flag_status_counts(db, EventFlag)
    club_counts = flag_status_counts(db, ClubFlag)
    return AdminFlagList(
        flags=serialize_flags(db, flags, _entity_titles(db, flags)),
        statistics=FlagStatistics(
            total=event_counts.total + club_counts.total,
            event_flags=event_counts.total,
            club_flags=club_counts.total,
            pending=event_counts.pending + club_counts.pending,
            event_flags_pending=event_counts.pending,
            club_flags_pending=club_counts.pending,
        ),
        pagination=page.meta(total=total, returned=len(flags)),
    )


@router.get("/api/admin/flags/{flag_id}")
def get_flag(flag_id: UUID, db: Session = Depends(get_db), admin: Profile = Depends(get_admin_user)):
    flag = _flag_or_404(db, flag_id)
    title = entity_title(flagged_entity(db, flag), flag.flag_type)
    profiles = profiles_by_id(db, [flag.user_id, flag.reviewed_by])
    return {"flag": serialize_flag(flag, profiles, title)}


@router.patch("/api/admin/flags/{flag_id}", response_model=FlagEnvelope)
def update_flag(
    flag_id: UUID,
    payload: AdminFlagReview,
    db: Session = Depends(get_db),
    admin: Profile = Depends(get_admin_user),
    notifier: Notifier = Depends(get_notifier),
):
    flag = _flag_or_404(db, flag_id)
    review_flag(db, flag, payload.status, admin, notifier, notes=payload.notes)
    title = entity_title(flagged_entity(db, flag), flag.flag_type)
    profiles = profiles_by_id(db, [flag.user_id, flag.reviewed_by])
    return FlagEnvelope(
        flag=serialize_flag(flag, profiles, title),
        message=f"Flag {payload.status} successfully",
    )


@router.delete("/api/admin/flags/{flag_id}")
def delete_flag(
    flag_id: UUID,
    delete_entity: bool = False,
    db: Session = Depends(get_db),
    admin: Profile = Depends(get_admin_user),
    notifier: Notifier = Depends(get_notifier),
):
    flag = _flag_or_404(db, flag_id)
    if delete_entity:
        flag_type = flag.flag_type
        title = delete_flagged_entity(db, flag, admin)
        return {"message": f"{flag_type.capitalize()} '{title}' deleted successfully"}
    review_flag(db, flag, "dismissed", admin, notifier)
    return {"message": "Flag dismissed"}


def _club_queue_entry(db: Session, club: Club, profiles: dict) -> dict:
    entry = club_summary(db, club).model_dump()
    entry["creator_email"] = email_of(profiles, club.created_by)
    if club.approval_status == "rejected":
        entry["rejected_by_email"] = email_of(profiles, club.approved_by)
        entry["rejected_at"] = club.approved_at
    return entry


def _club_queue(db: Session, status: str, order, page: PageParams) -> dict:
    total = db.execute(select(func.count(Club.id)).where(Club.approval_status == status)).scalar() or 0
    clubs = (
        db.execute(
            select(Club)
            .where(Club.approval_status == status)
            .order_by(order)
            .offset(page.offset)
            .limit(page.limit)
        )
        .scalars()
        .all()
    )
    profiles = profiles_by_id(db, [c.created_by for c in clubs] + [c.approved_by for c in clubs])
    entries = [_club_queue_entry(db, club, profiles) for club in clubs]
    return {"clubs": entries, "pagination": page.meta(total=total, returned=len(entries))}


@router.get("/api/admin/clubs/pending")
def pending_clubs(
    page: PageParams = Depends(),
    db: Session = Depends(get_db),
    admin: Profile = Depends(get_admin_user),
):
    return _club_queue(db, "pending", Club.created_at.asc(), page)


@router.get("/api/admin/clubs/rejected")
def rejected_clubs(
    page: PageParams = Depends(),
    db: Session = Depends(get_db),
    admin: Profile = Depends(get_admin_user),
):
    return _club_queue(db, "rejected", Club.approved_at.desc(), page)


@router.post("/api/admin/clubs/{club_id}/approve", response_model=ClubEnvelope)
def approve(
    club_id: UUID,
    db: Session = Depends(get_db),
    admin: Profile = Depends(get_admin_user),
    notifier: Notifier = Depends(get_notifier),
):
    club = approve_club(db, get_club_or_404(db, club_id), admin, notifier)
    db.refresh(club)
    return ClubEnvelope(club=club_summary(db, club), message="Club approved successfully")


@router.post("/api/admin/clubs/{club_id}/reject", response_model=ClubEnvelope)
def reject(
    club_id: UUID,
    payload: ClubReject,
    db: Session = Depends(get_db),
    admin: Profile = Depends(get_admin_user),
    notifier: Notifier = Depends(get_notifier),
):
    club = reject_club(db, get_club_or_404(db, club_id), admin, payload.reason, notifier)
    db.refresh(club)
    return ClubEnvelope(club=club_summary(db, club), message="Club rejected successfully")


@router.get("/api/admin/logs", response_model=ModerationLogList)
def list_logs(
    action: str | None = None,
    entity_type: str | None = None,
    page: PageParams = Depends(),
    db: Session = Depends(get_db),
    admin: Profile = Depends(get_admin_user),
):
    if entity_type and entity_type not in MODERATION_ENTITY_TYPES:
        raise HTTPException(status_code=400, detail="Invalid entity_type. Must be: club, event, flag, or user")

    stmt = select(ModerationLog)
    count_stmt = select(func.count(ModerationLog.id))
    if action:
        stmt = stmt.where(ModerationLog.action == action)
        count_stmt = count_stmt.where(ModerationLog.action == action)
    if entity_type:
        stmt = stmt.where(ModerationLog.entity_type == entity_type)
        count_stmt = count_stmt.where(ModerationLog.entity_type == entity_type)

    total = db.execute(count_stmt).scalar() or 0
    logs = (
        db.execute(stmt.order_by(ModerationLog.created_at.desc()).offset(page.offset).limit(page.limit))
        .scalars()
        .all()
    )
    profiles = profiles_by_id(db, (log.admin_id for log in logs))
    return ModerationLogList(
        logs=[serialize_log(log, profiles) for log in logs],
        pagination=page.meta(total=total, returned=len(logs)),
    )


@router.get("/api/admin/stats", response_model=AdminStats)
async def admin_stats(
    admin: Profile = Depends(get_admin_user),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    return await collect_admin_stats(session_factory)
