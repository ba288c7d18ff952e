"""Admin dashboard statistics.

Each count runs in its own session on the threadpool and the results are
awaited together. A sub-query that fails is logged and reported as zeros so
the dashboard still renders.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from .models import APPROVAL_STATUSES, Club, ClubFlag, EventFlag, ModerationLog
from .schemas import (
    AdminStats,
    ClubStats,
    FlagStats,
    ModerationLogOut,
    StatsSummary,
    StatusCounts,
)
from .services import profiles_by_id, serialize_log

logger = logging.getLogger(__name__)

RECENT_ACTIVITY_LIMIT = 10


def flag_status_counts(session: Session, model) -> StatusCounts:
    rows = session.execute(select(model.status, func.count(model.id)).group_by(model.status)).all()
    counts = {status: count for status, count in rows}
    return StatusCounts(total=sum(counts.values()), **counts)


def club_status_counts(session: Session) -> dict[str, int]:
    rows = session.execute(
        select(Club.approval_status, func.count(Club.id)).group_by(Club.approval_status)
    ).all()
    counts = {status: 0 for status in APPROVAL_STATUSES}
    counts.update({status: count for status, count in rows})
    return counts


def recent_activity(session: Session, limit: int = RECENT_ACTIVITY_LIMIT) -> list[ModerationLogOut]:
    logs = (
        session.execute(select(ModerationLog).order_by(ModerationLog.created_at.desc()).limit(limit))
        .scalars()
        .all()
    )
    profiles = profiles_by_id(session, (log.admin_id for log in logs))
    return [serialize_log(log, profiles) for log in logs]


def _degrading(session_factory: sessionmaker, name: str, query: Callable[[Session], Any], fallback: Any) -> Any:
    try:
        with session_factory() as session:
            return query(session)
    except Exception:
        logger.exception("Admin stats: %s unavailable, reporting zeros", name)
        return fallback


def approval_rate(approved: int, total: int) -> str:
    if not total:
        return "0%"
    return f"{approved / total * 100:.1f}%"


def combine_counts(*parts: StatusCounts) -> StatusCounts:
    return StatusCounts(
        **{field: sum(getattr(part, field) for part in parts) for field in StatusCounts.model_fields}
    )


def build_admin_stats(
    event_flags: StatusCounts,
    club_flags: StatusCounts,
    clubs: dict[str, int],
    activity: list[ModerationLogOut],
) -> AdminStats:
    combined = combine_counts(event_flags, club_flags)
    total_clubs = sum(clubs.values())
    pending_clubs = clubs.get("pending", 0)
    pending_items = combined.pending + pending_clubs
    return AdminStats(
        summary=StatsSummary(
            total_pending_items=pending_items,
            pending_flags=combined.pending,
            pending_clubs=pending_clubs,
            requires_attention=pending_items > 0,
        ),
        flags=FlagStats(event_flags=event_flags, club_flags=club_flags, combined=combined),
        clubs=ClubStats(
            total=total_clubs,
            pending=pending_clubs,
            approved=clubs.get("approved", 0),
            rejected=clubs.get("rejected", 0),
            approval_rate=approval_rate(clubs.get("approved", 0), total_clubs),
        ),
        recent_activity=activity,
        fetched_at=datetime.utcnow(),
    )


async def collect_admin_stats(session_factory: sessionmaker) -> AdminStats:
    event_flags, club_flags, clubs, activity = await asyncio.gather(
        run_in_threadpool(
            _degrading, session_factory, "event flags", lambda s: flag_status_counts(s, EventFlag), StatusCounts()
        ),
        run_in_threadpool(
            _degrading, session_factory, "club flags", lambda s: flag_status_counts(s, ClubFlag), StatusCounts()
        ),
        run_in_threadpool(
            _degrading, session_factory, "clubs", club_status_counts, {status: 0 for status in APPROVAL_STATUSES}
        ),
        run_in_threadpool(_degrading, session_factory, "recent activity", recent_activity, []),
    )
    return build_admin_stats(event_flags, club_flags, clubs, activity)
