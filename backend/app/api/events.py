import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..deps import (
    ensure_club_approved,
    ensure_club_capability,
    ensure_event_capability,
    get_club_or_404,
    get_current_user,
    get_db,
    get_event_or_404,
    get_notifier,
)
from ..models import Club, Event, EventRegistration, Profile
from ..moderation import log_moderation_action
from ..notifications import Notification, Notifier
from ..pagination import PageParams
from ..schemas import (
    EventCreate,
    EventEnvelope,
    EventList,
    EventOut,
    EventUpdate,
    RegistrationList,
    RegistrationOut,
    check_price,
)
from ..services import (
    EVENT_SORTS,
    approved_member_ids,
    base_event_query,
    delete_event_cascade,
    profiles_by_id,
    registration_count,
    serialize_event,
    sort_event_rows,
)

logger = logging.getLogger(__name__)

router = APIRouter()

REQUIRED_EVENT_FIELDS = ("title", "event_date", "is_free")


@router.get("/api/events", response_model=EventList)
def list_events(
    sort_by: str = Query(default="date", alias="sortBy"),
    category: str | None = None,
    club_id: UUID | None = None,
    page: PageParams = Depends(),
    db: Session = Depends(get_db),
):
    if sort_by not in EVENT_SORTS:
        raise HTTPException(
            status_code=400,
            detail={"error": "Invalid sortBy parameter", "details": f"Must be one of: {', '.join(EVENT_SORTS)}"},
        )

    stmt, _ = base_event_query()
    stmt = stmt.join(Club, Club.id == Event.club_id).where(Club.approval_status == "approved")
    if category:
        stmt = stmt.where(Event.category == category)
    if club_id:
        stmt = stmt.where(Event.club_id == str(club_id))

    rows = sort_event_rows(db.execute(stmt).all(), sort_by)
    events = [serialize_event(event, regs) for event, regs in page.slice(rows)]
    return EventList(
        events=events,
        sortBy=sort_by,
        pagination=page.meta(total=len(rows), returned=len(events)),
    )


@router.post("/api/events", response_model=EventEnvelope, status_code=201)
def create_event(
    payload: EventCreate,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    club = get_club_or_404(db, payload.club_id)
    ensure_club_capability(db, club, user, "create_events")
    ensure_club_approved(club, "create events for")

    data = payload.model_dump()
    data["club_id"] = club.id
    event = Event(**data, created_by=user.id)
    db.add(event)
    db.flush()
    db.refresh(event)

    members = profiles_by_id(db, approved_member_ids(db, club.id))
    notifier.notify(
        Notification(
            kind="event.created",
            recipients=tuple(p.email for p in members.values() if p.id != user.id),
            subject=f"New event from {club.name}: {event.title}",
            payload={"event_id": event.id, "club_id": club.id},
        )
    )
    logger.info("Event %s created in club %s by %s", event.id, club.id, user.id)
    return EventEnvelope(event=serialize_event(event, 0), message="Event created successfully")


@router.get("/api/events/{event_id}", response_model=EventOut)
def get_event(event_id: UUID, db: Session = Depends(get_db)):
    event = get_event_or_404(db, event_id)
    return serialize_event(event, registration_count(db, event.id))


@router.put("/api/events/{event_id}", response_model=EventEnvelope)
def update_event(
    event_id: UUID,
    payload: EventUpdate,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    event = get_event_or_404(db, event_id)
    ensure_event_capability(event, user, "edit")
    updates = {
        field: value
        for field, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or field not in REQUIRED_EVENT_FIELDS
    }
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")

    # Price rule applies to the event as it will be stored.
    is_free = updates.get("is_free", event.is_free)
    try:
        updates["price"] = check_price(is_free, updates.get("price", event.price))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    for field, value in updates.items():
        setattr(event, field, value)
    db.flush()
    db.refresh(event)
    return EventEnvelope(
        event=serialize_event(event, registration_count(db, event.id)),
        message="Event updated successfully",
    )


@router.delete("/api/events/{event_id}")
def delete_event(
    event_id: UUID,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    event = get_event_or_404(db, event_id)
    ensure_event_capability(event, user, "delete")
    event_id, title, creator_id = event.id, event.title, event.created_by
    registrants = profiles_by_id(
        db,
        db.execute(select(EventRegistration.user_id).where(EventRegistration.event_id == event_id)).scalars(),
    )
    delete_event_cascade(db, event)
    if user.id != creator_id:
        log_moderation_action(db, user.id, "delete_event", "event", event_id, {"title": title, "creator_id": creator_id})
    notifier.notify(
        Notification(
            kind="event.cancelled",
            recipients=tuple(p.email for p in registrants.values()),
            subject=f"'{title}' has been cancelled",
            payload={"event_id": event_id},
        )
    )
    return {"message": "Event deleted successfully"}


@router.post("/api/events/{event_id}/register", status_code=201)
def register(
    event_id: UUID,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    event = get_event_or_404(db, event_id)
    ensure_club_approved(get_club_or_404(db, event.club_id), "register for events of")

    existing = db.execute(
        select(EventRegistration).where(
            EventRegistration.event_id == event.id,
            EventRegistration.user_id == user.id,
        )
    ).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=409, detail="Already registered for this event")

    registration = EventRegistration(event_id=event.id, user_id=user.id)
    db.add(registration)
    db.flush()
    db.refresh(registration)

    notifier.notify(
        Notification(
            kind="registration.confirmed",
            recipients=(user.email,),
            subject="Registration confirmed",
            payload={"event_id": event.id, "title": event.title, "location": event.location},
        )
    )
    return {
        "registration": RegistrationOut(
            id=registration.id,
            event_id=registration.event_id,
            user_id=registration.user_id,
            email=user.email,
            full_name=user.full_name,
            registered_at=registration.registered_at,
        ),
        "message": "Successfully registered for event",
    }


@router.delete("/api/events/{event_id}/register")
def unregister(
    event_id: UUID,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    registration = db.execute(
        select(EventRegistration).where(
            EventRegistration.event_id == str(event_id),
            EventRegistration.user_id == user.id,
        )
    ).scalar_one_or_none()
    if not registration:
        raise HTTPException(status_code=404, detail="Registration not found")
    db.delete(registration)
    return {"message": "Registration cancelled"}


@router.get("/api/events/{event_id}/registrations", response_model=RegistrationList)
def list_registrations(
    event_id: UUID,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    event = get_event_or_404(db, event_id)
    ensure_event_capability(event, user, "view_registrations")
    registrations = (
        db.execute(
            select(EventRegistration)
            .where(EventRegistration.event_id == event.id)
            .order_by(EventRegistration.registered_at.asc())
        )
        .scalars()
        .all()
    )
    profiles = profiles_by_id(db, (r.user_id for r in registrations))
    results = [
        RegistrationOut(
            id=r.id,
            event_id=r.event_id,
            user_id=r.user_id,
            email=profiles[r.user_id].email if r.user_id in profiles else None,
            full_name=profiles[r.user_id].full_name if r.user_id in profiles else None,
            registered_at=r.registered_at,
        )
        for r in registrations
    ]
    return RegistrationList(registrations=results, total_count=len(results))
