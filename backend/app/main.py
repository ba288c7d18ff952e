import logging
import os
from datetime import datetime, timedelta

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api import admin, announcements, auth, clubs, events, flags, memberships
from .db import Base, engine, get_session
from .models import Club, ClubAnnouncement, ClubMember, Event, Profile

# Load .env
load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="ASU Connect (FastAPI + SQLAlchemy)")

# CORS for the web frontend
CORS_ORIGIN = os.getenv("CORS_ORIGIN", "http://localhost:3000")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in CORS_ORIGIN.split(",") if origin.strip()],
    allow_methods=["*"],
    allow_headers=["*"],
)

for module in (auth, clubs, memberships, announcements, events, flags, admin):
    app.include_router(module.router)


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    body = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    details = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
    )
    return JSONResponse(status_code=400, content={"error": "Invalid request", "details": details})


@app.exception_handler(IntegrityError)
async def integrity_error(request: Request, exc: IntegrityError):
    logger.info("Constraint violation on %s %s: %s", request.method, request.url.path, exc.orig)
    return JSONResponse(status_code=409, content={"error": "Conflict", "details": str(exc.orig)})


@app.exception_handler(SQLAlchemyError)
async def database_error(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Database error", "details": str(exc)})


@app.on_event("startup")
def startup() -> None:
    Base.metadata.create_all(engine)
    if os.getenv("SEED_DEMO_DATA", "true").lower() in {"1", "true", "yes"}:
        with get_session() as session:
            seed_data(session)


DEMO_PROFILES = (
    ("admin@asu.edu", "Platform Admin", "admin", True),
    ("leader@asu.edu", "Club Leader", "student_leader", False),
    ("student@asu.edu", "Sun Devil", "student", False),
)


def seed_data(session: Session) -> None:
    profiles = {}
    for email, full_name, role, is_admin in DEMO_PROFILES:
        profile = session.execute(select(Profile).where(Profile.email == email)).scalar_one_or_none()
        if not profile:
            profile = Profile(email=email, full_name=full_name, role=role, is_admin=is_admin)
            session.add(profile)
            session.flush()
        profiles[email] = profile
    admin_profile = profiles["admin@asu.edu"]
    leader = profiles["leader@asu.edu"]

    ai_club = session.execute(select(Club).where(Club.name == "AI Club")).scalar_one_or_none()
    if not ai_club:
        ai_club = Club(
            name="AI Club",
            description="Hands-on meetups about ML, robotics, and automation.",
            category="Academic",
            created_by=leader.id,
            approval_status="approved",
            approved_by=admin_profile.id,
            approved_at=datetime.utcnow(),
        )
        session.add(ai_club)
        session.flush()
        session.add(ClubMember(club_id=ai_club.id, user_id=leader.id, role="admin", status="approved"))
        session.add(
            ClubAnnouncement(
                club_id=ai_club.id,
                created_by=leader.id,
                title="Kickoff week",
                content="First meeting this Friday in ENG 101. Bring friends!",
            )
        )
        session.add(
            Event(
                club_id=ai_club.id,
                created_by=leader.id,
                title="AI Club Workshop",
                description="Build a small neural network from scratch.",
                event_date=datetime.utcnow() + timedelta(days=2),
                location="ENG 101",
                category="Academic",
                is_free=True,
            )
        )

    music = session.execute(select(Club).where(Club.name == "Music Makers")).scalar_one_or_none()
    if not music:
        music = Club(
            name="Music Makers",
            description="Student musicians jamming and performing on campus.",
            category="Arts",
            created_by=leader.id,
            approval_status="pending",
        )
        session.add(music)
        session.flush()
        session.add(ClubMember(club_id=music.id, user_id=leader.id, role="admin", status="approved"))
    session.flush()
