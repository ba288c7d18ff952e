import os
import uuid

os.environ["DATABASE_URL"] = "sqlite:///./test_asu_connect.db"
os.environ["SEED_DEMO_DATA"] = "false"
os.environ.setdefault("AUTH_JWT_SECRET", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from app import models
from app.auth_utils import create_access_token
from app.db import Base, SessionLocal, engine
from app.deps import get_notifier
from app.main import app, seed_data
from app.notifications import QueueNotifier

ADMIN = "admin@asu.edu"
LEADER = "leader@asu.edu"
STUDENT = "student@asu.edu"


@pytest.fixture(autouse=True)
def setup_test_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as session:
        seed_data(session)
        session.commit()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def notifier():
    queue = QueueNotifier()
    app.dependency_overrides[get_notifier] = lambda: queue
    yield queue
    app.dependency_overrides.pop(get_notifier, None)


@pytest.fixture()
def client(notifier):
    with TestClient(app) as c:
        yield c


def profile_id(email: str) -> str:
    with SessionLocal() as session:
        return session.execute(select(models.Profile.id).where(models.Profile.email == email)).scalar_one()


def token_for(email: str) -> str:
    with SessionLocal() as session:
        user_id = session.execute(
            select(models.Profile.id).where(models.Profile.email == email)
        ).scalar_one_or_none()
    return create_access_token(user_id or str(uuid.uuid5(uuid.NAMESPACE_URL, email)), email)


@pytest.fixture()
def auth_headers():
    def _headers(email: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token_for(email)}"}

    return _headers


@pytest.fixture()
def make_profile():
    def _make(email: str, role: str = "student", is_admin: bool = False) -> str:
        with SessionLocal() as session:
            profile = models.Profile(email=email, role=role, is_admin=is_admin)
            session.add(profile)
            session.commit()
            return profile.id

    return _make


@pytest.fixture()
def add_member():
    def _add(club_id: str, user_id: str, role: str = "member", status: str = "approved") -> None:
        with SessionLocal() as session:
            session.add(models.ClubMember(club_id=club_id, user_id=user_id, role=role, status=status))
            session.commit()

    return _add


def club_id_by_name(name: str) -> str:
    with SessionLocal() as session:
        club = session.execute(select(models.Club).where(models.Club.name == name)).scalars().first()
        assert club is not None
        return club.id


def event_id_by_title(title: str) -> str:
    with SessionLocal() as session:
        event = session.execute(select(models.Event).where(models.Event.title == title)).scalars().first()
        assert event is not None
        return event.id


@pytest.fixture()
def ids():
    """Lookup helpers for seeded rows."""

    class Ids:
        profile = staticmethod(profile_id)
        club = staticmethod(club_id_by_name)
        event = staticmethod(event_id_by_title)

    return Ids
