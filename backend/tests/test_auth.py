import uuid

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app import models
from app.auth_utils import create_access_token
from app.db import SessionLocal


def test_me_requires_bearer_token(client):
    response = client.get("/api/profiles/me")
    assert response.status_code == 401
    assert response.json() == {"error": "Authentication required"}


def test_me_rejects_bad_token(client):
    response = client.get("/api/profiles/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["error"] == "Invalid or expired token"


def test_me_rejects_wrong_audience(client, ids):
    token = create_access_token(ids.profile("student@asu.edu"), "student@asu.edu", aud="someone-else")
    response = client.get("/api/profiles/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_me_returns_seeded_profile(client, auth_headers):
    response = client.get("/api/profiles/me", headers=auth_headers("admin@asu.edu"))
    assert response.status_code == 200
    body = response.json()
    assert body["email"] == "admin@asu.edu"
    assert body["is_admin"] is True


def test_first_request_provisions_profile(client, auth_headers):
    response = client.get("/api/profiles/me", headers=auth_headers("Newcomer@ASU.edu"))
    assert response.status_code == 200
    assert response.json()["role"] == "student"

    with SessionLocal() as session:
        profile = session.execute(
            select(models.Profile).where(models.Profile.email == "newcomer@asu.edu")
        ).scalar_one_or_none()
        assert profile is not None


def test_token_for_taken_email_is_rejected(client):
    token = create_access_token(str(uuid.uuid4()), "Student@asu.edu")
    response = client.get("/api/profiles/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["error"] == "Invalid or expired token"

    with SessionLocal() as session:
        emails = session.execute(
            select(models.Profile.email).where(models.Profile.email == "student@asu.edu")
        ).all()
    assert len(emails) == 1


def test_profile_and_membership_roles_are_checked(ids):
    with SessionLocal() as session:
        session.add(models.Profile(email="bad-role@asu.edu", role="superuser"))
        with pytest.raises(IntegrityError):
            session.commit()

    with SessionLocal() as session:
        session.add(
            models.ClubMember(club_id=ids.club("AI Club"), user_id=ids.profile("student@asu.edu"), role="owner")
        )
        with pytest.raises(IntegrityError):
            session.commit()
