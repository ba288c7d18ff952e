from sqlalchemy import select

from app import models
from app.db import SessionLocal


def test_anonymous_listing_shows_only_approved_clubs(client):
    response = client.get("/api/clubs")
    assert response.status_code == 200
    body = response.json()
    names = [club["name"] for club in body["clubs"]]
    assert names == ["AI Club"]
    assert body["sortBy"] == "name"
    assert body["pagination"] == {"limit": 50, "offset": 0, "total": 1, "returned": 1}
    assert body["clubs"][0]["member_count"] == 1


def test_creator_sees_own_pending_club(client, auth_headers):
    response = client.get("/api/clubs", headers=auth_headers("leader@asu.edu"))
    assert response.status_code == 200
    clubs = {club["name"]: club for club in response.json()["clubs"]}
    assert set(clubs) == {"AI Club", "Music Makers"}
    assert clubs["Music Makers"]["approval_status"] == "pending"
    assert clubs["Music Makers"]["membership_role"] == "admin"


def test_invalid_club_sort_is_rejected(client):
    response = client.get("/api/clubs", params={"sortBy": "popularity"})
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Invalid sortBy parameter"
    assert "newest" in body["details"]


def test_search_filters_clubs(client, auth_headers):
    response = client.get("/api/clubs", headers=auth_headers("admin@asu.edu"), params={"search": "music"})
    assert [club["name"] for club in response.json()["clubs"]] == ["Music Makers"]


def test_students_cannot_create_clubs(client, auth_headers):
    response = client.post(
        "/api/clubs",
        json={"name": "Chess Club", "description": "Weekly games"},
        headers=auth_headers("student@asu.edu"),
    )
    assert response.status_code == 403


def test_leader_club_starts_pending(client, auth_headers, ids):
    response = client.post(
        "/api/clubs",
        json={"name": "  Chess Club ", "description": "Weekly games"},
        headers=auth_headers("leader@asu.edu"),
    )
    assert response.status_code == 201
    club = response.json()["club"]
    assert club["name"] == "Chess Club"
    assert club["approval_status"] == "pending"
    assert club["created_by"] == ids.profile("leader@asu.edu")
    assert club["membership_role"] == "admin"
    assert club["membership_status"] == "approved"


def test_admin_club_is_auto_approved_and_logged(client, auth_headers):
    response = client.post(
        "/api/clubs",
        json={"name": "Admin Picks", "description": "Curated"},
        headers=auth_headers("admin@asu.edu"),
    )
    assert response.status_code == 201
    club = response.json()["club"]
    assert club["approval_status"] == "approved"
    assert club["approved_at"] is not None

    with SessionLocal() as session:
        log = session.execute(
            select(models.ModerationLog).where(models.ModerationLog.entity_id == club["id"])
        ).scalar_one()
        assert log.action == "approve_club"
        assert log.details["auto_approved"] is True


def test_club_name_validation(client, auth_headers):
    headers = auth_headers("leader@asu.edu")
    assert client.post("/api/clubs", json={"name": "   "}, headers=headers).status_code == 400
    too_long = client.post("/api/clubs", json={"name": "x" * 256}, headers=headers)
    assert too_long.status_code == 400
    assert too_long.json()["error"] == "Invalid request"


def test_pending_club_hidden_from_other_students(client, auth_headers, ids):
    music_id = ids.club("Music Makers")
    assert client.get(f"/api/clubs/{music_id}", headers=auth_headers("student@asu.edu")).status_code == 404
    assert client.get(f"/api/clubs/{music_id}", headers=auth_headers("leader@asu.edu")).status_code == 200


def test_club_detail_includes_members_and_events(client, ids):
    response = client.get(f"/api/clubs/{ids.club('AI Club')}")
    assert response.status_code == 200
    body = response.json()
    assert body["club"]["name"] == "AI Club"
    assert [m["email"] for m in body["members"]] == ["leader@asu.edu"]
    assert [a["title"] for a in body["announcements"]] == ["Kickoff week"]
    assert [e["title"] for e in body["events"]] == ["AI Club Workshop"]


def test_unknown_or_malformed_club_id(client):
    assert client.get("/api/clubs/00000000-0000-0000-0000-000000000000").status_code == 404
    malformed = client.get("/api/clubs/not-a-uuid")
    assert malformed.status_code == 400
    assert malformed.json()["error"] == "Invalid request"


def test_only_creator_updates_club(client, auth_headers, ids):
    club_id = ids.club("AI Club")
    forbidden = client.put(
        f"/api/clubs/{club_id}", json={"description": "mine now"}, headers=auth_headers("student@asu.edu")
    )
    assert forbidden.status_code == 403

    empty = client.put(f"/api/clubs/{club_id}", json={}, headers=auth_headers("leader@asu.edu"))
    assert empty.status_code == 400
    assert empty.json()["error"] == "No fields to update"

    updated = client.put(
        f"/api/clubs/{club_id}", json={"description": "Robots!"}, headers=auth_headers("leader@asu.edu")
    )
    assert updated.status_code == 200
    assert updated.json()["club"]["description"] == "Robots!"


def test_admin_delete_cascades_and_is_logged(client, auth_headers, ids):
    club_id = ids.club("AI Club")
    response = client.delete(f"/api/clubs/{club_id}", headers=auth_headers("admin@asu.edu"))
    assert response.status_code == 200

    with SessionLocal() as session:
        assert session.get(models.Club, club_id) is None
        assert session.execute(select(models.Event).where(models.Event.club_id == club_id)).first() is None
        assert session.execute(select(models.ClubMember).where(models.ClubMember.club_id == club_id)).first() is None
        log = session.execute(
            select(models.ModerationLog).where(models.ModerationLog.action == "delete_club")
        ).scalar_one()
        assert log.entity_id == club_id


def test_my_admin_clubs(client, auth_headers):
    leader = client.get("/api/clubs/my-admin-clubs", headers=auth_headers("leader@asu.edu")).json()
    assert leader["is_platform_admin"] is False
    assert {c["name"] for c in leader["clubs"]} == {"AI Club", "Music Makers"}

    student = client.get("/api/clubs/my-admin-clubs", headers=auth_headers("student@asu.edu")).json()
    assert student["count"] == 0

    admin = client.get("/api/clubs/my-admin-clubs", headers=auth_headers("admin@asu.edu")).json()
    assert admin["is_platform_admin"] is True
    assert admin["count"] == 2


# Membership

def test_join_request_and_creator_approval(client, auth_headers, ids, notifier):
    club_id = ids.club("AI Club")
    student = auth_headers("student@asu.edu")

    joined = client.post(f"/api/clubs/{club_id}/membership", headers=student)
    assert joined.status_code == 201
    assert joined.json()["membership"]["status"] == "pending"

    again = client.post(f"/api/clubs/{club_id}/membership", headers=student)
    assert again.status_code == 409

    pending = client.get(f"/api/clubs/{club_id}/membership/pending", headers=auth_headers("leader@asu.edu"))
    assert pending.status_code == 200
    assert [r["email"] for r in pending.json()["pending_requests"]] == ["student@asu.edu"]

    approved = client.patch(
        f"/api/clubs/{club_id}/membership",
        json={"user_id": ids.profile("student@asu.edu"), "action": "approve"},
        headers=auth_headers("leader@asu.edu"),
    )
    assert approved.status_code == 200
    assert approved.json()["membership"]["status"] == "approved"
    assert "membership.approved" in notifier.kinds()

    mine = client.get(f"/api/clubs/{club_id}/membership", headers=student).json()
    assert mine["membership"]["status"] == "approved"

    repeat = client.patch(
        f"/api/clubs/{club_id}/membership",
        json={"user_id": ids.profile("student@asu.edu"), "action": "reject"},
        headers=auth_headers("leader@asu.edu"),
    )
    assert repeat.status_code == 404


def test_club_admin_member_cannot_manage_requests(client, auth_headers, ids, make_profile, add_member):
    club_id = ids.club("AI Club")
    officer_id = make_profile("officer@asu.edu")
    add_member(club_id, officer_id, role="admin")

    response = client.get(f"/api/clubs/{club_id}/membership/pending", headers=auth_headers("officer@asu.edu"))
    assert response.status_code == 403


def test_cannot_join_pending_club(client, auth_headers, ids):
    response = client.post(
        f"/api/clubs/{ids.club('Music Makers')}/membership", headers=auth_headers("student@asu.edu")
    )
    assert response.status_code == 403
    assert "pending approval" in response.json()["error"]


def test_membership_lookup_is_null_when_anonymous(client, ids):
    response = client.get(f"/api/clubs/{ids.club('AI Club')}/membership")
    assert response.status_code == 200
    assert response.json() == {"membership": None}


def test_leave_club(client, auth_headers, ids, add_member):
    club_id = ids.club("AI Club")
    add_member(club_id, ids.profile("student@asu.edu"))
    headers = auth_headers("student@asu.edu")
    assert client.delete(f"/api/clubs/{club_id}/membership", headers=headers).status_code == 200
    assert client.delete(f"/api/clubs/{club_id}/membership", headers=headers).status_code == 404


def test_members_list(client, ids, add_member):
    club_id = ids.club("AI Club")
    add_member(club_id, ids.profile("student@asu.edu"))
    add_member(club_id, ids.profile("admin@asu.edu"), status="pending")
    body = client.get(f"/api/clubs/{club_id}/members").json()
    assert body["count"] == 2
    assert {m["email"] for m in body["members"]} == {"leader@asu.edu", "student@asu.edu"}


# Announcements

def test_announcements_flow(client, auth_headers, ids, add_member, notifier):
    club_id = ids.club("AI Club")
    add_member(club_id, ids.profile("student@asu.edu"))

    forbidden = client.post(
        f"/api/clubs/{club_id}/announcements",
        json={"title": "Hi", "content": "Hello"},
        headers=auth_headers("student@asu.edu"),
    )
    assert forbidden.status_code == 403

    created = client.post(
        f"/api/clubs/{club_id}/announcements",
        json={"title": "Demo day", "content": "Bring your robots."},
        headers=auth_headers("leader@asu.edu"),
    )
    assert created.status_code == 201
    announcement = created.json()["announcement"]
    assert announcement["author_email"] == "leader@asu.edu"
    assert notifier.events[-1].recipients == ("student@asu.edu",)

    listing = client.get(f"/api/clubs/{club_id}/announcements").json()
    assert {a["title"] for a in listing["announcements"]} == {"Demo day", "Kickoff week"}
    assert listing["can_post"] is False

    aid = announcement["id"]
    updated = client.put(
        f"/api/clubs/{club_id}/announcements/{aid}",
        json={"content": "Bring your drones too."},
        headers=auth_headers("leader@asu.edu"),
    )
    assert updated.status_code == 200
    assert updated.json()["announcement"]["content"] == "Bring your drones too."

    assert client.delete(
        f"/api/clubs/{club_id}/announcements/{aid}", headers=auth_headers("leader@asu.edu")
    ).status_code == 200
    assert client.get(f"/api/clubs/{club_id}/announcements/{aid}").status_code == 404


def test_announcement_length_limits(client, auth_headers, ids):
    response = client.post(
        f"/api/clubs/{ids.club('AI Club')}/announcements",
        json={"title": "t" * 201, "content": "ok"},
        headers=auth_headers("leader@asu.edu"),
    )
    assert response.status_code == 400
