import pytest
from sqlalchemy import select

from app import models, stats
from app.db import SessionLocal, engine
from app.schemas import StatusCounts
from app.stats import approval_rate, build_admin_stats


@pytest.fixture()
def flagged_event(client, auth_headers, make_profile, ids):
    """Seven different students flag the workshop; returns the event id."""
    event_id = ids.event("AI Club Workshop")
    for index in range(7):
        email = f"reporter{index}@asu.edu"
        make_profile(email)
        response = client.post(
            f"/api/events/{event_id}/flag", json={"reason": "Spam"}, headers=auth_headers(email)
        )
        assert response.status_code == 201
    return event_id


def test_admin_routes_require_platform_admin(client, auth_headers):
    assert client.get("/api/admin/flags").status_code == 401
    response = client.get("/api/admin/flags", headers=auth_headers("leader@asu.edu"))
    assert response.status_code == 403
    assert response.json() == {"error": "Admin access required"}
    assert client.get("/api/admin/stats", headers=auth_headers("student@asu.edu")).status_code == 403


def test_admin_flag_status_filter_is_validated(client, auth_headers):
    response = client.get("/api/admin/flags", params={"status": "bogus"}, headers=auth_headers("admin@asu.edu"))
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid status. Must be: pending, reviewed, resolved, or dismissed"


def test_admin_flags_merge_both_tables(client, auth_headers, ids):
    student = auth_headers("student@asu.edu")
    client.post(f"/api/events/{ids.event('AI Club Workshop')}/flag", json={"reason": "Spam"}, headers=student)
    client.post(f"/api/clubs/{ids.club('AI Club')}/flag", json={"reason": "Other"}, headers=student)

    admin = auth_headers("admin@asu.edu")
    body = client.get("/api/admin/flags", headers=admin).json()
    assert {f["flag_type"] for f in body["flags"]} == {"event", "club"}
    assert {f["entity_title"] for f in body["flags"]} == {"AI Club Workshop", "AI Club"}
    assert body["statistics"] == {
        "total": 2,
        "event_flags": 1,
        "club_flags": 1,
        "pending": 2,
        "event_flags_pending": 1,
        "club_flags_pending": 1,
    }

    only_clubs = client.get("/api/admin/flags", params={"type": "club"}, headers=admin).json()
    assert [f["flag_type"] for f in only_clubs["flags"]] == ["club"]
    assert only_clubs["pagination"]["total"] == 1

    bad_type = client.get("/api/admin/flags", params={"type": "user"}, headers=admin)
    assert bad_type.status_code == 400


@pytest.mark.parametrize("limit,offset", [(1, 0), (3, 0), (3, 3), (3, 6), (5, 5), (50, 0), (2, 7)])
def test_admin_flag_pagination_returns_min_of_limit_and_remaining(client, auth_headers, flagged_event, limit, offset):
    body = client.get(
        "/api/admin/flags", params={"limit": limit, "offset": offset}, headers=auth_headers("admin@asu.edu")
    ).json()
    page = body["pagination"]
    assert page["total"] == 7
    assert page["returned"] == min(limit, page["total"] - offset)
    assert len(body["flags"]) == page["returned"]


def test_admin_flag_limit_is_clamped(client, auth_headers, flagged_event):
    body = client.get("/api/admin/flags", params={"limit": 500}, headers=auth_headers("admin@asu.edu")).json()
    assert body["pagination"]["limit"] == 100
    assert body["pagination"]["returned"] == 7


def test_admin_flag_detail_review_and_dismiss(client, auth_headers, ids, flagged_event):
    admin = auth_headers("admin@asu.edu")
    flags = client.get("/api/admin/flags", headers=admin).json()["flags"]
    first, second = flags[0]["id"], flags[1]["id"]

    detail = client.get(f"/api/admin/flags/{first}", headers=admin)
    assert detail.status_code == 200
    assert detail.json()["flag"]["entity_title"] == "AI Club Workshop"

    reviewed = client.patch(
        f"/api/admin/flags/{first}", json={"status": "resolved", "notes": "Removed the ad"}, headers=admin
    )
    assert reviewed.status_code == 200
    assert reviewed.json()["flag"]["reviewed_by"] == ids.profile("admin@asu.edu")

    dismissed = client.delete(f"/api/admin/flags/{second}", headers=admin)
    assert dismissed.status_code == 200

    resolved_only = client.get("/api/admin/flags", params={"status": "resolved"}, headers=admin).json()
    assert [f["id"] for f in resolved_only["flags"]] == [first]

    with SessionLocal() as session:
        actions = session.execute(
            select(models.ModerationLog.action, models.ModerationLog.details).order_by(models.ModerationLog.created_at)
        ).all()
    assert [action for action, _ in actions] == ["resolve_flag", "dismiss_flag"]
    assert actions[0][1]["notes"] == "Removed the ad"


def test_admin_delete_flagged_entity(client, auth_headers, ids, flagged_event):
    admin = auth_headers("admin@asu.edu")
    flag_id = client.get("/api/admin/flags", headers=admin).json()["flags"][0]["id"]

    response = client.delete(f"/api/admin/flags/{flag_id}", params={"delete_entity": True}, headers=admin)
    assert response.status_code == 200

    with SessionLocal() as session:
        assert session.get(models.Event, flagged_event) is None
        assert session.execute(select(models.EventFlag)).first() is None
        log = session.execute(
            select(models.ModerationLog).where(models.ModerationLog.action == "delete_event")
        ).scalar_one()
        assert log.entity_id == flagged_event
    assert client.get(f"/api/admin/flags/{flag_id}", headers=admin).status_code == 404


def test_club_approval_workflow(client, auth_headers, ids, notifier):
    admin = auth_headers("admin@asu.edu")
    music_id = ids.club("Music Makers")

    pending = client.get("/api/admin/clubs/pending", headers=admin).json()
    assert [c["name"] for c in pending["clubs"]] == ["Music Makers"]
    assert pending["clubs"][0]["creator_email"] == "leader@asu.edu"
    assert pending["pagination"] == {"limit": 50, "offset": 0, "total": 1, "returned": 1}

    approved = client.post(f"/api/admin/clubs/{music_id}/approve", headers=admin)
    assert approved.status_code == 200
    club = approved.json()["club"]
    assert club["approval_status"] == "approved"
    assert club["approved_by"] == ids.profile("admin@asu.edu")
    assert notifier.kinds()[-1] == "club.approved"

    again = client.post(f"/api/admin/clubs/{music_id}/approve", headers=admin)
    assert again.status_code == 409
    assert again.json()["error"] == "Club is already approved"

    with SessionLocal() as session:
        log = session.execute(
            select(models.ModerationLog).where(models.ModerationLog.action == "approve_club")
        ).scalar_one()
    assert log.details == {
        "club_name": "Music Makers",
        "previous_status": "pending",
        "creator_id": ids.profile("leader@asu.edu"),
        "creator_email": "leader@asu.edu",
    }


def test_club_rejection_requires_reason(client, auth_headers, ids):
    admin = auth_headers("admin@asu.edu")
    music_id = ids.club("Music Makers")

    missing = client.post(f"/api/admin/clubs/{music_id}/reject", json={"reason": "  "}, headers=admin)
    assert missing.status_code == 400
    too_long = client.post(f"/api/admin/clubs/{music_id}/reject", json={"reason": "x" * 501}, headers=admin)
    assert too_long.status_code == 400

    rejected = client.post(f"/api/admin/clubs/{music_id}/reject", json={"reason": "Needs an advisor"}, headers=admin)
    assert rejected.status_code == 200
    assert rejected.json()["club"]["rejection_reason"] == "Needs an advisor"

    listing = client.get("/api/admin/clubs/rejected", headers=admin).json()
    assert listing["pagination"]["total"] == 1
    entry = listing["clubs"][0]
    assert entry["rejected_by_email"] == "admin@asu.edu"
    assert entry["rejected_at"] is not None

    assert client.post(f"/api/admin/clubs/{music_id}/approve", headers=admin).status_code == 409


def test_moderation_log_listing(client, auth_headers, ids):
    admin = auth_headers("admin@asu.edu")
    client.post(f"/api/admin/clubs/{ids.club('Music Makers')}/reject", json={"reason": "No"}, headers=admin)

    invalid = client.get("/api/admin/logs", params={"entity_type": "profile"}, headers=admin)
    assert invalid.status_code == 400
    assert invalid.json()["error"] == "Invalid entity_type. Must be: club, event, flag, or user"

    body = client.get("/api/admin/logs", params={"entity_type": "club"}, headers=admin).json()
    assert body["pagination"]["total"] == 1
    log = body["logs"][0]
    assert log["action"] == "reject_club"
    assert log["admin_email"] == "admin@asu.edu"
    assert log["admin_name"] == "Platform Admin"

    none = client.get("/api/admin/logs", params={"action": "delete_event"}, headers=admin).json()
    assert none["logs"] == []


def test_admin_stats(client, auth_headers, ids):
    admin = auth_headers("admin@asu.edu")
    client.post(
        f"/api/events/{ids.event('AI Club Workshop')}/flag",
        json={"reason": "Spam"},
        headers=auth_headers("student@asu.edu"),
    )

    response = client.get("/api/admin/stats", headers=admin)
    assert response.status_code == 200
    stats = response.json()
    assert stats["summary"] == {
        "total_pending_items": 2,
        "pending_flags": 1,
        "pending_clubs": 1,
        "requires_attention": True,
    }
    assert stats["flags"]["event_flags"]["pending"] == 1
    assert stats["flags"]["combined"]["total"] == 1
    assert stats["clubs"] == {
        "total": 2,
        "pending": 1,
        "approved": 1,
        "rejected": 0,
        "approval_rate": "50.0%",
    }
    assert stats["recent_activity"] == []


def test_admin_stats_degrade_when_a_table_is_unavailable(client, auth_headers, ids):
    admin = auth_headers("admin@asu.edu")
    client.post(f"/api/admin/clubs/{ids.club('Music Makers')}/approve", headers=admin)
    models.ModerationLog.__table__.drop(bind=engine)

    response = client.get("/api/admin/stats", headers=admin)
    assert response.status_code == 200
    stats = response.json()
    assert stats["recent_activity"] == []
    assert stats["clubs"]["approved"] == 2
    assert stats["clubs"]["approval_rate"] == "100.0%"
    assert stats["summary"]["requires_attention"] is False


def test_stats_fold_from_zeros():
    stats = build_admin_stats(StatusCounts(), StatusCounts(), {}, [])
    assert stats.summary.requires_attention is False
    assert stats.clubs.approval_rate == "0%"
    assert stats.flags.combined.total == 0
    assert approval_rate(2, 3) == "66.7%"


def test_club_approval_survives_a_failed_log_write(client, auth_headers, ids):
    music_id = ids.club("Music Makers")
    models.ModerationLog.__table__.drop(bind=engine)

    response = client.post(f"/api/admin/clubs/{music_id}/approve", headers=auth_headers("admin@asu.edu"))
    assert response.status_code == 200
    assert response.json()["club"]["approval_status"] == "approved"

    with SessionLocal() as session:
        club = session.get(models.Club, music_id)
        assert club.approval_status == "approved"
        assert club.approved_by == ids.profile("admin@asu.edu")


def test_admin_stats_degrade_on_unexpected_errors(client, auth_headers, monkeypatch):
    def broken(session):
        raise ValueError("unexpected status")

    monkeypatch.setattr(stats, "club_status_counts", broken)
    response = client.get("/api/admin/stats", headers=auth_headers("admin@asu.edu"))
    assert response.status_code == 200
    assert response.json()["clubs"] == {
        "total": 0,
        "pending": 0,
        "approved": 0,
        "rejected": 0,
        "approval_rate": "0%",
    }
