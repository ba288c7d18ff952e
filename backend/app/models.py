import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, synonym

from .db import Base

APPROVAL_STATUSES = ("pending", "approved", "rejected")
MEMBER_ROLES = ("member", "admin")
MEMBER_STATUSES = ("pending", "approved", "rejected")
PROFILE_ROLES = ("student", "student_leader", "admin")

FLAG_REASONS = ("Inappropriate Content", "Spam", "Misinformation", "Other")
FLAG_STATUSES = ("pending", "reviewed", "resolved", "dismissed")
REVIEW_STATUSES = ("reviewed", "resolved", "dismissed")

EVENT_CATEGORIES = (
    "Academic",
    "Social",
    "Sports",
    "Arts",
    "Career",
    "Community Service",
    "Other",
)

MODERATION_ACTIONS = (
    "approve_club",
    "reject_club",
    "delete_club",
    "delete_event",
    "review_flag",
    "resolve_flag",
    "dismiss_flag",
)
MODERATION_ENTITY_TYPES = ("club", "event", "flag", "user")


def new_id() -> str:
    return str(uuid.uuid4())


def one_of(column: str, values: tuple[str, ...], name: str) -> CheckConstraint:
    allowed = ", ".join(f"'{value}'" for value in values)
    return CheckConstraint(f"{column} IN ({allowed})", name=name)


class Profile(Base):
    __tablename__ = "profiles"
    __table_args__ = (one_of("role", PROFILE_ROLES, "ck_profiles_role"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    full_name: Mapped[str | None] = mapped_column(String(255), default=None)
    role: Mapped[str] = mapped_column(String(20), default="student")
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), default=datetime.utcnow)

    @property
    def is_platform_admin(self) -> bool:
        return bool(self.is_admin) or self.role == "admin"


class Club(Base):
    __tablename__ = "clubs"
    __table_args__ = (one_of("approval_status", APPROVAL_STATUSES, "ck_clubs_approval_status"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    category: Mapped[str | None] = mapped_column(String(50), default=None)
    created_by: Mapped[str] = mapped_column(ForeignKey("profiles.id"), index=True)
    approval_status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    approved_by: Mapped[str | None] = mapped_column(ForeignKey("profiles.id"), default=None)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), default=None)
    rejection_reason: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=datetime.utcnow, onupdate=datetime.utcnow
    )


class ClubMember(Base):
    __tablename__ = "club_members"
    __table_args__ = (
        UniqueConstraint("club_id", "user_id", name="uq_club_members_club_user"),
        one_of("role", MEMBER_ROLES, "ck_club_members_role"),
        one_of("status", MEMBER_STATUSES, "ck_club_members_status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    club_id: Mapped[str] = mapped_column(ForeignKey("clubs.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), index=True)
    role: Mapped[str] = mapped_column(String(20), default="member")
    status: Mapped[str] = mapped_column(String(20), default="pending")
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), default=datetime.utcnow)


class ClubAnnouncement(Base):
    __tablename__ = "club_announcements"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    club_id: Mapped[str] = mapped_column(ForeignKey("clubs.id", ondelete="CASCADE"), index=True)
    created_by: Mapped[str] = mapped_column(ForeignKey("profiles.id"))
    title: Mapped[str] = mapped_column(String(200))
    content: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=datetime.utcnow, onupdate=datetime.utcnow
    )


class Event(Base):
    __tablename__ = "events"
    __table_args__ = (
        CheckConstraint(
            "is_free OR (price IS NOT NULL AND price > 0)",
            name="ck_events_price_when_paid",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    club_id: Mapped[str] = mapped_column(ForeignKey("clubs.id", ondelete="CASCADE"), index=True)
    created_by: Mapped[str] = mapped_column(ForeignKey("profiles.id"))
    title: Mapped[str] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(Text, default=None)
    event_date: Mapped[datetime] = mapped_column(DateTime(timezone=False))
    location: Mapped[str | None] = mapped_column(String(200), default=None)
    category: Mapped[str | None] = mapped_column(String(50), default=None)
    is_free: Mapped[bool] = mapped_column(Boolean, default=True)
    price: Mapped[float | None] = mapped_column(Numeric(10, 2, asdecimal=False), default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=datetime.utcnow, onupdate=datetime.utcnow
    )


class EventRegistration(Base):
    __tablename__ = "event_registrations"
    __table_args__ = (UniqueConstraint("event_id", "user_id", name="uq_event_registrations_event_user"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    event_id: Mapped[str] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), index=True)
    registered_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), default=datetime.utcnow)


class FlagColumns:
    """Columns shared by the event and club flag tables."""

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"))
    reason: Mapped[str] = mapped_column(String(50))
    details: Mapped[str | None] = mapped_column(Text, default=None)
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    reviewed_by: Mapped[str | None] = mapped_column(ForeignKey("profiles.id"), default=None)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=datetime.utcnow, onupdate=datetime.utcnow
    )


class EventFlag(FlagColumns, Base):
    __tablename__ = "event_flags"
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_flags_event_user"),
        one_of("status", FLAG_STATUSES, "ck_event_flags_status"),
    )
    flag_type = "event"

    event_id: Mapped[str] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), index=True)
    entity_id = synonym("event_id")


class ClubFlag(FlagColumns, Base):
    __tablename__ = "club_flags"
    __table_args__ = (
        UniqueConstraint("club_id", "user_id", name="uq_club_flags_club_user"),
        one_of("status", FLAG_STATUSES, "ck_club_flags_status"),
    )
    flag_type = "club"

    club_id: Mapped[str] = mapped_column(ForeignKey("clubs.id", ondelete="CASCADE"), index=True)
    entity_id = synonym("club_id")


FLAG_MODELS = {"event": EventFlag, "club": ClubFlag}


class ModerationLog(Base):
    __tablename__ = "moderation_logs"
    __table_args__ = (
        one_of("action", MODERATION_ACTIONS, "ck_moderation_logs_action"),
        one_of("entity_type", MODERATION_ENTITY_TYPES, "ck_moderation_logs_entity_type"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    admin_id: Mapped[str | None] = mapped_column(ForeignKey("profiles.id", ondelete="SET NULL"), index=True)
    action: Mapped[str] = mapped_column(String(50), index=True)
    entity_type: Mapped[str] = mapped_column(String(20))
    entity_id: Mapped[str] = mapped_column(String(36))
    details: Mapped[dict | None] = mapped_column(JSON, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), default=datetime.utcnow, index=True)
