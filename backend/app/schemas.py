from datetime import datetime
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from .models import EVENT_CATEGORIES


def _strip_required(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = value.strip() if isinstance(value, str) else ""
    if not cleaned:
        raise ValueError("must not be empty")
    return cleaned


def check_price(is_free: bool, price: Optional[float]) -> Optional[float]:
    """Paid events need a positive price; free events carry none."""
    if is_free:
        return None
    if price is None or price <= 0:
        raise ValueError("Price must be greater than 0 for paid events")
    return price


class Pagination(BaseModel):
    limit: int
    offset: int
    total: int
    returned: int


class ProfileOut(BaseModel):
    id: str
    email: str
    full_name: Optional[str] = None
    role: str
    is_admin: bool
    created_at: datetime


# Clubs

class ClubCreate(BaseModel):
    name: str = Field(max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)
    category: Optional[str] = Field(default=None, max_length=50)

    @field_validator("name")
    @classmethod
    def must_not_be_empty(cls, value: str):
        return _strip_required(value)


class ClubUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)
    category: Optional[str] = Field(default=None, max_length=50)

    @field_validator("name")
    @classmethod
    def must_not_be_empty(cls, value: Optional[str]):
        return _strip_required(value)


class ClubSummary(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    approval_status: str
    created_by: str
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: datetime
    member_count: int = 0
    membership_status: Optional[str] = None
    membership_role: Optional[str] = None


class ClubEnvelope(BaseModel):
    club: ClubSummary
    message: str


class ClubList(BaseModel):
    clubs: list[ClubSummary]
    count: int
    sortBy: str
    pagination: Pagination


class AdminClubList(BaseModel):
    clubs: list[ClubSummary]
    count: int
    is_platform_admin: bool


class ClubMemberOut(BaseModel):
    user_id: str
    email: str
    full_name: Optional[str] = None
    role: str
    status: str
    joined_at: datetime


class MembershipOut(BaseModel):
    id: str
    club_id: str
    user_id: str
    role: str
    status: str
    joined_at: datetime


class MembershipAction(BaseModel):
    user_id: UUID
    action: Literal["approve", "reject"]


# Announcements

class AnnouncementCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    content: str = Field(min_length=1, max_length=5000)

    @field_validator("title", "content")
    @classmethod
    def must_not_be_empty(cls, value: str):
        return _strip_required(value)


class AnnouncementUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    content: Optional[str] = Field(default=None, min_length=1, max_length=5000)

    @field_validator("title", "content")
    @classmethod
    def must_not_be_empty(cls, value: Optional[str]):
        return _strip_required(value)


class AnnouncementOut(BaseModel):
    id: str
    club_id: str
    title: str
    content: str
    created_by: str
    author_email: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# Events

class EventCreate(BaseModel):
    title: str = Field(max_length=200)
    description: Optional[str] = None
    event_date: datetime
    location: Optional[str] = Field(default=None, max_length=200)
    club_id: UUID
    category: Optional[str] = None
    is_free: bool = True
    price: Optional[float] = None

    @field_validator("title")
    @classmethod
    def must_not_be_empty(cls, value: str):
        return _strip_required(value)

    @field_validator("category")
    @classmethod
    def validate_category(cls, value: Optional[str]):
        if value is not None and value not in EVENT_CATEGORIES:
            raise ValueError(f"category must be one of: {', '.join(EVENT_CATEGORIES)}")
        return value

    @model_validator(mode="after")
    def validate_price(self):
        self.price = check_price(self.is_free, self.price)
        return self


class EventUpdate(BaseModel):
    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = None
    event_date: Optional[datetime] = None
    location: Optional[str] = Field(default=None, max_length=200)
    category: Optional[str] = None
    is_free: Optional[bool] = None
    price: Optional[float] = None

    @field_validator("title")
    @classmethod
    def must_not_be_empty(cls, value: Optional[str]):
        return _strip_required(value)

    @field_validator("category")
    @classmethod
    def validate_category(cls, value: Optional[str]):
        if value is not None and value not in EVENT_CATEGORIES:
            raise ValueError(f"category must be one of: {', '.join(EVENT_CATEGORIES)}")
        return value


class EventOut(BaseModel):
    id: str
    club_id: str
    created_by: str
    title: str
    description: Optional[str] = None
    event_date: datetime
    location: Optional[str] = None
    category: Optional[str] = None
    is_free: bool
    price: Optional[float] = None
    registration_count: int = 0
    created_at: datetime


class ClubDetail(BaseModel):
    club: ClubSummary
    members: list[ClubMemberOut]
    announcements: list[AnnouncementOut]
    events: list[EventOut]


class EventEnvelope(BaseModel):
    event: EventOut
    message: str


class EventList(BaseModel):
    events: list[EventOut]
    sortBy: str
    pagination: Pagination


class RegistrationOut(BaseModel):
    id: str
    event_id: str
    user_id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    registered_at: datetime


class RegistrationList(BaseModel):
    registrations: list[RegistrationOut]
    total_count: int


# Flags

class FlagCreate(BaseModel):
    reason: Optional[str] = None
    details: Optional[str] = Field(default=None, max_length=1000)


class FlagReview(BaseModel):
    flag_id: UUID
    status: str


class AdminFlagReview(BaseModel):
    status: str
    notes: Optional[str] = Field(default=None, max_length=1000)


class FlagOut(BaseModel):
    id: str
    flag_type: str
    entity_id: str
    entity_title: Optional[str] = None
    user_id: str
    user_email: Optional[str] = None
    reason: str
    details: Optional[str] = None
    status: str
    reviewed_by: Optional[str] = None
    reviewer_email: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class FlagEnvelope(BaseModel):
    flag: FlagOut
    message: str


class FlagStatistics(BaseModel):
    total: int
    event_flags: int
    club_flags: int
    pending: int
    event_flags_pending: int
    club_flags_pending: int


class AdminFlagList(BaseModel):
    flags: list[FlagOut]
    statistics: FlagStatistics
    pagination: Pagination


# Moderation

class ClubReject(BaseModel):
    reason: str = Field(max_length=500)

    @field_validator("reason")
    @classmethod
    def must_not_be_empty(cls, value: str):
        return _strip_required(value)


class ModerationLogOut(BaseModel):
    id: str
    admin_id: Optional[str] = None
    admin_email: str = "Unknown"
    admin_name: Optional[str] = None
    action: str
    entity_type: str
    entity_id: str
    details: Optional[dict[str, Any]] = None
    created_at: datetime


class ModerationLogList(BaseModel):
    logs: list[ModerationLogOut]
    pagination: Pagination


class StatusCounts(BaseModel):
    total: int = 0
    pending: int = 0
    reviewed: int = 0
    resolved: int = 0
    dismissed: int = 0


class FlagStats(BaseModel):
    event_flags: StatusCounts
    club_flags: StatusCounts
    combined: StatusCounts


class ClubStats(BaseModel):
    total: int
    pending: int
    approved: int
    rejected: int
    approval_rate: str


class StatsSummary(BaseModel):
    total_pending_items: int
    pending_flags: int
    pending_clubs: int
    requires_attention: bool


class AdminStats(BaseModel):
    summary: StatsSummary
    flags: FlagStats
    clubs: ClubStats
    recent_activity: list[ModerationLogOut]
    fetched_at: datetime
