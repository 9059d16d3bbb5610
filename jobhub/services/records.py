from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

JOB_STATUS_DRAFT = "Draft"
JOB_STATUS_PENDING = "Pending"
JOB_STATUS_PUBLISHED = "Published"
JOB_STATUS_CLOSED = "Closed"
JOB_STATUS_EXPIRED = "Expired"
JOB_STATUS_ARCHIVED = "Archived"
JOB_STATUS_REJECTED = "Rejected"
JOB_STATUSES = {
    JOB_STATUS_DRAFT,
    JOB_STATUS_PENDING,
    JOB_STATUS_PUBLISHED,
    JOB_STATUS_CLOSED,
    JOB_STATUS_EXPIRED,
    JOB_STATUS_ARCHIVED,
    JOB_STATUS_REJECTED,
}
JOB_TYPES = ("Full-time", "Part-time", "Contract", "Freelance", "Internship", "Remote")

APPLICATION_STATUS_PENDING = "Pending"
APPLICATION_STATUS_IN_REVIEW = "In Review"
APPLICATION_STATUS_INTERVIEW = "Interview Scheduled"
APPLICATION_STATUS_REJECTED = "Rejected"
APPLICATION_STATUS_ACCEPTED = "Accepted"
APPLICATION_STATUSES = (
    APPLICATION_STATUS_PENDING,
    APPLICATION_STATUS_IN_REVIEW,
    APPLICATION_STATUS_INTERVIEW,
    APPLICATION_STATUS_REJECTED,
    APPLICATION_STATUS_ACCEPTED,
)

DELIVERY_PENDING = "pending"
DELIVERY_SENT = "sent"
DELIVERY_FAILED = "failed"
DELIVERY_SKIPPED = "skipped"
DELIVERY_CHANNELS = ("push", "email", "sms")

AdmissionOutcome = Literal["created", "job_limit_reached", "featured_limit_reached"]
FeatureOutcome = Literal["featured", "featured_limit_reached", "not_eligible"]


@dataclass(slots=True)
class JobRecord:
    id: str
    slug: str
    title: str
    description: str
    company: str
    company_name: str
    location: str
    salary: float
    job_type: str
    posted_by: str
    application_deadline: datetime
    created_at: datetime
    updated_at: datetime
    status: str = JOB_STATUS_PENDING
    experience: str | None = None
    skills: list[str] = field(default_factory=list)
    benefits: list[str] = field(default_factory=list)
    category: str | None = None
    is_featured: bool = False
    featured_expiry: datetime | None = None
    featured_requested: bool = False
    is_hot: bool = False
    hot_until: datetime | None = None


@dataclass(slots=True)
class StatusHistoryEntry:
    status: str
    changed_at: datetime
    changed_by: str
    notes: str | None = None


@dataclass(slots=True)
class ApplicationRecord:
    id: str
    job_id: str
    user_id: str
    user_name: str
    user_email: str
    resume_url: str
    cover_letter: str
    applied_date: datetime
    status: str = APPLICATION_STATUS_PENDING
    user_phone_number: str | None = None
    notes: str | None = None
    status_history: list[StatusHistoryEntry] = field(default_factory=list)


@dataclass(slots=True)
class SavedJobRecord:
    user_id: str
    job_id: str
    saved_date: datetime


@dataclass(slots=True)
class SearchEntry:
    job_id: str
    slug: str
    title: str
    company: str
    company_name: str
    location: str
    salary: float
    job_type: str
    posted_by: str
    status: str
    created_at: datetime
    experience: str | None = None
    skills: list[str] = field(default_factory=list)
    category: str | None = None
    is_featured: bool = False
    is_hot: bool = False


@dataclass(slots=True)
class SearchFilters:
    query: str | None = None
    location: str | None = None
    job_type: str | None = None
    min_salary: float | None = None
    max_salary: float | None = None
    experience: str | None = None
    skills: list[str] = field(default_factory=list)


@dataclass(slots=True)
class NotificationAction:
    label: str
    type: str = "link"
    url: str | None = None
    method: str = "GET"
    payload: dict[str, Any] | None = None


@dataclass(slots=True)
class NotificationRecord:
    id: str
    user_id: str
    title: str
    message: str
    type: str
    created_at: datetime
    expires_at: datetime
    priority: str = "medium"
    is_read: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)
    actions: list[NotificationAction] = field(default_factory=list)
    delivery_status: dict[str, str] = field(
        default_factory=lambda: {"push": DELIVERY_PENDING, "email": DELIVERY_SKIPPED, "sms": DELIVERY_SKIPPED}
    )
    source_event_id: str | None = None


@dataclass(slots=True)
class DeliveryTokenRecord:
    user_id: str
    token: str
    platform: str = "web"
    device_id: str | None = None
    is_active: bool = True
    last_used: datetime | None = None
